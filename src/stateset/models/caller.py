"""Caller identity context supplied by the upstream auth layer."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class CallerRole(StrEnum):
    ADMIN = "admin"
    STATE_USER = "state_user"


class CallerContext(BaseModel):
    """An already-authenticated caller.

    ``state_id`` is ``None`` for admins and for state users whose state
    assignment is missing; the scope resolver rejects the latter.
    """

    model_config = {"frozen": True}

    user_id: str
    role: CallerRole
    state_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is CallerRole.ADMIN
