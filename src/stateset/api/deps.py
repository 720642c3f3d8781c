"""Dependency injection for FastAPI: DatasetService singleton and caller context."""

from __future__ import annotations

from fastapi import Header, HTTPException

from stateset.models.caller import CallerContext, CallerRole
from stateset.service.dataset_service import DatasetService

_service: DatasetService | None = None


def init_service(service: DatasetService) -> None:
    """Set the global DatasetService (called at app startup)."""
    global _service  # noqa: PLW0603
    _service = service


def get_service() -> DatasetService:
    """FastAPI ``Depends`` provider for DatasetService."""
    if _service is None:
        raise RuntimeError("DatasetService not initialised; call init_service() first")
    return _service


def reset_service() -> None:
    """Clear the global DatasetService (for tests)."""
    global _service  # noqa: PLW0603
    _service = None


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_state_id: str | None = Header(default=None),
) -> CallerContext:
    """Build the caller from identity headers set by the trusted auth gateway."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        role = CallerRole(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=403, detail="Forbidden") from None
    return CallerContext(user_id=x_user_id, role=role, state_id=(x_state_id or "").strip() or None)
