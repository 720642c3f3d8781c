"""Tenant scope resolution: which state an operation may act on."""

from __future__ import annotations

from stateset.models.caller import CallerContext
from stateset.service.errors import ForbiddenError, InvalidRequestError, NotFoundError
from stateset.storage.repository import Storage


def normalize_code(code: str | None) -> str | None:
    """Trim and upper-case a state/product/template code; blank becomes ``None``."""
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def require_bound_state(caller: CallerContext) -> str:
    """Return a state user's bound state id, or raise ``ForbiddenError``."""
    if caller.state_id is None:
        raise ForbiddenError(
            "State user is missing state assignment", details={"user_id": caller.user_id}
        )
    return caller.state_id


def require_admin(caller: CallerContext) -> None:
    if not caller.is_admin:
        raise ForbiddenError("Admin role required", details={"role": caller.role.value})


class ScopeResolver:
    """Resolves and enforces the state scope of a caller.

    State users are pinned to their bound state; an explicit state code
    in their request is ignored.  Admins must name the state explicitly.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def resolve(self, caller: CallerContext, state_code: str | None = None) -> str:
        if not caller.is_admin:
            return require_bound_state(caller)

        code = normalize_code(state_code)
        if code is None:
            raise InvalidRequestError("state_code is required for admin requests")
        state = self._storage.states.get_by_code(code)
        if state is None:
            raise NotFoundError("State not found", details={"state_code": code})
        return state.id

    @staticmethod
    def dataset_scope(caller: CallerContext) -> str | None:
        """State filter for dataset lookups: ``None`` lets admins see every state."""
        if caller.is_admin:
            return None
        return require_bound_state(caller)

    @staticmethod
    def assert_state_access(caller: CallerContext, state_id: str) -> None:
        if not caller.is_admin and caller.state_id != state_id:
            raise ForbiddenError(
                "State users can only access their own state data",
                details={"state_id": state_id},
            )
