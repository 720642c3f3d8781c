"""
Error types raised by the dataset engine.

Every public service operation either returns a value or raises one
:class:`DomainError` subclass.  Each error carries:

- ``status``: HTTP-like status code for the caller's transport layer
- ``kind``: machine-readable error kind
- ``details``: structured context (may be empty)

Storage-layer exceptions never cross a service boundary; see
:func:`storage_boundary`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from stateset.models.errors import RowValidationError
from stateset.storage.repository import StorageError

logger = logging.getLogger("stateset.service")


class DomainError(Exception):
    """Base exception for all dataset engine errors.

    Attributes:
        message: Human-readable error message
        details: Additional error context
    """

    status: int = 500
    kind: str = "InternalError"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequestError(DomainError):
    """Caller input is structurally wrong or lacks a required scope."""

    status = 400
    kind = "InvalidRequest"


class NotFoundError(DomainError):
    """Referenced entity does not exist or is outside the caller's scope."""

    status = 404
    kind = "NotFound"


class ForbiddenError(DomainError):
    """Caller may not act on the resolved scope, or the product is withheld."""

    status = 403
    kind = "Forbidden"


class ConflictError(DomainError):
    """Request conflicts with the current stored state."""

    status = 409
    kind = "Conflict"


class VersionConflictError(ConflictError):
    """Optimistic concurrency failure on a dataset's version token."""

    def __init__(self, expected_version: int, actual_version: int | None) -> None:
        super().__init__(
            "Dataset version mismatch",
            details={"expected_version": expected_version, "actual_version": actual_version},
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class RowValidationFailedError(DomainError):
    """One or more rows fail template validation."""

    status = 400
    kind = "ValidationFailed"

    def __init__(self, errors: Sequence[RowValidationError]) -> None:
        self.errors = list(errors)
        super().__init__(
            "Row validation failed",
            details={"errors": [e.model_dump() for e in self.errors]},
        )


class InternalSchemaError(DomainError):
    """A stored template schema cannot be parsed into column definitions."""

    status = 500
    kind = "InternalSchemaError"


class InternalError(DomainError):
    """Unexpected server-side failure; not recoverable by the client."""


@contextmanager
def storage_boundary(operation: str) -> Iterator[None]:
    """Re-classify storage failures escaping ``operation`` as :class:`InternalError`."""
    try:
        yield
    except StorageError as exc:
        logger.exception("Storage failure during '%s'", operation)
        raise InternalError(f"Failed to {operation}") from exc
