"""Structured row validation error models."""

from __future__ import annotations

from pydantic import BaseModel


class RowValidationError(BaseModel):
    """A single field-level problem found in one dataset row."""

    row_index: int
    field: str
    message: str


class RowValidationResult(BaseModel):
    """Result of validating a row set against a template."""

    valid: bool
    errors: list[RowValidationError] = []
