"""Schema-driven row validation.

Pure functions: no storage access, no side effects.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from stateset.models.errors import RowValidationError, RowValidationResult
from stateset.models.platform import ColumnType, TemplateColumn, TemplateDefinition

_BOOLEAN_LITERALS = frozenset({"true", "false", "1", "0", "yes", "no"})


class RowLike(Protocol):
    row_index: int
    data: dict[str, Any]


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _as_text(value: Any) -> str:
    # Mirror JSON text rendering for booleans so "true"/"false" compare as expected.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_numeric(value: Any) -> bool:
    """A finite decimal number; surrounding whitespace is ignored."""
    if isinstance(value, (bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    text = str(value).strip()
    if "_" in text:
        return False
    try:
        number = float(text)
    except ValueError:
        return False
    return math.isfinite(number)


def _check_column(
    row_index: int, column: TemplateColumn, value: Any
) -> list[RowValidationError]:
    def error(message: str) -> RowValidationError:
        return RowValidationError(row_index=row_index, field=column.key, message=message)

    if _is_missing(value):
        if column.required:
            return [error(f"{column.label} is required")]
        return []

    errors: list[RowValidationError] = []
    if column.type is ColumnType.NUMBER and not _is_numeric(value):
        errors.append(error(f"{column.label} must be numeric"))
    if column.type is ColumnType.BOOLEAN and _as_text(value).lower() not in _BOOLEAN_LITERALS:
        errors.append(error(f"{column.label} must be a boolean"))
    if column.max_length and len(_as_text(value)) > column.max_length:
        errors.append(error(f"{column.label} must be <= {column.max_length} characters"))
    return errors


def validate_row(
    row_index: int, data: Mapping[str, Any], definition: TemplateDefinition
) -> list[RowValidationError]:
    """Check one row's data against every template column."""
    errors: list[RowValidationError] = []
    for column in definition.columns:
        errors.extend(_check_column(row_index, column, data.get(column.key)))
    return errors


def validate_rows(rows: Iterable[RowLike], definition: TemplateDefinition) -> RowValidationResult:
    """Validate every row; errors are collected exhaustively across rows and fields."""
    errors: list[RowValidationError] = []
    for row in rows:
        errors.extend(validate_row(row.row_index, row.data, definition))
    return RowValidationResult(valid=not errors, errors=errors)
