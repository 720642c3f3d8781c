"""Pydantic domain models for StateSet."""

from stateset.models.caller import CallerContext, CallerRole
from stateset.models.dataset import Dataset, DatasetLifecycle, DatasetRow, RowInput
from stateset.models.errors import RowValidationError, RowValidationResult
from stateset.models.platform import (
    ColumnType,
    Product,
    State,
    StateProduct,
    Template,
    TemplateColumn,
    TemplateDefinition,
)

__all__ = [
    "CallerContext",
    "CallerRole",
    "ColumnType",
    "Dataset",
    "DatasetLifecycle",
    "DatasetRow",
    "Product",
    "RowInput",
    "RowValidationError",
    "RowValidationResult",
    "State",
    "StateProduct",
    "Template",
    "TemplateColumn",
    "TemplateDefinition",
]
