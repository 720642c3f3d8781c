"""State, product, enablement and template models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class State(BaseModel):
    """A tenant; the top-level isolation boundary."""

    id: str = Field(default_factory=_new_id)
    code: str
    name: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)


class Product(BaseModel):
    """A capability area a state may be granted access to."""

    id: str = Field(default_factory=_new_id)
    code: str
    name: str
    description: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class StateProduct(BaseModel):
    """Enablement of one product for one state."""

    state_id: str
    product_id: str
    enabled: bool
    updated_at: datetime = Field(default_factory=_utcnow)


class ColumnType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


class TemplateColumn(BaseModel):
    """One column of a template schema."""

    key: str = Field(min_length=1)
    label: str = Field(min_length=1)
    type: ColumnType = ColumnType.STRING
    required: bool = False
    max_length: int | None = Field(None, alias="maxLength", gt=0)
    options: list[str] | None = None

    model_config = {"populate_by_name": True}


class TemplateDefinition(BaseModel):
    """Parsed template schema payload: an ordered, non-empty column list."""

    code: str = Field(min_length=2)
    name: str = Field(min_length=2)
    product_code: str = Field(alias="productCode", min_length=2)
    columns: list[TemplateColumn] = Field(min_length=1)

    model_config = {"populate_by_name": True}


class Template(BaseModel):
    """A stored template; ``definition`` is the raw, unparsed schema payload."""

    id: str = Field(default_factory=_new_id)
    product_id: str
    code: str
    name: str
    is_active: bool = True
    definition: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
