"""Dataset, row and lifecycle models."""

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


class DatasetLifecycle(StrEnum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class RowInput(BaseModel):
    """A caller-submitted row; ``row_index`` need not be contiguous."""

    row_index: int
    data: dict[str, Any] = Field(default_factory=dict)


class DatasetRow(BaseModel):
    """A stored row belonging to exactly one dataset."""

    id: str = Field(default_factory=_new_id)
    dataset_id: str
    row_index: int
    data: dict[str, Any] = Field(default_factory=dict)


class Dataset(BaseModel):
    """A versioned, state-scoped table of rows.

    ``version`` is the optimistic concurrency token of a draft.
    ``published_version`` stays ``None`` until the dataset is a published
    snapshot.  ``rows`` is only populated when loaded with rows.
    """

    id: str = Field(default_factory=_new_id)
    state_id: str
    product_id: str
    template_id: str
    name: str
    lifecycle: DatasetLifecycle = DatasetLifecycle.DRAFT
    version: int = 1
    is_active_draft: bool = False
    published_version: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by_user_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    rows: list[DatasetRow] = Field(default_factory=list)

    @property
    def is_published(self) -> bool:
        return self.lifecycle is DatasetLifecycle.PUBLISHED
