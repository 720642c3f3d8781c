"""API request/response Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from stateset.models.dataset import Dataset, DatasetLifecycle, DatasetRow, RowInput
from stateset.models.platform import Product, State, Template


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = ""


class ErrorResponse(BaseModel):
    """Standard error body for every non-2xx response."""

    error: str
    kind: str
    details: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Platform schemas
# ---------------------------------------------------------------------------


class StateCreateRequest(BaseModel):
    """Request body for POST /admin/states."""

    code: str = Field(min_length=2, max_length=16)
    name: str = Field(min_length=2, max_length=120)


class StateResponse(BaseModel):
    id: str
    code: str
    name: str
    is_active: bool

    @classmethod
    def from_state(cls, state: State) -> StateResponse:
        return cls(id=state.id, code=state.code, name=state.name, is_active=state.is_active)


class ProductCreateRequest(BaseModel):
    """Request body for POST /admin/products."""

    code: str = Field(min_length=2, max_length=32)
    name: str = Field(min_length=2, max_length=180)
    description: str | None = Field(default=None, max_length=1000)


class ProductResponse(BaseModel):
    """A product; ``enabled`` is only set when listed for a specific state."""

    id: str
    code: str
    name: str
    description: str | None = None
    is_active: bool
    enabled: bool | None = None

    @classmethod
    def from_product(cls, product: Product, enabled: bool | None = None) -> ProductResponse:
        return cls(
            id=product.id,
            code=product.code,
            name=product.name,
            description=product.description,
            is_active=product.is_active,
            enabled=enabled,
        )


class StateProductResponse(BaseModel):
    """Response item for GET /state/products."""

    state_id: str
    product_id: str
    enabled: bool
    product: ProductResponse


class EnablementRequest(BaseModel):
    """Request body for PUT /admin/states/{state_code}/products/{product_code}."""

    enabled: bool
    product_name: str | None = Field(default=None, max_length=180)


class EnablementResponse(BaseModel):
    state_code: str
    product_code: str
    enabled: bool
    updated_at: datetime


class TemplateResponse(BaseModel):
    id: str
    product_id: str
    code: str
    name: str
    is_active: bool
    definition: dict[str, Any]

    @classmethod
    def from_template(cls, template: Template) -> TemplateResponse:
        return cls(
            id=template.id,
            product_id=template.product_id,
            code=template.code,
            name=template.name,
            is_active=template.is_active,
            definition=template.definition,
        )


class MeResponse(BaseModel):
    """Response for GET /me."""

    user_id: str
    role: str
    state: StateResponse | None = None


# ---------------------------------------------------------------------------
# Dataset schemas
# ---------------------------------------------------------------------------


class DatasetCreateRequest(BaseModel):
    """Request body for POST /datasets."""

    product_code: str = Field(min_length=1)
    template_code: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=180)
    state_code: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RowsReplaceRequest(BaseModel):
    """Request body for PUT /datasets/{dataset_id}/rows."""

    expected_version: int = Field(ge=1)
    rows: list[RowInput]


class DraftSelector(BaseModel):
    """Identifies the active draft; ``state_code`` is only honoured for admins."""

    product_code: str = Field(min_length=1)
    state_code: str | None = None


class DraftCreateRequest(DraftSelector):
    """Request body for POST /datasets/draft."""

    template_code: str | None = None
    name: str | None = Field(default=None, max_length=180)


class DraftRowsReplaceRequest(DraftSelector):
    """Request body for PUT /datasets/draft/rows."""

    expected_version: int = Field(ge=1)
    rows: list[RowInput]


class RowResponse(BaseModel):
    id: str
    row_index: int
    data: dict[str, Any]

    @classmethod
    def from_row(cls, row: DatasetRow) -> RowResponse:
        return cls(id=row.id, row_index=row.row_index, data=row.data)


class DatasetSummaryResponse(BaseModel):
    """A dataset without its rows."""

    id: str
    name: str
    lifecycle: DatasetLifecycle
    version: int
    published_version: int | None = None
    is_active_draft: bool
    state_id: str
    product_id: str
    template_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dataset(cls, dataset: Dataset) -> DatasetSummaryResponse:
        return cls(
            id=dataset.id,
            name=dataset.name,
            lifecycle=dataset.lifecycle,
            version=dataset.version,
            published_version=dataset.published_version,
            is_active_draft=dataset.is_active_draft,
            state_id=dataset.state_id,
            product_id=dataset.product_id,
            template_id=dataset.template_id,
            metadata=dataset.metadata,
            created_at=dataset.created_at,
            updated_at=dataset.updated_at,
        )


class DatasetResponse(DatasetSummaryResponse):
    """A dataset with its rows ordered by ``row_index``."""

    rows: list[RowResponse] = []

    @classmethod
    def from_dataset(cls, dataset: Dataset) -> DatasetResponse:
        summary = DatasetSummaryResponse.from_dataset(dataset)
        return cls(
            **summary.model_dump(), rows=[RowResponse.from_row(r) for r in dataset.rows]
        )


class DatasetListResponse(BaseModel):
    """Response for GET /datasets."""

    datasets: list[DatasetSummaryResponse]


class DraftCreateResponse(BaseModel):
    """Response for POST /datasets/draft."""

    created: bool
    draft: DatasetResponse


class PublishResponse(BaseModel):
    """Response for POST /datasets/publish."""

    published: DatasetSummaryResponse
    rows_count: int
