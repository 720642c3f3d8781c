"""Dataset endpoints: list, create, fetch and row replacement by id.

Handlers are synchronous; FastAPI runs them in its threadpool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stateset.api.deps import get_caller, get_service
from stateset.api.schemas import (
    DatasetCreateRequest,
    DatasetListResponse,
    DatasetResponse,
    DatasetSummaryResponse,
    RowsReplaceRequest,
)
from stateset.models.caller import CallerContext
from stateset.models.dataset import DatasetLifecycle
from stateset.service.dataset_service import DatasetService

router = APIRouter()


@router.get("", response_model=DatasetListResponse)
def list_datasets(
    product_code: str | None = None,
    template_code: str | None = None,
    state_code: str | None = None,
    lifecycle: DatasetLifecycle | None = None,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DatasetListResponse:
    """List visible datasets, most recently updated first."""
    datasets = service.list_datasets(
        caller,
        product_code=product_code,
        template_code=template_code,
        state_code=state_code,
        lifecycle=lifecycle,
    )
    return DatasetListResponse(
        datasets=[DatasetSummaryResponse.from_dataset(d) for d in datasets]
    )


@router.post("", response_model=DatasetSummaryResponse, status_code=201)
def create_dataset(
    body: DatasetCreateRequest,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DatasetSummaryResponse:
    """Create an ad-hoc dataset (not the active draft)."""
    dataset = service.create_dataset(
        caller,
        body.product_code,
        body.template_code,
        body.name,
        state_code=body.state_code,
        metadata=body.metadata,
    )
    return DatasetSummaryResponse.from_dataset(dataset)


@router.get("/{dataset_id}", response_model=DatasetResponse)
def get_dataset(
    dataset_id: str,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DatasetResponse:
    """Fetch one dataset with its rows."""
    return DatasetResponse.from_dataset(service.get_dataset(caller, dataset_id))


@router.put("/{dataset_id}/rows", response_model=DatasetResponse)
def replace_rows(
    dataset_id: str,
    body: RowsReplaceRequest,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DatasetResponse:
    """Replace every row of a dataset (optimistic concurrency)."""
    updated = service.replace_rows(caller, dataset_id, body.expected_version, body.rows)
    return DatasetResponse.from_dataset(updated)
