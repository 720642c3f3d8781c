"""Draft lifecycle endpoints: /datasets/draft, /datasets/draft/rows, /datasets/publish.

Handlers are synchronous; FastAPI runs them in its threadpool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from stateset.api.deps import get_caller, get_service
from stateset.api.schemas import (
    DatasetResponse,
    DatasetSummaryResponse,
    DraftCreateRequest,
    DraftCreateResponse,
    DraftRowsReplaceRequest,
    DraftSelector,
    PublishResponse,
)
from stateset.models.caller import CallerContext
from stateset.service.dataset_service import DatasetService

router = APIRouter()


@router.get("/draft", response_model=DatasetResponse)
def get_draft(
    product_code: str,
    state_code: str | None = None,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DatasetResponse:
    """Return the active draft, with rows, for the caller's state and a product."""
    draft = service.get_draft(caller, product_code, state_code=state_code)
    return DatasetResponse.from_dataset(draft)


@router.post("/draft", response_model=DraftCreateResponse)
def create_draft(
    body: DraftCreateRequest,
    response: Response,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DraftCreateResponse:
    """Get or create the active draft; 201 only for the request that created it."""
    result = service.get_or_create_draft(
        caller,
        body.product_code,
        state_code=body.state_code,
        template_code=body.template_code,
        name=body.name,
    )
    response.status_code = 201 if result.created else 200
    return DraftCreateResponse(
        created=result.created, draft=DatasetResponse.from_dataset(result.dataset)
    )


@router.put("/draft/rows", response_model=DatasetResponse)
def replace_draft_rows(
    body: DraftRowsReplaceRequest,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> DatasetResponse:
    """Replace every row of the active draft (optimistic concurrency)."""
    updated = service.overwrite_draft_rows(
        caller,
        body.product_code,
        body.expected_version,
        body.rows,
        state_code=body.state_code,
    )
    return DatasetResponse.from_dataset(updated)


@router.post("/publish", response_model=PublishResponse, status_code=201)
def publish_draft(
    body: DraftSelector,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> PublishResponse:
    """Freeze the active draft into the next published version."""
    result = service.publish(caller, body.product_code, state_code=body.state_code)
    return PublishResponse(
        published=DatasetSummaryResponse.from_dataset(result.dataset),
        rows_count=result.rows_count,
    )
