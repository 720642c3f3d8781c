"""Caller, product catalog and admin endpoints.

Handlers are synchronous; FastAPI runs them in its threadpool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stateset.api.deps import get_caller, get_service
from stateset.api.schemas import (
    EnablementRequest,
    EnablementResponse,
    MeResponse,
    ProductCreateRequest,
    ProductResponse,
    StateCreateRequest,
    StateProductResponse,
    StateResponse,
    TemplateResponse,
)
from stateset.models.caller import CallerContext
from stateset.models.platform import TemplateDefinition
from stateset.service.dataset_service import DatasetService

router = APIRouter()


# -- caller & catalog --------------------------------------------------------


@router.get("/me", response_model=MeResponse, tags=["platform"])
def me(
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> MeResponse:
    """Describe the current caller and their bound state."""
    profile = service.describe_caller(caller)
    return MeResponse(
        user_id=profile.user_id,
        role=profile.role.value,
        state=StateResponse.from_state(profile.state) if profile.state else None,
    )


@router.get("/products", response_model=list[ProductResponse], tags=["platform"])
def list_products(
    state_code: str | None = None,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> list[ProductResponse]:
    """List products; state users only see their enabled ones."""
    return [
        ProductResponse.from_product(item.product, enabled=item.enabled)
        for item in service.list_products(caller, state_code=state_code)
    ]


@router.get("/state/products", response_model=list[StateProductResponse], tags=["platform"])
def list_state_products(
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> list[StateProductResponse]:
    """Enabled products of the caller's state (empty for admins)."""
    return [
        StateProductResponse(
            state_id=item.link.state_id,
            product_id=item.link.product_id,
            enabled=item.link.enabled,
            product=ProductResponse.from_product(item.product),
        )
        for item in service.list_state_products(caller)
    ]


# -- admin -------------------------------------------------------------------


@router.post("/admin/states", response_model=StateResponse, status_code=201, tags=["admin"])
def create_state(
    body: StateCreateRequest,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> StateResponse:
    """Create a state (tenant)."""
    return StateResponse.from_state(service.create_state(caller, body.code, body.name))


@router.post("/admin/products", response_model=ProductResponse, status_code=201, tags=["admin"])
def create_product(
    body: ProductCreateRequest,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> ProductResponse:
    """Create a product, or update and re-activate it when the code exists."""
    product = service.create_product(caller, body.code, body.name, description=body.description)
    return ProductResponse.from_product(product)


@router.put(
    "/admin/states/{state_code}/products/{product_code}",
    response_model=EnablementResponse,
    tags=["admin"],
)
def set_enablement(
    state_code: str,
    product_code: str,
    body: EnablementRequest,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> EnablementResponse:
    """Enable or disable a product for a state."""
    result = service.set_state_product_enablement(
        caller, state_code, product_code, body.enabled, product_name=body.product_name
    )
    return EnablementResponse(
        state_code=result.state.code,
        product_code=result.product.code,
        enabled=result.link.enabled,
        updated_at=result.link.updated_at,
    )


@router.post(
    "/admin/products/{product_code}/templates",
    response_model=TemplateResponse,
    status_code=201,
    tags=["admin"],
)
def register_template(
    product_code: str,
    body: TemplateDefinition,
    caller: CallerContext = Depends(get_caller),  # noqa: B008
    service: DatasetService = Depends(get_service),  # noqa: B008
) -> TemplateResponse:
    """Create or replace a product template."""
    template = service.register_template(caller, product_code, body)
    return TemplateResponse.from_template(template)
