"""Platform administration: states, products, enablement and templates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from stateset.models.caller import CallerContext, CallerRole
from stateset.models.platform import Product, State, StateProduct, Template, TemplateDefinition
from stateset.service.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    storage_boundary,
)
from stateset.service.scope import normalize_code, require_bound_state
from stateset.storage.repository import STATE_CODE_CONSTRAINT, Storage, UniqueConstraintError

logger = logging.getLogger("stateset.service")


@dataclass
class ProductListing:
    """A product as seen from one state; ``enabled`` is ``None`` without a state."""

    product: Product
    enabled: bool | None = None


@dataclass
class EnabledProduct:
    link: StateProduct
    product: Product


@dataclass
class CallerProfile:
    user_id: str
    role: CallerRole
    state: State | None = None


@dataclass
class EnablementResult:
    state: State
    product: Product
    link: StateProduct


def _require_text(value: str | None, name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidRequestError(f"{name} is required")
    return text


def _require_code(value: str | None, name: str) -> str:
    code = normalize_code(value)
    if code is None:
        raise InvalidRequestError(f"{name} is required")
    return code


class PlatformAdmin:
    """Administrative operations on the tenant/product catalog.

    Role checks are the caller's responsibility; see
    :class:`~stateset.service.dataset_service.DatasetService`.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def _state_by_code(self, state_code: str | None) -> State:
        code = _require_code(state_code, "state_code")
        state = self._storage.states.get_by_code(code)
        if state is None:
            raise NotFoundError(f'State "{code}" does not exist', details={"state_code": code})
        return state

    # -- states ---------------------------------------------------------------

    def create_state(self, code: str, name: str) -> State:
        state = State(code=_require_code(code, "code"), name=_require_text(name, "name"))
        with storage_boundary("create state"):
            try:
                self._storage.states.create(state)
            except UniqueConstraintError as exc:
                if exc.constraint != STATE_CODE_CONSTRAINT:
                    raise
                raise ConflictError(
                    "State code already exists", details={"state_code": state.code}
                ) from exc
        logger.info("Created state %s (%s)", state.code, state.id)
        return state

    def list_states(self) -> list[State]:
        with storage_boundary("list states"):
            return self._storage.states.list()

    # -- products -------------------------------------------------------------

    def create_product(self, code: str, name: str, description: str | None = None) -> Product:
        """Create a product, or update and re-activate an existing one by code."""
        code = _require_code(code, "code")
        name = _require_text(name, "name")
        with storage_boundary("create product"):
            existing = self._storage.products.get_by_code(code)
            if existing is None:
                product = Product(code=code, name=name, description=description)
            else:
                product = existing.model_copy(
                    update={
                        "name": name,
                        "description": description if description is not None
                        else existing.description,
                        "is_active": True,
                        "updated_at": datetime.now(UTC),
                    }
                )
            self._storage.products.save(product)
        logger.info("%s product %s", "Created" if existing is None else "Updated", code)
        return product

    def set_state_product_enablement(
        self,
        state_code: str,
        product_code: str,
        enabled: bool,
        product_name: str | None = None,
    ) -> EnablementResult:
        """Enable or disable a product for a state; the product is upserted by code."""
        product_code = _require_code(product_code, "product_code")
        with storage_boundary("update state product enablement"):
            state = self._state_by_code(state_code)

            now = datetime.now(UTC)
            product = self._storage.products.get_by_code(product_code)
            if product is None:
                product = Product(code=product_code, name=product_name or product_code)
            elif product_name:
                product = product.model_copy(update={"name": product_name, "updated_at": now})
            self._storage.products.save(product)

            link = self._storage.state_products.save(
                StateProduct(
                    state_id=state.id, product_id=product.id, enabled=enabled, updated_at=now
                )
            )
        logger.info(
            "%s product %s for state %s",
            "Enabled" if enabled else "Disabled", product.code, state.code,
        )
        return EnablementResult(state=state, product=product, link=link)

    def list_enabled_products_for_state(self, state_id: str) -> list[EnabledProduct]:
        """Enabled links whose product is active, ordered by product code."""
        with storage_boundary("list enabled products"):
            enabled: list[EnabledProduct] = []
            for link in self._storage.state_products.list_for_state(state_id):
                if not link.enabled:
                    continue
                product = self._storage.products.get(link.product_id)
                if product is not None and product.is_active:
                    enabled.append(EnabledProduct(link=link, product=product))
            enabled.sort(key=lambda e: e.product.code)
            return enabled

    def list_products(
        self, caller: CallerContext, state_code: str | None = None
    ) -> list[ProductListing]:
        """Product catalog as visible to ``caller``.

        State users see only their enabled, active products.  Admins see
        every product; naming a state adds its per-product ``enabled`` flag.
        """
        if not caller.is_admin:
            state_id = require_bound_state(caller)
            return [
                ProductListing(product=e.product, enabled=e.link.enabled)
                for e in self.list_enabled_products_for_state(state_id)
            ]

        with storage_boundary("list products"):
            products = self._storage.products.list()
            if normalize_code(state_code) is None:
                return [ProductListing(product=p) for p in products]

            state = self._state_by_code(state_code)
            listings: list[ProductListing] = []
            for product in products:
                link = self._storage.state_products.get(state.id, product.id)
                listings.append(
                    ProductListing(product=product, enabled=link.enabled if link else False)
                )
            return listings

    # -- templates ------------------------------------------------------------

    def register_template(self, product_code: str, definition: TemplateDefinition) -> Template:
        """Create or replace the active template ``definition.code`` of a product."""
        product_code = _require_code(product_code, "product_code")
        if normalize_code(definition.product_code) != product_code:
            raise InvalidRequestError(
                "Template productCode does not match the product",
                details={
                    "product_code": product_code,
                    "template_product_code": definition.product_code,
                },
            )
        code = _require_code(definition.code, "code")
        payload = definition.model_dump(mode="json", by_alias=True, exclude_none=True)
        payload.update(code=code, productCode=product_code)

        with storage_boundary("register template"):
            product = self._storage.products.get_by_code(product_code)
            if product is None:
                raise NotFoundError("Product not found", details={"product_code": product_code})

            existing = self._storage.templates.find(product.id, code)
            if existing is None:
                template = Template(
                    product_id=product.id, code=code, name=definition.name, definition=payload
                )
            else:
                template = existing.model_copy(
                    update={"name": definition.name, "definition": payload, "is_active": True}
                )
            self._storage.templates.save(template)
        logger.info(
            "Registered template %s for product %s (%d columns)",
            code, product_code, len(definition.columns),
        )
        return template

    def list_templates(self, product_code: str) -> list[Template]:
        product_code = _require_code(product_code, "product_code")
        with storage_boundary("list templates"):
            product = self._storage.products.get_by_code(product_code)
            if product is None:
                raise NotFoundError("Product not found", details={"product_code": product_code})
            return self._storage.templates.list(product_id=product.id)

    # -- callers --------------------------------------------------------------

    def describe_caller(self, caller: CallerContext) -> CallerProfile:
        if not caller.is_admin:
            state_id = require_bound_state(caller)
        elif caller.state_id is None:
            return CallerProfile(user_id=caller.user_id, role=caller.role)
        else:
            state_id = caller.state_id

        with storage_boundary("load current user"):
            state = self._storage.states.get(state_id)
        if state is None and not caller.is_admin:
            raise ForbiddenError(
                "User state assignment is invalid", details={"state_id": state_id}
            )
        return CallerProfile(user_id=caller.user_id, role=caller.role, state=state)
