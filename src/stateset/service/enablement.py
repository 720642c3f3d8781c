"""Product enablement gate."""

from __future__ import annotations

from stateset.models.platform import Product
from stateset.service.errors import ForbiddenError, InvalidRequestError, NotFoundError
from stateset.service.scope import normalize_code
from stateset.storage.repository import Storage


class EnablementGate:
    """Confirms a product is active and enabled for a state.

    A withheld product is ``Forbidden``, not ``NotFound``: the product may
    well exist but not be granted to this state.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def resolve_product(self, product_code: str | None) -> Product:
        code = normalize_code(product_code)
        if code is None:
            raise InvalidRequestError("product_code is required")
        product = self._storage.products.get_by_code(code)
        if product is None:
            raise NotFoundError("Product not found", details={"product_code": code})
        return product

    def assert_enabled(self, state_id: str, product_id: str) -> Product:
        details = {"state_id": state_id, "product_id": product_id}
        product = self._storage.products.get(product_id)
        if product is None or not product.is_active:
            raise ForbiddenError("Product is not enabled for this state", details=details)
        link = self._storage.state_products.get(state_id, product_id)
        if link is None or not link.enabled:
            raise ForbiddenError("Product is not enabled for this state", details=details)
        return product

    def enabled_product_ids(self, state_id: str) -> set[str]:
        """Ids of every active product enabled for ``state_id``."""
        ids: set[str] = set()
        for link in self._storage.state_products.list_for_state(state_id):
            if not link.enabled:
                continue
            product = self._storage.products.get(link.product_id)
            if product is not None and product.is_active:
                ids.add(product.id)
        return ids
