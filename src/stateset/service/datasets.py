"""Dataset repository service: scoped create / read / list."""

from __future__ import annotations

import logging
from typing import Any

from stateset.models.caller import CallerContext
from stateset.models.dataset import Dataset, DatasetLifecycle
from stateset.service.enablement import EnablementGate
from stateset.service.errors import InvalidRequestError, NotFoundError, storage_boundary
from stateset.service.scope import ScopeResolver, normalize_code
from stateset.service.templates import TemplateCatalog
from stateset.storage.repository import Storage

logger = logging.getLogger("stateset.service")


def with_rows(storage: Storage, dataset: Dataset) -> Dataset:
    """Attach the dataset's rows, ordered by ``row_index``."""
    return dataset.model_copy(update={"rows": storage.datasets.list_rows(dataset.id)})


class DatasetManager:
    def __init__(
        self,
        storage: Storage,
        scope: ScopeResolver,
        gate: EnablementGate,
        catalog: TemplateCatalog,
    ) -> None:
        self._storage = storage
        self._scope = scope
        self._gate = gate
        self._catalog = catalog

    def create_dataset(
        self,
        caller: CallerContext,
        product_code: str,
        template_code: str,
        name: str,
        state_code: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Dataset:
        """Create an ad-hoc dataset outside the draft singleton."""
        with storage_boundary("create dataset"):
            if not name or not name.strip():
                raise InvalidRequestError("name is required")
            if normalize_code(template_code) is None:
                raise InvalidRequestError("template_code is required")
            state_id = self._scope.resolve(caller, state_code)
            product = self._gate.resolve_product(product_code)
            template = self._catalog.resolve(product.id, template_code)
            self._gate.assert_enabled(state_id, product.id)

            dataset = self._storage.datasets.create(
                Dataset(
                    state_id=state_id,
                    product_id=product.id,
                    template_id=template.id,
                    name=name.strip(),
                    metadata=metadata or {},
                    created_by_user_id=caller.user_id,
                )
            )
            logger.info(
                "Created dataset %s (state=%s, product=%s, template=%s)",
                dataset.id, state_id, product.code, template.code,
            )
            return dataset

    def get_dataset(self, caller: CallerContext, dataset_id: str) -> Dataset:
        """Dataset with rows; datasets outside the caller's state read as absent."""
        with storage_boundary("fetch dataset"):
            scope = self._scope.dataset_scope(caller)
            dataset = self._storage.datasets.get(dataset_id, state_id=scope)
            if dataset is None:
                raise NotFoundError("Dataset not found", details={"dataset_id": dataset_id})
            self._scope.assert_state_access(caller, dataset.state_id)
            if not caller.is_admin:
                self._gate.assert_enabled(dataset.state_id, dataset.product_id)
            return with_rows(self._storage, dataset)

    def list_datasets(
        self,
        caller: CallerContext,
        product_code: str | None = None,
        template_code: str | None = None,
        state_code: str | None = None,
        lifecycle: DatasetLifecycle | None = None,
    ) -> list[Dataset]:
        """Datasets visible to the caller, most recently updated first (no rows)."""
        with storage_boundary("list datasets"):
            state_id: str | None
            product_ids: set[str] | None = None
            if caller.is_admin:
                state_id = (
                    self._scope.resolve(caller, state_code)
                    if normalize_code(state_code) is not None
                    else None
                )
            else:
                state_id = self._scope.resolve(caller)
                product_ids = self._gate.enabled_product_ids(state_id)

            product_code = normalize_code(product_code)
            if product_code is not None:
                product = self._storage.products.get_by_code(product_code)
                if product is None:
                    return []
                if not caller.is_admin:
                    self._gate.assert_enabled(state_id, product.id)
                product_ids = {product.id}

            template_ids: set[str] | None = None
            template_code = normalize_code(template_code)
            if template_code is not None:
                template_ids = {t.id for t in self._storage.templates.list(code=template_code)}

            return self._storage.datasets.list(
                state_id=state_id,
                product_ids=product_ids,
                template_ids=template_ids,
                lifecycle=lifecycle,
            )
