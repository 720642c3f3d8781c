"""Dataset engine facade: the single entry point used by the REST API."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from stateset.models.caller import CallerContext
from stateset.models.dataset import Dataset, DatasetLifecycle, RowInput
from stateset.models.platform import Product, State, Template, TemplateDefinition
from stateset.service.datasets import DatasetManager
from stateset.service.drafts import DraftManager, DraftResult
from stateset.service.enablement import EnablementGate
from stateset.service.platform import (
    CallerProfile,
    EnabledProduct,
    EnablementResult,
    PlatformAdmin,
    ProductListing,
)
from stateset.service.publish import PublishOrchestrator, PublishResult
from stateset.service.rows import RowReplaceEngine
from stateset.service.scope import ScopeResolver, require_admin
from stateset.service.templates import TemplateCatalog
from stateset.settings import Settings
from stateset.storage.repository import Storage

# ---------------------------------------------------------------------------
# DatasetService
# ---------------------------------------------------------------------------


class DatasetService:
    """State-scoped dataset engine.

    Holds one instance of every engine component, all sharing the same
    storage.  Components are stateless apart from the storage handle, so a
    single service is safe to share across request threads; concurrency
    control lives in the store's constraints and transactions.
    """

    def __init__(self, storage: Storage, settings: Settings | None = None) -> None:
        settings = settings or Settings()
        self.storage = storage

        self._scope = ScopeResolver(storage)
        self._gate = EnablementGate(storage)
        self._catalog = TemplateCatalog(storage)
        self._datasets = DatasetManager(storage, self._scope, self._gate, self._catalog)
        self._drafts = DraftManager(storage, self._scope, self._gate, self._catalog)
        self._rows = RowReplaceEngine(
            storage,
            self._scope,
            self._gate,
            self._catalog,
            self._drafts,
            max_rows=settings.max_rows_per_request,
        )
        self._publisher = PublishOrchestrator(
            storage, self._drafts, self._catalog, max_attempts=settings.publish_max_attempts
        )
        self.platform = PlatformAdmin(storage)

    # -- datasets ------------------------------------------------------------

    def create_dataset(
        self,
        caller: CallerContext,
        product_code: str,
        template_code: str,
        name: str,
        state_code: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Dataset:
        return self._datasets.create_dataset(
            caller, product_code, template_code, name, state_code=state_code, metadata=metadata
        )

    def get_dataset(self, caller: CallerContext, dataset_id: str) -> Dataset:
        return self._datasets.get_dataset(caller, dataset_id)

    def list_datasets(
        self,
        caller: CallerContext,
        product_code: str | None = None,
        template_code: str | None = None,
        state_code: str | None = None,
        lifecycle: DatasetLifecycle | None = None,
    ) -> list[Dataset]:
        return self._datasets.list_datasets(
            caller,
            product_code=product_code,
            template_code=template_code,
            state_code=state_code,
            lifecycle=lifecycle,
        )

    def replace_rows(
        self,
        caller: CallerContext,
        dataset_id: str,
        expected_version: int,
        rows: Sequence[RowInput],
    ) -> Dataset:
        return self._rows.replace_rows(caller, dataset_id, expected_version, rows)

    # -- drafts --------------------------------------------------------------

    def get_or_create_draft(
        self,
        caller: CallerContext,
        product_code: str,
        state_code: str | None = None,
        template_code: str | None = None,
        name: str | None = None,
    ) -> DraftResult:
        return self._drafts.get_or_create_draft(
            caller, product_code, state_code=state_code, template_code=template_code, name=name
        )

    def get_draft(
        self, caller: CallerContext, product_code: str, state_code: str | None = None
    ) -> Dataset:
        return self._drafts.get_draft(caller, product_code, state_code=state_code)

    def overwrite_draft_rows(
        self,
        caller: CallerContext,
        product_code: str,
        expected_version: int,
        rows: Sequence[RowInput],
        state_code: str | None = None,
    ) -> Dataset:
        return self._rows.overwrite_draft_rows(
            caller, product_code, expected_version, rows, state_code=state_code
        )

    def publish(
        self, caller: CallerContext, product_code: str, state_code: str | None = None
    ) -> PublishResult:
        return self._publisher.publish(caller, product_code, state_code=state_code)

    # -- platform ------------------------------------------------------------

    def describe_caller(self, caller: CallerContext) -> CallerProfile:
        return self.platform.describe_caller(caller)

    def list_products(
        self, caller: CallerContext, state_code: str | None = None
    ) -> list[ProductListing]:
        return self.platform.list_products(caller, state_code=state_code)

    def list_state_products(self, caller: CallerContext) -> list[EnabledProduct]:
        """Enabled products of the caller's state; admins have none."""
        if caller.is_admin:
            return []
        return self.platform.list_enabled_products_for_state(self._scope.resolve(caller))

    def create_state(self, caller: CallerContext, code: str, name: str) -> State:
        require_admin(caller)
        return self.platform.create_state(code, name)

    def create_product(
        self,
        caller: CallerContext,
        code: str,
        name: str,
        description: str | None = None,
    ) -> Product:
        require_admin(caller)
        return self.platform.create_product(code, name, description=description)

    def set_state_product_enablement(
        self,
        caller: CallerContext,
        state_code: str,
        product_code: str,
        enabled: bool,
        product_name: str | None = None,
    ) -> EnablementResult:
        require_admin(caller)
        return self.platform.set_state_product_enablement(
            state_code, product_code, enabled, product_name=product_name
        )

    def register_template(
        self, caller: CallerContext, product_code: str, definition: TemplateDefinition
    ) -> Template:
        require_admin(caller)
        return self.platform.register_template(product_code, definition)
