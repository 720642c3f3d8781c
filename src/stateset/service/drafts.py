"""Draft singleton manager: one live draft per (state, product)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stateset.models.caller import CallerContext
from stateset.models.dataset import Dataset, DatasetLifecycle
from stateset.service.datasets import with_rows
from stateset.service.enablement import EnablementGate
from stateset.service.errors import InternalError, NotFoundError, storage_boundary
from stateset.service.scope import ScopeResolver
from stateset.service.templates import TemplateCatalog
from stateset.storage.repository import ACTIVE_DRAFT_CONSTRAINT, Storage, UniqueConstraintError

logger = logging.getLogger("stateset.service")


@dataclass
class DraftResult:
    """Outcome of get-or-create: ``created`` is true for exactly one caller."""

    dataset: Dataset
    created: bool


class DraftManager:
    """Get-or-create semantics for the active draft of a (state, product).

    Draft creation is the one race handled rather than merely detected:
    the insert is guarded by the store's active-draft uniqueness
    constraint, and a loser re-reads the winner's draft once.
    """

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

    def _find_active_draft(self, state_id: str, product_id: str) -> Dataset | None:
        draft = self._storage.datasets.find_active_draft(state_id, product_id)
        return with_rows(self._storage, draft) if draft is not None else None

    def get_or_create_draft(
        self,
        caller: CallerContext,
        product_code: str,
        state_code: str | None = None,
        template_code: str | None = None,
        name: str | None = None,
    ) -> DraftResult:
        with storage_boundary("create draft dataset"):
            state_id = self._scope.resolve(caller, state_code)
            product = self._gate.resolve_product(product_code)
            self._gate.assert_enabled(state_id, product.id)

            existing = self._find_active_draft(state_id, product.id)
            if existing is not None:
                return DraftResult(dataset=existing, created=False)

            template = self._catalog.resolve(product.id, template_code)
            draft = Dataset(
                state_id=state_id,
                product_id=product.id,
                template_id=template.id,
                name=(name or "").strip() or f"{product.code} Draft",
                lifecycle=DatasetLifecycle.DRAFT,
                is_active_draft=True,
                published_version=None,
                version=1,
                created_by_user_id=caller.user_id,
            )
            try:
                created = self._storage.datasets.create(draft)
            except UniqueConstraintError as exc:
                if exc.constraint != ACTIVE_DRAFT_CONSTRAINT:
                    raise
                concurrent = self._find_active_draft(state_id, product.id)
                if concurrent is None:
                    logger.error(
                        "Active draft constraint fired but no draft found (state=%s, product=%s)",
                        state_id, product.code,
                    )
                    raise InternalError("Failed to create draft dataset") from exc
                logger.info(
                    "Concurrent draft creation reconciled to %s (state=%s, product=%s)",
                    concurrent.id, state_id, product.code,
                )
                return DraftResult(dataset=concurrent, created=False)

            logger.info(
                "Created draft %s (state=%s, product=%s, template=%s)",
                created.id, state_id, product.code, template.code,
            )
            return DraftResult(dataset=with_rows(self._storage, created), created=True)

    def get_draft(
        self,
        caller: CallerContext,
        product_code: str,
        state_code: str | None = None,
    ) -> Dataset:
        with storage_boundary("fetch draft dataset"):
            state_id = self._scope.resolve(caller, state_code)
            product = self._gate.resolve_product(product_code)
            self._gate.assert_enabled(state_id, product.id)

            draft = self._find_active_draft(state_id, product.id)
            if draft is None:
                raise NotFoundError(
                    "Draft dataset not found", details={"product_code": product.code}
                )
            return draft
