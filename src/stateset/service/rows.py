"""Whole-set row replacement guarded by optimistic concurrency."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from stateset.models.caller import CallerContext
from stateset.models.dataset import Dataset, RowInput
from stateset.service.drafts import DraftManager
from stateset.service.enablement import EnablementGate
from stateset.service.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    RowValidationFailedError,
    VersionConflictError,
    storage_boundary,
)
from stateset.service.row_validator import validate_rows
from stateset.service.scope import ScopeResolver
from stateset.service.templates import TemplateCatalog
from stateset.storage.repository import Storage

logger = logging.getLogger("stateset.service")


class RowReplaceEngine:
    """Replace a dataset's full row set in one atomic step.

    The caller supplies the version it last observed; the swap happens
    only if that version is still current, and bumps it by exactly one.
    Published datasets are frozen.
    """

    def __init__(
        self,
        storage: Storage,
        scope: ScopeResolver,
        gate: EnablementGate,
        catalog: TemplateCatalog,
        drafts: DraftManager,
        max_rows: int = 10_000,
    ) -> None:
        self._storage = storage
        self._scope = scope
        self._gate = gate
        self._catalog = catalog
        self._drafts = drafts
        self._max_rows = max_rows

    def replace_rows(
        self,
        caller: CallerContext,
        dataset_id: str,
        expected_version: int,
        rows: Sequence[RowInput],
    ) -> Dataset:
        if len(rows) > self._max_rows:
            raise InvalidRequestError(
                f"At most {self._max_rows} rows may be submitted at once",
                details={"max_rows": self._max_rows, "received": len(rows)},
            )

        with storage_boundary("replace dataset rows"):
            scope = self._scope.dataset_scope(caller)
            dataset = self._storage.datasets.get(dataset_id, state_id=scope)
            if dataset is None:
                raise NotFoundError("Dataset not found", details={"dataset_id": dataset_id})
            self._scope.assert_state_access(caller, dataset.state_id)
            self._gate.assert_enabled(dataset.state_id, dataset.product_id)

            if dataset.is_published:
                raise ConflictError(
                    "Published datasets cannot be modified",
                    details={"dataset_id": dataset.id, "reason": "published"},
                )
            if dataset.version != expected_version:
                raise VersionConflictError(expected_version, dataset.version)

            definition = self._catalog.definition_for(dataset.template_id)
            result = validate_rows(rows, definition)
            if not result.valid:
                logger.warning(
                    "Rejected %d rows for dataset %s: %d validation errors",
                    len(rows), dataset.id, len(result.errors),
                )
                raise RowValidationFailedError(result.errors)

            with self._storage.transaction() as tx:
                bumped = tx.datasets.bump_version(dataset.id, expected_version)
                if bumped is None:
                    current = tx.datasets.get(dataset.id)
                    raise VersionConflictError(
                        expected_version, current.version if current else None
                    )
                tx.datasets.replace_rows(dataset.id, [(r.row_index, r.data) for r in rows])
                stored_rows = tx.datasets.list_rows(dataset.id)

            logger.info(
                "Replaced rows of dataset %s: %d rows, version %d -> %d",
                dataset.id, len(stored_rows), expected_version, bumped.version,
            )
            return bumped.model_copy(update={"rows": stored_rows})

    def overwrite_draft_rows(
        self,
        caller: CallerContext,
        product_code: str,
        expected_version: int,
        rows: Sequence[RowInput],
        state_code: str | None = None,
    ) -> Dataset:
        """Locate the active draft for the caller's scope and replace its rows."""
        draft = self._drafts.get_draft(caller, product_code, state_code=state_code)
        return self.replace_rows(caller, draft.id, expected_version, rows)
