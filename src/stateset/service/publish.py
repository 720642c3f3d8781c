"""Publish orchestration: freeze the active draft into a numbered snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stateset.models.caller import CallerContext
from stateset.models.dataset import Dataset, DatasetLifecycle
from stateset.service.drafts import DraftManager
from stateset.service.errors import (
    ConflictError,
    RowValidationFailedError,
    VersionConflictError,
    storage_boundary,
)
from stateset.service.row_validator import validate_rows
from stateset.service.templates import TemplateCatalog
from stateset.storage.repository import (
    PUBLISHED_VERSION_CONSTRAINT,
    Storage,
    UniqueConstraintError,
)

logger = logging.getLogger("stateset.service")


@dataclass
class PublishResult:
    dataset: Dataset
    rows_count: int


class PublishOrchestrator:
    """Copies the active draft into a new PUBLISHED dataset.

    The draft is left untouched and keeps accepting edits.  Each publish
    allocates ``max(published_version) + 1`` for the (state, product)
    inside the same transaction that writes the snapshot; a lost race on
    the version number is retried up to ``max_attempts`` times.
    """

    def __init__(
        self,
        storage: Storage,
        drafts: DraftManager,
        catalog: TemplateCatalog,
        max_attempts: int = 3,
    ) -> None:
        self._storage = storage
        self._drafts = drafts
        self._catalog = catalog
        self._max_attempts = max(1, max_attempts)

    def publish(
        self,
        caller: CallerContext,
        product_code: str,
        state_code: str | None = None,
    ) -> PublishResult:
        draft = self._drafts.get_draft(caller, product_code, state_code=state_code)

        with storage_boundary("publish dataset"):
            definition = self._catalog.definition_for(draft.template_id)
            result = validate_rows(draft.rows, definition)
            if not result.valid:
                logger.warning(
                    "Publish of draft %s blocked by %d validation errors",
                    draft.id, len(result.errors),
                )
                raise RowValidationFailedError(result.errors)

            for attempt in range(1, self._max_attempts + 1):
                try:
                    published = self._snapshot(caller, draft)
                except UniqueConstraintError as exc:
                    if exc.constraint != PUBLISHED_VERSION_CONSTRAINT:
                        raise
                    logger.warning(
                        "Published version collision for draft %s (attempt %d/%d)",
                        draft.id, attempt, self._max_attempts,
                    )
                    continue
                logger.info(
                    "Published draft %s as %s v%d with %d rows",
                    draft.id, published.id, published.published_version, len(published.rows),
                )
                return PublishResult(dataset=published, rows_count=len(published.rows))

        raise ConflictError(
            "Concurrent publish detected, please retry",
            details={"dataset_id": draft.id, "attempts": self._max_attempts},
        )

    def _snapshot(self, caller: CallerContext, draft: Dataset) -> Dataset:
        with self._storage.transaction() as tx:
            current = tx.datasets.get(draft.id)
            if current is None or current.version != draft.version:
                # The draft was edited after it was validated.
                raise VersionConflictError(draft.version, current.version if current else None)

            latest = tx.datasets.max_published_version(draft.state_id, draft.product_id)
            published = tx.datasets.create(
                Dataset(
                    state_id=draft.state_id,
                    product_id=draft.product_id,
                    template_id=draft.template_id,
                    name=draft.name,
                    lifecycle=DatasetLifecycle.PUBLISHED,
                    version=1,
                    is_active_draft=False,
                    published_version=(latest or 0) + 1,
                    metadata=draft.metadata,
                    created_by_user_id=caller.user_id,
                )
            )
            tx.datasets.insert_rows(published.id, [(r.row_index, r.data) for r in draft.rows])
            rows = tx.datasets.list_rows(published.id)
        return published.model_copy(update={"rows": rows})
