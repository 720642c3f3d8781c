"""In-memory storage implementation for development and testing."""

from __future__ import annotations

import copy
import threading
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from stateset.models.dataset import Dataset, DatasetLifecycle, DatasetRow
from stateset.models.platform import Product, State, StateProduct, Template
from stateset.storage.repository import (
    ACTIVE_DRAFT_CONSTRAINT,
    PUBLISHED_VERSION_CONSTRAINT,
    STATE_CODE_CONSTRAINT,
    DatasetRepository,
    ProductRepository,
    RowValues,
    StateProductRepository,
    StateRepository,
    Storage,
    TemplateRepository,
    UniqueConstraintError,
    iter_row_values,
)


_MISSING = object()


@dataclass
class _Tables:
    """Every table of the in-memory store.

    While a transaction is open, ``journal`` maps each touched
    ``(table, key)`` to its value before the transaction first changed it.
    """

    states: dict[str, State] = field(default_factory=dict)
    products: dict[str, Product] = field(default_factory=dict)
    state_products: dict[tuple[str, str], StateProduct] = field(default_factory=dict)
    templates: dict[str, Template] = field(default_factory=dict)
    datasets: dict[str, Dataset] = field(default_factory=dict)
    rows: dict[str, list[DatasetRow]] = field(default_factory=dict)
    journal: dict[tuple[str, Any], Any] | None = None

    def touch(self, table: str, key: Any) -> None:
        """Record an entry's pre-transaction value before it is written."""
        if self.journal is None or (table, key) in self.journal:
            return
        current = getattr(self, table).get(key, _MISSING)
        self.journal[(table, key)] = current if current is _MISSING else copy.deepcopy(current)

    def rollback(self, journal: dict[tuple[str, Any], Any]) -> None:
        for (table, key), value in journal.items():
            entries = getattr(self, table)
            if value is _MISSING:
                entries.pop(key, None)
            else:
                entries[key] = value


class InMemoryStateRepository(StateRepository):
    """In-memory state repository."""

    def __init__(self, tables: _Tables, lock: threading.RLock) -> None:
        self._tables = tables
        self._lock = lock

    def create(self, state: State) -> State:
        with self._lock:
            if any(s.code == state.code for s in self._tables.states.values()):
                raise UniqueConstraintError(STATE_CODE_CONSTRAINT)
            self._tables.touch("states", state.id)
            self._tables.states[state.id] = state.model_copy(deep=True)
            return state

    def get(self, state_id: str) -> State | None:
        with self._lock:
            state = self._tables.states.get(state_id)
            return state.model_copy(deep=True) if state else None

    def get_by_code(self, code: str) -> State | None:
        with self._lock:
            for state in self._tables.states.values():
                if state.code == code:
                    return state.model_copy(deep=True)
            return None

    def list(self) -> list[State]:
        with self._lock:
            return sorted(
                (s.model_copy(deep=True) for s in self._tables.states.values()),
                key=lambda s: s.code,
            )


class InMemoryProductRepository(ProductRepository):
    """In-memory product repository."""

    def __init__(self, tables: _Tables, lock: threading.RLock) -> None:
        self._tables = tables
        self._lock = lock

    def save(self, product: Product) -> Product:
        with self._lock:
            self._tables.touch("products", product.id)
            self._tables.products[product.id] = product.model_copy(deep=True)
            return product

    def get(self, product_id: str) -> Product | None:
        with self._lock:
            product = self._tables.products.get(product_id)
            return product.model_copy(deep=True) if product else None

    def get_by_code(self, code: str) -> Product | None:
        with self._lock:
            for product in self._tables.products.values():
                if product.code == code:
                    return product.model_copy(deep=True)
            return None

    def list(self) -> list[Product]:
        with self._lock:
            return sorted(
                (p.model_copy(deep=True) for p in self._tables.products.values()),
                key=lambda p: p.code,
            )


class InMemoryStateProductRepository(StateProductRepository):
    """In-memory state/product enablement repository."""

    def __init__(self, tables: _Tables, lock: threading.RLock) -> None:
        self._tables = tables
        self._lock = lock

    def save(self, link: StateProduct) -> StateProduct:
        with self._lock:
            self._tables.touch("state_products", (link.state_id, link.product_id))
            self._tables.state_products[(link.state_id, link.product_id)] = link.model_copy()
            return link

    def get(self, state_id: str, product_id: str) -> StateProduct | None:
        with self._lock:
            link = self._tables.state_products.get((state_id, product_id))
            return link.model_copy() if link else None

    def list_for_state(self, state_id: str) -> list[StateProduct]:
        with self._lock:
            return [
                link.model_copy()
                for (sid, _), link in self._tables.state_products.items()
                if sid == state_id
            ]


class InMemoryTemplateRepository(TemplateRepository):
    """In-memory template repository."""

    def __init__(self, tables: _Tables, lock: threading.RLock) -> None:
        self._tables = tables
        self._lock = lock

    def save(self, template: Template) -> Template:
        with self._lock:
            self._tables.touch("templates", template.id)
            self._tables.templates[template.id] = template.model_copy(deep=True)
            return template

    def get(self, template_id: str) -> Template | None:
        with self._lock:
            template = self._tables.templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def find(self, product_id: str, code: str) -> Template | None:
        with self._lock:
            for template in self._tables.templates.values():
                if template.product_id == product_id and template.code == code:
                    return template.model_copy(deep=True)
            return None

    def list(self, product_id: str | None = None, code: str | None = None) -> list[Template]:
        with self._lock:
            templates = list(self._tables.templates.values())
            if product_id:
                templates = [t for t in templates if t.product_id == product_id]
            if code:
                templates = [t for t in templates if t.code == code]
            return sorted((t.model_copy(deep=True) for t in templates), key=lambda t: t.code)


class InMemoryDatasetRepository(DatasetRepository):
    """In-memory dataset and row repository."""

    def __init__(self, tables: _Tables, lock: threading.RLock) -> None:
        self._tables = tables
        self._lock = lock

    def create(self, dataset: Dataset) -> Dataset:
        with self._lock:
            for other in self._tables.datasets.values():
                if other.state_id != dataset.state_id or other.product_id != dataset.product_id:
                    continue
                if (
                    dataset.lifecycle is DatasetLifecycle.DRAFT
                    and dataset.is_active_draft
                    and other.lifecycle is DatasetLifecycle.DRAFT
                    and other.is_active_draft
                ):
                    raise UniqueConstraintError(ACTIVE_DRAFT_CONSTRAINT)
                if (
                    dataset.published_version is not None
                    and other.published_version == dataset.published_version
                ):
                    raise UniqueConstraintError(PUBLISHED_VERSION_CONSTRAINT)
            stored = dataset.model_copy(deep=True, update={"rows": []})
            self._tables.touch("datasets", stored.id)
            self._tables.touch("rows", stored.id)
            self._tables.datasets[stored.id] = stored
            self._tables.rows[stored.id] = []
            return stored.model_copy(deep=True)

    def get(self, dataset_id: str, state_id: str | None = None) -> Dataset | None:
        with self._lock:
            dataset = self._tables.datasets.get(dataset_id)
            if dataset is None or (state_id is not None and dataset.state_id != state_id):
                return None
            return dataset.model_copy(deep=True)

    def find_active_draft(self, state_id: str, product_id: str) -> Dataset | None:
        with self._lock:
            for dataset in self._tables.datasets.values():
                if (
                    dataset.state_id == state_id
                    and dataset.product_id == product_id
                    and dataset.lifecycle is DatasetLifecycle.DRAFT
                    and dataset.is_active_draft
                ):
                    return dataset.model_copy(deep=True)
            return None

    def list(
        self,
        state_id: str | None = None,
        product_ids: Collection[str] | None = None,
        template_ids: Collection[str] | None = None,
        lifecycle: DatasetLifecycle | None = None,
    ) -> list[Dataset]:
        with self._lock:
            datasets = list(self._tables.datasets.values())
            if state_id is not None:
                datasets = [d for d in datasets if d.state_id == state_id]
            if product_ids is not None:
                datasets = [d for d in datasets if d.product_id in product_ids]
            if template_ids is not None:
                datasets = [d for d in datasets if d.template_id in template_ids]
            if lifecycle is not None:
                datasets = [d for d in datasets if d.lifecycle is lifecycle]
            datasets.sort(key=lambda d: d.updated_at, reverse=True)
            return [d.model_copy(deep=True) for d in datasets]

    def max_published_version(self, state_id: str, product_id: str) -> int | None:
        with self._lock:
            versions = [
                d.published_version
                for d in self._tables.datasets.values()
                if d.state_id == state_id
                and d.product_id == product_id
                and d.lifecycle is DatasetLifecycle.PUBLISHED
                and d.published_version is not None
            ]
            return max(versions) if versions else None

    def bump_version(self, dataset_id: str, expected_version: int) -> Dataset | None:
        with self._lock:
            dataset = self._tables.datasets.get(dataset_id)
            if dataset is None or dataset.version != expected_version:
                return None
            self._tables.touch("datasets", dataset_id)
            dataset.version = expected_version + 1
            dataset.updated_at = datetime.now(UTC)
            return dataset.model_copy(deep=True)

    def list_rows(self, dataset_id: str) -> list[DatasetRow]:
        with self._lock:
            rows = self._tables.rows.get(dataset_id, [])
            return sorted((r.model_copy(deep=True) for r in rows), key=lambda r: r.row_index)

    def insert_rows(self, dataset_id: str, rows: RowValues) -> None:
        with self._lock:
            self._tables.touch("rows", dataset_id)
            bucket = self._tables.rows.setdefault(dataset_id, [])
            for row_index, data in iter_row_values(rows):
                bucket.append(DatasetRow(dataset_id=dataset_id, row_index=row_index, data=data))

    def replace_rows(self, dataset_id: str, rows: RowValues) -> None:
        with self._lock:
            self._tables.touch("rows", dataset_id)
            self._tables.rows[dataset_id] = []
            self.insert_rows(dataset_id, rows)


class InMemoryStorage(Storage):
    """Thread-safe in-memory store.

    A single re-entrant lock serializes every operation.  A transaction
    holds the lock for its whole duration and journals the prior value of
    every entry it writes; leaving with an exception puts those entries
    back.  A nested transaction joins the outer one.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables = _Tables()
        self.states = InMemoryStateRepository(self._tables, self._lock)
        self.products = InMemoryProductRepository(self._tables, self._lock)
        self.state_products = InMemoryStateProductRepository(self._tables, self._lock)
        self.templates = InMemoryTemplateRepository(self._tables, self._lock)
        self.datasets = InMemoryDatasetRepository(self._tables, self._lock)

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStorage]:
        with self._lock:
            if self._tables.journal is not None:
                yield self
                return
            journal: dict[tuple[str, Any], Any] = {}
            self._tables.journal = journal
            try:
                yield self
            except BaseException:
                self._tables.rollback(journal)
                raise
            finally:
                self._tables.journal = None
