"""Abstract repository interfaces for persistence.

The dataset engine is written against these interfaces only.  A store
must provide:

- the uniqueness constraints named below, reported as
  :class:`UniqueConstraintError`;
- :meth:`Storage.transaction`, an all-or-nothing unit of work that does
  not interleave with other transactions' writes.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Collection, Iterator, Sequence
from contextlib import AbstractContextManager
from typing import Any

from stateset.models.dataset import Dataset, DatasetLifecycle, DatasetRow
from stateset.models.platform import Product, State, StateProduct, Template

# At most one DRAFT dataset with is_active_draft per (state, product).
ACTIVE_DRAFT_CONSTRAINT = "datasets_active_draft"
# published_version is unique per (state, product).
PUBLISHED_VERSION_CONSTRAINT = "datasets_published_version"
STATE_CODE_CONSTRAINT = "states_code"

RowValues = Sequence[tuple[int, dict[str, Any]]]


class StorageError(Exception):
    """Raised for any failure inside a storage backend."""


class UniqueConstraintError(StorageError):
    """Raised when a write would violate a uniqueness constraint."""

    def __init__(self, constraint: str) -> None:
        self.constraint = constraint
        super().__init__(f"Unique constraint violated: {constraint}")


class StateRepository(ABC):
    @abstractmethod
    def create(self, state: State) -> State: ...

    @abstractmethod
    def get(self, state_id: str) -> State | None: ...

    @abstractmethod
    def get_by_code(self, code: str) -> State | None: ...

    @abstractmethod
    def list(self) -> list[State]: ...


class ProductRepository(ABC):
    @abstractmethod
    def save(self, product: Product) -> Product:
        """Insert or update by id."""

    @abstractmethod
    def get(self, product_id: str) -> Product | None: ...

    @abstractmethod
    def get_by_code(self, code: str) -> Product | None: ...

    @abstractmethod
    def list(self) -> list[Product]:
        """All products ordered by code."""


class StateProductRepository(ABC):
    @abstractmethod
    def save(self, link: StateProduct) -> StateProduct:
        """Insert or update by (state_id, product_id)."""

    @abstractmethod
    def get(self, state_id: str, product_id: str) -> StateProduct | None: ...

    @abstractmethod
    def list_for_state(self, state_id: str) -> list[StateProduct]: ...


class TemplateRepository(ABC):
    @abstractmethod
    def save(self, template: Template) -> Template:
        """Insert or update by id."""

    @abstractmethod
    def get(self, template_id: str) -> Template | None: ...

    @abstractmethod
    def find(self, product_id: str, code: str) -> Template | None:
        """Template by (product, code) regardless of ``is_active``."""

    @abstractmethod
    def list(self, product_id: str | None = None, code: str | None = None) -> list[Template]:
        """Templates ordered by code."""


class DatasetRepository(ABC):
    @abstractmethod
    def create(self, dataset: Dataset) -> Dataset:
        """Insert a dataset (rows are ignored).

        Raises :class:`UniqueConstraintError` for
        ``ACTIVE_DRAFT_CONSTRAINT`` and ``PUBLISHED_VERSION_CONSTRAINT``.
        """

    @abstractmethod
    def get(self, dataset_id: str, state_id: str | None = None) -> Dataset | None:
        """Dataset by id, optionally restricted to one state.  No rows."""

    @abstractmethod
    def find_active_draft(self, state_id: str, product_id: str) -> Dataset | None: ...

    @abstractmethod
    def list(
        self,
        state_id: str | None = None,
        product_ids: Collection[str] | None = None,
        template_ids: Collection[str] | None = None,
        lifecycle: DatasetLifecycle | None = None,
    ) -> list[Dataset]:
        """Datasets matching every given filter, most recently updated first."""

    @abstractmethod
    def max_published_version(self, state_id: str, product_id: str) -> int | None: ...

    @abstractmethod
    def bump_version(self, dataset_id: str, expected_version: int) -> Dataset | None:
        """Compare-and-set ``version`` to ``expected_version + 1``.

        Returns the updated dataset, or ``None`` when the stored version no
        longer equals ``expected_version``.
        """

    @abstractmethod
    def list_rows(self, dataset_id: str) -> list[DatasetRow]:
        """Rows ordered by ``row_index``."""

    @abstractmethod
    def insert_rows(self, dataset_id: str, rows: RowValues) -> None: ...

    @abstractmethod
    def replace_rows(self, dataset_id: str, rows: RowValues) -> None:
        """Delete every row of the dataset, then insert ``rows``."""


class Storage(ABC):
    """Bundle of repositories plus the transaction primitive."""

    states: StateRepository
    products: ProductRepository
    state_products: StateProductRepository
    templates: TemplateRepository
    datasets: DatasetRepository

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Storage]:
        """Open a unit of work; the yielded storage sees and writes inside it.

        Leaving the block normally commits, leaving it with an exception
        rolls every write back.
        """

    def close(self) -> None:  # noqa: B027
        """Release backend resources."""


def iter_row_values(rows: RowValues) -> Iterator[tuple[int, dict[str, Any]]]:
    for row_index, data in rows:
        yield int(row_index), copy.deepcopy(dict(data))
