"""
SQLite-backed storage implementation.

Stores every entity in one SQLite database file.  Uniqueness invariants of
the dataset engine live in the schema itself:

- ``ux_datasets_active_draft``: partial unique index, one active DRAFT per
  (state, product)
- ``ux_datasets_published_version``: unique published version per
  (state, product)

Connections are opened per operation in autocommit mode.  A transaction
pins one connection and runs inside ``BEGIN IMMEDIATE`` so writers are
serialized by SQLite's reserved lock.

Table schema:
    states(id, code UNIQUE, name, is_active, created_at)
    products(id, code UNIQUE, name, description, is_active, created_at, updated_at)
    state_products(state_id, product_id, enabled, updated_at) PK (state_id, product_id)
    templates(id, product_id, code, name, is_active, definition_json, created_at)
        UNIQUE (product_id, code)
    datasets(id, state_id, product_id, template_id, name, lifecycle, version,
             is_active_draft, published_version, metadata_json,
             created_by_user_id, created_at, updated_at)
    dataset_rows(id, dataset_id, row_index, data_json)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable, Collection, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from datetime import UTC, datetime
from pathlib import Path
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
    StorageError,
    TemplateRepository,
    UniqueConstraintError,
    iter_row_values,
)

logger = logging.getLogger("stateset.storage")

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS states (
        id TEXT PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        description TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS state_products (
        state_id TEXT NOT NULL REFERENCES states(id),
        product_id TEXT NOT NULL REFERENCES products(id),
        enabled INTEGER NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (state_id, product_id)
    );

    CREATE TABLE IF NOT EXISTS templates (
        id TEXT PRIMARY KEY,
        product_id TEXT NOT NULL REFERENCES products(id),
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        definition_json TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        UNIQUE (product_id, code)
    );

    CREATE TABLE IF NOT EXISTS datasets (
        id TEXT PRIMARY KEY,
        state_id TEXT NOT NULL REFERENCES states(id),
        product_id TEXT NOT NULL REFERENCES products(id),
        template_id TEXT NOT NULL REFERENCES templates(id),
        name TEXT NOT NULL,
        lifecycle TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        is_active_draft INTEGER NOT NULL DEFAULT 0,
        published_version INTEGER,
        metadata_json TEXT NOT NULL DEFAULT '{}',
        created_by_user_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE UNIQUE INDEX IF NOT EXISTS ux_datasets_active_draft
        ON datasets(state_id, product_id)
        WHERE lifecycle = 'DRAFT' AND is_active_draft = 1;

    CREATE UNIQUE INDEX IF NOT EXISTS ux_datasets_published_version
        ON datasets(state_id, product_id, published_version)
        WHERE published_version IS NOT NULL;

    CREATE INDEX IF NOT EXISTS idx_datasets_updated ON datasets(updated_at DESC);

    CREATE TABLE IF NOT EXISTS dataset_rows (
        id TEXT PRIMARY KEY,
        dataset_id TEXT NOT NULL REFERENCES datasets(id),
        row_index INTEGER NOT NULL,
        data_json TEXT NOT NULL DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_dataset_rows_dataset ON dataset_rows(dataset_id, row_index);
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _ts(value: datetime) -> str:
    return value.isoformat()


def _constraint_for(exc: sqlite3.IntegrityError) -> str | None:
    """Map an SQLite integrity message to a named constraint."""
    message = str(exc)
    if "UNIQUE constraint failed" not in message:
        return None
    if "published_version" in message:
        return PUBLISHED_VERSION_CONSTRAINT
    if "datasets.state_id" in message:
        return ACTIVE_DRAFT_CONSTRAINT
    if "states.code" in message:
        return STATE_CODE_CONSTRAINT
    return message


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.IntegrityError as exc:
        constraint = _constraint_for(exc)
        if constraint is not None:
            raise UniqueConstraintError(constraint) from exc
        raise StorageError(str(exc)) from exc
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc


class _SqliteRepository:
    def __init__(self, connect: ConnectionFactory) -> None:
        self._connect = connect

    def _fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        with _translate_errors(), self._connect() as conn:
            return conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with _translate_errors(), self._connect() as conn:
            return conn.execute(sql, params).fetchall()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        with _translate_errors(), self._connect() as conn:
            return conn.execute(sql, params).rowcount


class SqliteStateRepository(_SqliteRepository, StateRepository):
    @staticmethod
    def _to_state(row: sqlite3.Row) -> State:
        return State.model_validate(dict(row))

    def create(self, state: State) -> State:
        self._execute(
            "INSERT INTO states (id, code, name, is_active, created_at) VALUES (?, ?, ?, ?, ?)",
            (state.id, state.code, state.name, int(state.is_active), _ts(state.created_at)),
        )
        return state

    def get(self, state_id: str) -> State | None:
        row = self._fetchone("SELECT * FROM states WHERE id = ?", (state_id,))
        return self._to_state(row) if row else None

    def get_by_code(self, code: str) -> State | None:
        row = self._fetchone("SELECT * FROM states WHERE code = ?", (code,))
        return self._to_state(row) if row else None

    def list(self) -> list[State]:
        return [self._to_state(r) for r in self._fetchall("SELECT * FROM states ORDER BY code")]


class SqliteProductRepository(_SqliteRepository, ProductRepository):
    @staticmethod
    def _to_product(row: sqlite3.Row) -> Product:
        return Product.model_validate(dict(row))

    def save(self, product: Product) -> Product:
        self._execute(
            """
            INSERT INTO products (id, code, name, description, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                code = excluded.code,
                name = excluded.name,
                description = excluded.description,
                is_active = excluded.is_active,
                updated_at = excluded.updated_at
            """,
            (
                product.id,
                product.code,
                product.name,
                product.description,
                int(product.is_active),
                _ts(product.created_at),
                _ts(product.updated_at),
            ),
        )
        return product

    def get(self, product_id: str) -> Product | None:
        row = self._fetchone("SELECT * FROM products WHERE id = ?", (product_id,))
        return self._to_product(row) if row else None

    def get_by_code(self, code: str) -> Product | None:
        row = self._fetchone("SELECT * FROM products WHERE code = ?", (code,))
        return self._to_product(row) if row else None

    def list(self) -> list[Product]:
        return [
            self._to_product(r) for r in self._fetchall("SELECT * FROM products ORDER BY code")
        ]


class SqliteStateProductRepository(_SqliteRepository, StateProductRepository):
    @staticmethod
    def _to_link(row: sqlite3.Row) -> StateProduct:
        return StateProduct.model_validate(dict(row))

    def save(self, link: StateProduct) -> StateProduct:
        self._execute(
            """
            INSERT INTO state_products (state_id, product_id, enabled, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(state_id, product_id) DO UPDATE SET
                enabled = excluded.enabled,
                updated_at = excluded.updated_at
            """,
            (link.state_id, link.product_id, int(link.enabled), _ts(link.updated_at)),
        )
        return link

    def get(self, state_id: str, product_id: str) -> StateProduct | None:
        row = self._fetchone(
            "SELECT * FROM state_products WHERE state_id = ? AND product_id = ?",
            (state_id, product_id),
        )
        return self._to_link(row) if row else None

    def list_for_state(self, state_id: str) -> list[StateProduct]:
        rows = self._fetchall("SELECT * FROM state_products WHERE state_id = ?", (state_id,))
        return [self._to_link(r) for r in rows]


class SqliteTemplateRepository(_SqliteRepository, TemplateRepository):
    @staticmethod
    def _to_template(row: sqlite3.Row) -> Template:
        data = dict(row)
        data["definition"] = json.loads(data.pop("definition_json"))
        return Template.model_validate(data)

    def save(self, template: Template) -> Template:
        self._execute(
            """
            INSERT INTO templates (id, product_id, code, name, is_active, definition_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                code = excluded.code,
                name = excluded.name,
                is_active = excluded.is_active,
                definition_json = excluded.definition_json
            """,
            (
                template.id,
                template.product_id,
                template.code,
                template.name,
                int(template.is_active),
                json.dumps(template.definition),
                _ts(template.created_at),
            ),
        )
        return template

    def get(self, template_id: str) -> Template | None:
        row = self._fetchone("SELECT * FROM templates WHERE id = ?", (template_id,))
        return self._to_template(row) if row else None

    def find(self, product_id: str, code: str) -> Template | None:
        row = self._fetchone(
            "SELECT * FROM templates WHERE product_id = ? AND code = ?", (product_id, code)
        )
        return self._to_template(row) if row else None

    def list(self, product_id: str | None = None, code: str | None = None) -> list[Template]:
        clauses: list[str] = []
        params: list[Any] = []
        if product_id:
            clauses.append("product_id = ?")
            params.append(product_id)
        if code:
            clauses.append("code = ?")
            params.append(code)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetchall(f"SELECT * FROM templates {where} ORDER BY code", tuple(params))
        return [self._to_template(r) for r in rows]


class SqliteDatasetRepository(_SqliteRepository, DatasetRepository):
    @staticmethod
    def _to_dataset(row: sqlite3.Row) -> Dataset:
        data = dict(row)
        data["metadata"] = json.loads(data.pop("metadata_json"))
        return Dataset.model_validate(data)

    @staticmethod
    def _to_row(row: sqlite3.Row) -> DatasetRow:
        data = dict(row)
        data["data"] = json.loads(data.pop("data_json"))
        return DatasetRow.model_validate(data)

    def create(self, dataset: Dataset) -> Dataset:
        self._execute(
            """
            INSERT INTO datasets (id, state_id, product_id, template_id, name, lifecycle,
                                  version, is_active_draft, published_version, metadata_json,
                                  created_by_user_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                dataset.id,
                dataset.state_id,
                dataset.product_id,
                dataset.template_id,
                dataset.name,
                dataset.lifecycle.value,
                dataset.version,
                int(dataset.is_active_draft),
                dataset.published_version,
                json.dumps(dataset.metadata),
                dataset.created_by_user_id,
                _ts(dataset.created_at),
                _ts(dataset.updated_at),
            ),
        )
        return dataset.model_copy(update={"rows": []})

    def get(self, dataset_id: str, state_id: str | None = None) -> Dataset | None:
        if state_id is None:
            row = self._fetchone("SELECT * FROM datasets WHERE id = ?", (dataset_id,))
        else:
            row = self._fetchone(
                "SELECT * FROM datasets WHERE id = ? AND state_id = ?", (dataset_id, state_id)
            )
        return self._to_dataset(row) if row else None

    def find_active_draft(self, state_id: str, product_id: str) -> Dataset | None:
        row = self._fetchone(
            """
            SELECT * FROM datasets
            WHERE state_id = ? AND product_id = ? AND lifecycle = 'DRAFT' AND is_active_draft = 1
            """,
            (state_id, product_id),
        )
        return self._to_dataset(row) if row else None

    def list(
        self,
        state_id: str | None = None,
        product_ids: Collection[str] | None = None,
        template_ids: Collection[str] | None = None,
        lifecycle: DatasetLifecycle | None = None,
    ) -> list[Dataset]:
        clauses: list[str] = []
        params: list[Any] = []
        if state_id is not None:
            clauses.append("state_id = ?")
            params.append(state_id)
        for column, values in (("product_id", product_ids), ("template_id", template_ids)):
            if values is None:
                continue
            values = list(values)
            if not values:
                return []
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        if lifecycle is not None:
            clauses.append("lifecycle = ?")
            params.append(lifecycle.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetchall(
            f"SELECT * FROM datasets {where} ORDER BY updated_at DESC", tuple(params)
        )
        return [self._to_dataset(r) for r in rows]

    def max_published_version(self, state_id: str, product_id: str) -> int | None:
        row = self._fetchone(
            """
            SELECT MAX(published_version) AS max_version FROM datasets
            WHERE state_id = ? AND product_id = ? AND lifecycle = 'PUBLISHED'
            """,
            (state_id, product_id),
        )
        return row["max_version"] if row else None

    def bump_version(self, dataset_id: str, expected_version: int) -> Dataset | None:
        changed = self._execute(
            "UPDATE datasets SET version = version + 1, updated_at = ? WHERE id = ? AND version = ?",
            (_now(), dataset_id, expected_version),
        )
        if changed == 0:
            return None
        return self.get(dataset_id)

    def list_rows(self, dataset_id: str) -> list[DatasetRow]:
        rows = self._fetchall(
            "SELECT * FROM dataset_rows WHERE dataset_id = ? ORDER BY row_index", (dataset_id,)
        )
        return [self._to_row(r) for r in rows]

    def insert_rows(self, dataset_id: str, rows: RowValues) -> None:
        params = [
            (uuid.uuid4().hex, dataset_id, row_index, json.dumps(data))
            for row_index, data in iter_row_values(rows)
        ]
        if not params:
            return
        with _translate_errors(), self._connect() as conn:
            conn.executemany(
                "INSERT INTO dataset_rows (id, dataset_id, row_index, data_json) VALUES (?, ?, ?, ?)",
                params,
            )

    def replace_rows(self, dataset_id: str, rows: RowValues) -> None:
        self._execute("DELETE FROM dataset_rows WHERE dataset_id = ?", (dataset_id,))
        self.insert_rows(dataset_id, rows)


class SqliteStorage(Storage):
    """SQLite store backed by a database file.

    Thread safety:
        Each operation opens its own connection.  Transactions pin a
        connection to the calling thread for their duration.

    Example:
        >>> storage = SqliteStorage("/var/lib/stateset/stateset.db")
        >>> with storage.transaction() as tx:
        ...     tx.datasets.replace_rows(dataset_id, [(0, {"surveyId": "S-1"})])
    """

    def __init__(
        self,
        path: str | Path,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self._local = threading.local()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with _translate_errors(), self._open() as conn:
            conn.executescript(_SCHEMA)
        logger.info("Initialized SQLite storage at %s", self.path)
        self._bind(self._connection)

    def _bind(self, connect: ConnectionFactory) -> None:
        self.states = SqliteStateRepository(connect)
        self.products = SqliteProductRepository(connect)
        self.state_products = SqliteStateProductRepository(connect)
        self.templates = SqliteTemplateRepository(connect)
        self.datasets = SqliteDatasetRepository(connect)

    @contextmanager
    def _open(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            conn.close()

    def _connection(self) -> AbstractContextManager[sqlite3.Connection]:
        """The current thread's transaction connection, else a fresh one."""
        pinned: sqlite3.Connection | None = getattr(self._local, "conn", None)
        if pinned is not None:
            return nullcontext(pinned)
        return self._open()

    @contextmanager
    def transaction(self) -> Iterator[SqliteStorage]:
        if getattr(self._local, "conn", None) is not None:
            # Nested: join the outer transaction.
            yield self
            return
        with _translate_errors(), self._open() as conn:
            conn.execute("BEGIN IMMEDIATE")
            self._local.conn = conn
            try:
                yield self
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")
            finally:
                self._local.conn = None
