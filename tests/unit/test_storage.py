"""Tests run against every storage backend."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from stateset.models.dataset import Dataset, DatasetLifecycle
from stateset.models.platform import State, TemplateDefinition
from stateset.service.dataset_service import DatasetService
from stateset.settings import Settings
from stateset.storage.memory import InMemoryStorage
from stateset.storage.repository import (
    ACTIVE_DRAFT_CONSTRAINT,
    PUBLISHED_VERSION_CONSTRAINT,
    STATE_CODE_CONSTRAINT,
    Storage,
    UniqueConstraintError,
)
from stateset.storage.sqlite import SqliteStorage
from tests.conftest import FMB_TEMPLATE, Platform


def _template_id(storage: Storage, platform: Platform) -> str:
    template = storage.templates.find(platform.fmb_id, "FMB_DUMP_V1")
    assert template is not None
    return template.id


def _dataset(storage: Storage, platform: Platform, **fields: Any) -> Dataset:
    values: dict[str, Any] = {
        "state_id": platform.rj_id,
        "product_id": platform.fmb_id,
        "template_id": _template_id(storage, platform),
        "name": "FMB Draft",
    }
    values.update(fields)
    return Dataset(**values)


def _published(storage: Storage, platform: Platform, number: int) -> Dataset:
    return _dataset(
        storage,
        platform,
        lifecycle=DatasetLifecycle.PUBLISHED,
        published_version=number,
    )


@pytest.fixture
def storage_with_platform(service: DatasetService, platform: Platform) -> Storage:
    return service.storage


class TestUniqueness:
    def test_state_code(self, storage: Storage) -> None:
        storage.states.create(State(code="RJ", name="Rajasthan"))
        with pytest.raises(UniqueConstraintError) as exc_info:
            storage.states.create(State(code="RJ", name="Again"))
        assert exc_info.value.constraint == STATE_CODE_CONSTRAINT

    def test_one_active_draft(self, storage_with_platform: Storage, platform: Platform) -> None:
        storage = storage_with_platform
        storage.datasets.create(_dataset(storage, platform, is_active_draft=True))
        with pytest.raises(UniqueConstraintError) as exc_info:
            storage.datasets.create(_dataset(storage, platform, is_active_draft=True))
        assert exc_info.value.constraint == ACTIVE_DRAFT_CONSTRAINT

    def test_inactive_drafts_unconstrained(
        self, storage_with_platform: Storage, platform: Platform
    ) -> None:
        storage = storage_with_platform
        storage.datasets.create(_dataset(storage, platform, is_active_draft=True))
        storage.datasets.create(_dataset(storage, platform))
        storage.datasets.create(_dataset(storage, platform))
        assert len(storage.datasets.list(state_id=platform.rj_id)) == 3

    def test_published_version(self, storage_with_platform: Storage, platform: Platform) -> None:
        storage = storage_with_platform
        storage.datasets.create(_published(storage, platform, 1))
        with pytest.raises(UniqueConstraintError) as exc_info:
            storage.datasets.create(_published(storage, platform, 1))
        assert exc_info.value.constraint == PUBLISHED_VERSION_CONSTRAINT
        storage.datasets.create(_published(storage, platform, 2))
        assert storage.datasets.max_published_version(platform.rj_id, platform.fmb_id) == 2

    def test_max_published_version_empty(
        self, storage_with_platform: Storage, platform: Platform
    ) -> None:
        assert storage_with_platform.datasets.max_published_version(
            platform.rj_id, platform.fmb_id
        ) is None


class TestDatasetRepository:
    def test_get_scoped_by_state(self, storage_with_platform: Storage, platform: Platform) -> None:
        storage = storage_with_platform
        created = storage.datasets.create(_dataset(storage, platform))
        assert storage.datasets.get(created.id, state_id=platform.rj_id) is not None
        assert storage.datasets.get(created.id, state_id=platform.mh_id) is None
        assert storage.datasets.get("missing") is None

    def test_bump_version_compare_and_set(
        self, storage_with_platform: Storage, platform: Platform
    ) -> None:
        storage = storage_with_platform
        created = storage.datasets.create(_dataset(storage, platform))

        bumped = storage.datasets.bump_version(created.id, 1)
        assert bumped is not None and bumped.version == 2
        assert storage.datasets.bump_version(created.id, 1) is None
        assert storage.datasets.bump_version("missing", 1) is None
        stored = storage.datasets.get(created.id)
        assert stored is not None and stored.version == 2

    def test_rows_ordered_and_replaced(
        self, storage_with_platform: Storage, platform: Platform
    ) -> None:
        storage = storage_with_platform
        created = storage.datasets.create(_dataset(storage, platform))
        storage.datasets.insert_rows(created.id, [(5, {"a": 1}), (0, {"a": 2}), (2, {"a": 3})])
        assert [r.row_index for r in storage.datasets.list_rows(created.id)] == [0, 2, 5]

        storage.datasets.replace_rows(created.id, [(1, {"nested": {"x": [1, 2]}})])
        rows = storage.datasets.list_rows(created.id)
        assert [(r.row_index, r.data) for r in rows] == [(1, {"nested": {"x": [1, 2]}})]
        assert rows[0].dataset_id == created.id

    def test_list_filters(self, storage_with_platform: Storage, platform: Platform) -> None:
        storage = storage_with_platform
        draft = storage.datasets.create(_dataset(storage, platform, is_active_draft=True))
        published = storage.datasets.create(_published(storage, platform, 1))

        drafts = storage.datasets.list(lifecycle=DatasetLifecycle.DRAFT)
        assert [d.id for d in drafts] == [draft.id]
        by_product = storage.datasets.list(product_ids=[platform.fmb_id])
        assert {d.id for d in by_product} == {draft.id, published.id}
        assert storage.datasets.list(product_ids=[]) == []
        assert storage.datasets.list(state_id=platform.mh_id) == []


class TestTransactions:
    def test_commit(self, storage_with_platform: Storage, platform: Platform) -> None:
        storage = storage_with_platform
        with storage.transaction() as tx:
            created = tx.datasets.create(_dataset(storage, platform))
            tx.datasets.insert_rows(created.id, [(0, {"a": 1})])
        assert storage.datasets.get(created.id) is not None
        assert len(storage.datasets.list_rows(created.id)) == 1

    def test_exception_rolls_back_every_write(
        self, storage_with_platform: Storage, platform: Platform
    ) -> None:
        storage = storage_with_platform
        created = storage.datasets.create(_dataset(storage, platform))
        storage.datasets.insert_rows(created.id, [(0, {"a": 1})])

        with pytest.raises(RuntimeError), storage.transaction() as tx:
            tx.datasets.bump_version(created.id, 1)
            tx.datasets.replace_rows(created.id, [(7, {"b": 2})])
            tx.datasets.create(_published(storage, platform, 1))
            raise RuntimeError("abort")

        stored = storage.datasets.get(created.id)
        assert stored is not None and stored.version == 1
        assert [r.row_index for r in storage.datasets.list_rows(created.id)] == [0]
        assert storage.datasets.list(lifecycle=DatasetLifecycle.PUBLISHED) == []

    def test_nested_transaction_joins_outer(
        self, storage_with_platform: Storage, platform: Platform
    ) -> None:
        storage = storage_with_platform
        created = storage.datasets.create(_dataset(storage, platform))

        with pytest.raises(RuntimeError), storage.transaction() as outer:
            with outer.transaction() as inner:
                inner.datasets.bump_version(created.id, 1)
            raise RuntimeError("abort")

        stored = storage.datasets.get(created.id)
        assert stored is not None and stored.version == 1


class TestInMemoryJournal:
    @pytest.fixture
    def memory(self, settings: Settings) -> tuple[DatasetService, Platform]:
        service = DatasetService(InMemoryStorage(), settings)
        admin = service.platform
        rj = admin.create_state("RJ", "Rajasthan")
        fmb = admin.create_product("FMB", "Foundational Literacy and Numeracy")
        admin.set_state_product_enablement("RJ", "FMB", True)
        admin.register_template("FMB", TemplateDefinition.model_validate(FMB_TEMPLATE))
        return service, Platform(rj_id=rj.id, mh_id="", fmb_id=fmb.id, svy_id="")

    def test_journal_holds_only_written_entries(
        self, memory: tuple[DatasetService, Platform]
    ) -> None:
        service, platform = memory
        storage = service.storage
        target = storage.datasets.create(_dataset(storage, platform, is_active_draft=True))
        other = storage.datasets.create(_dataset(storage, platform))
        storage.datasets.insert_rows(other.id, [(0, {"a": 1})])
        tables = storage._tables  # noqa: SLF001

        with storage.transaction() as tx:
            tx.datasets.bump_version(target.id, 1)
            tx.datasets.replace_rows(target.id, [(0, {"b": 2})])
            assert tables.journal is not None
            assert set(tables.journal) == {("datasets", target.id), ("rows", target.id)}

        assert tables.journal is None

    def test_rollback_restores_only_touched_entries(
        self, memory: tuple[DatasetService, Platform]
    ) -> None:
        service, platform = memory
        storage = service.storage
        target = storage.datasets.create(_dataset(storage, platform, is_active_draft=True))
        storage.datasets.insert_rows(target.id, [(0, {"a": 1})])

        with pytest.raises(RuntimeError), storage.transaction() as tx:
            tx.datasets.bump_version(target.id, 1)
            tx.datasets.insert_rows(target.id, [(1, {"a": 2})])
            snapshot = tx.datasets.create(_published(storage, platform, 1))
            tx.datasets.insert_rows(snapshot.id, [(0, {"a": 1})])
            raise RuntimeError("abort")

        stored = storage.datasets.get(target.id)
        assert stored is not None and stored.version == 1
        assert [r.data for r in storage.datasets.list_rows(target.id)] == [{"a": 1}]
        assert storage.datasets.get(snapshot.id) is None
        assert storage.datasets.list_rows(snapshot.id) == []
        assert storage.states.get_by_code("RJ") is not None


class TestSqliteStorage:
    def test_data_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "stateset.db"
        first = SqliteStorage(path)
        first.states.create(State(code="RJ", name="Rajasthan"))
        first.close()

        second = SqliteStorage(path)
        state = second.states.get_by_code("RJ")
        assert state is not None and state.name == "Rajasthan"
        second.close()
