"""Shared test fixtures for StateSet."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from stateset.models.caller import CallerContext, CallerRole
from stateset.models.dataset import RowInput
from stateset.models.platform import TemplateDefinition
from stateset.service.dataset_service import DatasetService
from stateset.settings import Settings
from stateset.storage.memory import InMemoryStorage
from stateset.storage.repository import Storage
from stateset.storage.sqlite import SqliteStorage

REPO_ROOT = Path(__file__).parent.parent
SEED_EXAMPLE = REPO_ROOT / "seed.example.yaml"

FMB_TEMPLATE: dict[str, Any] = {
    "code": "FMB_DUMP_V1",
    "name": "FMB Dump Template",
    "productCode": "FMB",
    "columns": [
        {"key": "surveyId", "label": "Survey ID", "type": "string", "required": True, "maxLength": 64},
        {"key": "surveyName", "label": "Survey Name", "type": "string", "required": True, "maxLength": 180},
        {"key": "state", "label": "State", "type": "string", "required": True, "maxLength": 64},
        {"key": "district", "label": "District", "type": "string", "required": True, "maxLength": 64},
        {"key": "block", "label": "Block", "type": "string", "required": False, "maxLength": 64},
        {"key": "village", "label": "Village", "type": "string", "required": False, "maxLength": 120},
        {"key": "recordDate", "label": "Record Date", "type": "date", "required": False},
        {"key": "submissionCount", "label": "Submission Count", "type": "number", "required": False},
        {"key": "isActive", "label": "Is Active", "type": "boolean", "required": False},
    ],
}

SURVEY_ID_ONLY_TEMPLATE: dict[str, Any] = {
    "code": "SVY_IDS_V1",
    "name": "Survey IDs",
    "productCode": "SVY",
    "columns": [{"key": "surveyId", "label": "Survey ID", "required": True, "maxLength": 64}],
}


def fmb_row(row_index: int, **overrides: Any) -> RowInput:
    """A row that passes FMB_DUMP_V1 validation, with optional overrides."""
    data: dict[str, Any] = {
        "surveyId": f"S-{row_index:04d}",
        "surveyName": f"Baseline survey {row_index}",
        "state": "Rajasthan",
        "district": "Jaipur",
        "submissionCount": row_index * 3,
        "isActive": True,
    }
    data.update(overrides)
    return RowInput(row_index=row_index, data=data)


@dataclass
class Platform:
    """Ids of the seeded platform catalog."""

    rj_id: str
    mh_id: str
    fmb_id: str
    svy_id: str


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[Storage]:
    """Every storage backend; tests using it run once per backend."""
    if request.param == "memory":
        store: Storage = InMemoryStorage()
    else:
        store = SqliteStorage(tmp_path / "stateset.db")
    yield store
    store.close()


@pytest.fixture
def service(storage: Storage, settings: Settings) -> DatasetService:
    return DatasetService(storage, settings)


@pytest.fixture
def platform(service: DatasetService) -> Platform:
    """RJ has FMB enabled; MH has SVY enabled; FMB is not enabled for MH."""
    admin = service.platform
    rj = admin.create_state("RJ", "Rajasthan")
    mh = admin.create_state("MH", "Maharashtra")
    fmb = admin.create_product("FMB", "Foundational Literacy and Numeracy")
    svy = admin.create_product("SVY", "Survey Registry")
    admin.set_state_product_enablement("RJ", "FMB", True)
    admin.set_state_product_enablement("MH", "SVY", True)
    admin.set_state_product_enablement("RJ", "SVY", True)
    admin.register_template("FMB", TemplateDefinition.model_validate(FMB_TEMPLATE))
    admin.register_template("SVY", TemplateDefinition.model_validate(SURVEY_ID_ONLY_TEMPLATE))
    return Platform(rj_id=rj.id, mh_id=mh.id, fmb_id=fmb.id, svy_id=svy.id)


@pytest.fixture
def admin() -> CallerContext:
    return CallerContext(user_id="admin-1", role=CallerRole.ADMIN)


@pytest.fixture
def rj_user(platform: Platform) -> CallerContext:
    return CallerContext(user_id="rj-user", role=CallerRole.STATE_USER, state_id=platform.rj_id)


@pytest.fixture
def mh_user(platform: Platform) -> CallerContext:
    return CallerContext(user_id="mh-user", role=CallerRole.STATE_USER, state_id=platform.mh_id)


@pytest.fixture
def unbound_user() -> CallerContext:
    return CallerContext(user_id="lost-user", role=CallerRole.STATE_USER)
