"""Tests for the pydantic domain models and error payloads."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stateset.models import (
    CallerContext,
    CallerRole,
    ColumnType,
    Dataset,
    DatasetLifecycle,
    TemplateColumn,
    TemplateDefinition,
)
from stateset.service.errors import (
    DomainError,
    InternalError,
    NotFoundError,
    VersionConflictError,
)
from tests.conftest import FMB_TEMPLATE


class TestTemplateDefinition:
    def test_aliases(self) -> None:
        definition = TemplateDefinition.model_validate(FMB_TEMPLATE)
        assert definition.product_code == "FMB"
        assert definition.columns[0].max_length == 64
        assert definition.columns[6].type is ColumnType.DATE

    def test_column_defaults(self) -> None:
        column = TemplateColumn(key="note", label="Note")
        assert column.type is ColumnType.STRING
        assert column.required is False
        assert column.max_length is None

    def test_populate_by_name(self) -> None:
        column = TemplateColumn(key="note", label="Note", max_length=10)
        assert column.model_dump(by_alias=True)["maxLength"] == 10

    def test_empty_columns_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TemplateDefinition.model_validate(dict(FMB_TEMPLATE, columns=[]))

    def test_unknown_column_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TemplateColumn.model_validate({"key": "x", "label": "X", "type": "uuid"})

    def test_non_positive_max_length_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TemplateColumn.model_validate({"key": "x", "label": "X", "maxLength": 0})


class TestCallerContext:
    def test_is_admin(self) -> None:
        assert CallerContext(user_id="a", role=CallerRole.ADMIN).is_admin
        assert not CallerContext(user_id="u", role="state_user", state_id="s").is_admin

    def test_frozen(self) -> None:
        caller = CallerContext(user_id="u", role=CallerRole.STATE_USER, state_id="s")
        with pytest.raises(ValidationError):
            caller.state_id = "other"

    def test_unknown_role_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CallerContext(user_id="u", role="superuser")


class TestDataset:
    def test_defaults(self) -> None:
        dataset = Dataset(state_id="s", product_id="p", template_id="t", name="Draft")
        assert dataset.lifecycle is DatasetLifecycle.DRAFT
        assert dataset.version == 1
        assert dataset.published_version is None
        assert dataset.is_published is False
        assert dataset.rows == []
        assert dataset.created_at.tzinfo is not None

    def test_ids_are_unique(self) -> None:
        first = Dataset(state_id="s", product_id="p", template_id="t", name="A")
        second = Dataset(state_id="s", product_id="p", template_id="t", name="B")
        assert first.id != second.id


class TestDomainErrors:
    def test_payload_without_details(self) -> None:
        error = NotFoundError("Dataset not found")
        assert error.status == 404
        assert error.to_payload() == {"error": "Dataset not found", "kind": "NotFound"}

    def test_payload_with_details(self) -> None:
        error = VersionConflictError(3, 5)
        assert error.status == 409
        assert error.kind == "Conflict"
        assert error.to_payload() == {
            "error": "Dataset version mismatch",
            "kind": "Conflict",
            "details": {"expected_version": 3, "actual_version": 5},
        }

    def test_internal_error_defaults(self) -> None:
        error = InternalError("Failed to publish")
        assert isinstance(error, DomainError)
        assert error.status == 500
        assert error.kind == "InternalError"
