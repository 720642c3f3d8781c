"""Unit tests for platform administration."""

from __future__ import annotations

import pytest

from stateset.models.caller import CallerContext, CallerRole
from stateset.models.platform import TemplateDefinition
from stateset.service.dataset_service import DatasetService
from stateset.service.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from tests.conftest import FMB_TEMPLATE, Platform


class TestStates:
    def test_create_state_normalizes_code(self, service: DatasetService) -> None:
        state = service.platform.create_state(" ka ", " Karnataka ")
        assert state.code == "KA"
        assert state.name == "Karnataka"
        assert state.is_active is True

    def test_duplicate_code_conflicts(self, service: DatasetService) -> None:
        service.platform.create_state("KA", "Karnataka")
        with pytest.raises(ConflictError, match="already exists"):
            service.platform.create_state("ka", "Karnataka again")

    def test_blank_fields_invalid(self, service: DatasetService) -> None:
        with pytest.raises(InvalidRequestError):
            service.platform.create_state(" ", "Name")
        with pytest.raises(InvalidRequestError):
            service.platform.create_state("KA", "")


class TestProducts:
    def test_create_is_upsert_and_reactivates(self, service: DatasetService) -> None:
        first = service.platform.create_product("abc", "Alpha", description="first")
        service.storage.products.save(first.model_copy(update={"is_active": False}))

        second = service.platform.create_product("ABC", "Alpha Renamed")

        assert second.id == first.id
        assert second.name == "Alpha Renamed"
        assert second.description == "first"
        assert second.is_active is True
        assert [p.code for p in service.storage.products.list()] == ["ABC"]


class TestEnablement:
    def test_unknown_state_not_found(self, service: DatasetService) -> None:
        with pytest.raises(NotFoundError, match='State "ZZ" does not exist'):
            service.platform.set_state_product_enablement("zz", "FMB", True)

    def test_product_upserted_on_enable(self, service: DatasetService) -> None:
        service.platform.create_state("KA", "Karnataka")
        result = service.platform.set_state_product_enablement(
            "KA", "new", True, product_name="New Product"
        )
        assert result.product.code == "NEW"
        assert result.product.name == "New Product"
        assert result.link.enabled is True
        assert service.storage.products.get_by_code("NEW") is not None

    def test_product_name_defaults_to_code(self, service: DatasetService) -> None:
        service.platform.create_state("KA", "Karnataka")
        result = service.platform.set_state_product_enablement("KA", "XYZ", False)
        assert result.product.name == "XYZ"
        assert result.link.enabled is False

    def test_toggle(self, service: DatasetService, platform: Platform) -> None:
        service.platform.set_state_product_enablement("RJ", "FMB", False)
        link = service.storage.state_products.get(platform.rj_id, platform.fmb_id)
        assert link is not None and link.enabled is False
        service.platform.set_state_product_enablement("RJ", "FMB", True)
        link = service.storage.state_products.get(platform.rj_id, platform.fmb_id)
        assert link is not None and link.enabled is True

    def test_list_enabled_products_for_state(
        self, service: DatasetService, platform: Platform
    ) -> None:
        enabled = service.platform.list_enabled_products_for_state(platform.rj_id)
        assert [e.product.code for e in enabled] == ["FMB", "SVY"]

        svy = service.storage.products.get(platform.svy_id)
        assert svy is not None
        service.storage.products.save(svy.model_copy(update={"is_active": False}))
        enabled = service.platform.list_enabled_products_for_state(platform.rj_id)
        assert [e.product.code for e in enabled] == ["FMB"]


class TestListProducts:
    def test_state_user_sees_enabled_only(
        self, service: DatasetService, platform: Platform, mh_user: CallerContext
    ) -> None:
        listings = service.list_products(mh_user)
        assert [(item.product.code, item.enabled) for item in listings] == [("SVY", True)]

    def test_admin_catalog(
        self, service: DatasetService, platform: Platform, admin: CallerContext
    ) -> None:
        listings = service.list_products(admin)
        assert [(item.product.code, item.enabled) for item in listings] == [
            ("FMB", None),
            ("SVY", None),
        ]

    def test_admin_with_state_adds_flag(
        self, service: DatasetService, platform: Platform, admin: CallerContext
    ) -> None:
        listings = service.list_products(admin, state_code="mh")
        assert [(item.product.code, item.enabled) for item in listings] == [
            ("FMB", False),
            ("SVY", True),
        ]

    def test_admin_unknown_state(
        self, service: DatasetService, platform: Platform, admin: CallerContext
    ) -> None:
        with pytest.raises(NotFoundError):
            service.list_products(admin, state_code="ZZ")

    def test_state_products_view(
        self,
        service: DatasetService,
        platform: Platform,
        admin: CallerContext,
        rj_user: CallerContext,
        unbound_user: CallerContext,
    ) -> None:
        assert service.list_state_products(admin) == []
        assert [e.product.code for e in service.list_state_products(rj_user)] == ["FMB", "SVY"]
        with pytest.raises(ForbiddenError):
            service.list_state_products(unbound_user)


class TestTemplates:
    def test_register_replaces_existing(self, service: DatasetService, platform: Platform) -> None:
        before = service.storage.templates.find(platform.fmb_id, "FMB_DUMP_V1")
        assert before is not None

        payload = dict(FMB_TEMPLATE, name="FMB Dump Template v1.1")
        updated = service.platform.register_template(
            "fmb", TemplateDefinition.model_validate(payload)
        )

        assert updated.id == before.id
        assert updated.name == "FMB Dump Template v1.1"
        assert updated.definition["productCode"] == "FMB"
        assert updated.definition["columns"][0]["maxLength"] == 64
        assert [t.code for t in service.platform.list_templates("FMB")] == ["FMB_DUMP_V1"]

    def test_product_code_mismatch(self, service: DatasetService, platform: Platform) -> None:
        with pytest.raises(InvalidRequestError, match="does not match"):
            service.platform.register_template(
                "SVY", TemplateDefinition.model_validate(FMB_TEMPLATE)
            )

    def test_unknown_product(self, service: DatasetService) -> None:
        with pytest.raises(NotFoundError):
            service.platform.register_template(
                "FMB", TemplateDefinition.model_validate(FMB_TEMPLATE)
            )

    def test_stored_definition_round_trips(
        self, service: DatasetService, platform: Platform
    ) -> None:
        template = service.storage.templates.find(platform.fmb_id, "FMB_DUMP_V1")
        assert template is not None
        parsed = TemplateDefinition.model_validate(template.definition)
        assert [c.key for c in parsed.columns][:2] == ["surveyId", "surveyName"]


class TestAdminRoleChecks:
    @pytest.mark.parametrize(
        "call",
        [
            lambda s, c: s.create_state(c, "KA", "Karnataka"),
            lambda s, c: s.create_product(c, "ABC", "Alpha"),
            lambda s, c: s.set_state_product_enablement(c, "RJ", "FMB", False),
            lambda s, c: s.register_template(
                c, "FMB", TemplateDefinition.model_validate(FMB_TEMPLATE)
            ),
        ],
    )
    def test_state_user_forbidden(
        self, service: DatasetService, platform: Platform, rj_user: CallerContext, call
    ) -> None:
        with pytest.raises(ForbiddenError, match="Admin role required"):
            call(service, rj_user)

    def test_admin_allowed(self, service: DatasetService, admin: CallerContext) -> None:
        assert service.create_state(admin, "KA", "Karnataka").code == "KA"


class TestDescribeCaller:
    def test_state_user(
        self, service: DatasetService, platform: Platform, rj_user: CallerContext
    ) -> None:
        profile = service.describe_caller(rj_user)
        assert profile.user_id == "rj-user"
        assert profile.role is CallerRole.STATE_USER
        assert profile.state is not None and profile.state.code == "RJ"

    def test_admin_without_state(self, service: DatasetService, admin: CallerContext) -> None:
        profile = service.describe_caller(admin)
        assert profile.role is CallerRole.ADMIN
        assert profile.state is None

    def test_unbound_state_user_forbidden(
        self, service: DatasetService, unbound_user: CallerContext
    ) -> None:
        with pytest.raises(ForbiddenError):
            service.describe_caller(unbound_user)

    def test_dangling_state_assignment_forbidden(self, service: DatasetService) -> None:
        caller = CallerContext(user_id="u", role=CallerRole.STATE_USER, state_id="gone")
        with pytest.raises(ForbiddenError, match="assignment is invalid"):
            service.describe_caller(caller)
