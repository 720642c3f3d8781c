"""Template catalog lookup and schema parsing."""

from __future__ import annotations

from pydantic import ValidationError

from stateset.models.platform import Template, TemplateDefinition
from stateset.service.errors import InternalSchemaError, NotFoundError
from stateset.service.scope import normalize_code
from stateset.storage.repository import Storage


class TemplateCatalog:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def resolve(self, product_id: str, template_code: str | None = None) -> Template:
        """Active template by explicit code, else the first active one by code order."""
        code = normalize_code(template_code)
        candidates = [
            t for t in self._storage.templates.list(product_id=product_id, code=code) if t.is_active
        ]
        if not candidates:
            details = {"product_id": product_id}
            if code is not None:
                details["template_code"] = code
            raise NotFoundError("Active template not found for product", details=details)
        return candidates[0]

    def get(self, template_id: str) -> Template:
        template = self._storage.templates.get(template_id)
        if template is None:
            # A dataset pointing at a missing template is a data integrity fault.
            raise InternalSchemaError(
                "Dataset template is missing", details={"template_id": template_id}
            )
        return template

    @staticmethod
    def parse(template: Template) -> TemplateDefinition:
        try:
            return TemplateDefinition.model_validate(template.definition)
        except ValidationError as exc:
            raise InternalSchemaError(
                "Dataset template schema is invalid", details={"template_id": template.id}
            ) from exc

    def definition_for(self, template_id: str) -> TemplateDefinition:
        return self.parse(self.get(template_id))
