"""Bootstrap data loader: states, products, enablement and templates from YAML."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from stateset.models.platform import TemplateDefinition
from stateset.service.platform import PlatformAdmin

logger = logging.getLogger("stateset.seed")

# ---------------------------------------------------------------------------
# Safety limits
# ---------------------------------------------------------------------------

_MAX_DOCUMENT_SIZE = 1_000_000  # 1M characters
_MAX_DEPTH = 20

# Same heuristic as a YAML anchor definition (&name) outside quoted strings.
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:])&(\w+)", re.MULTILINE)


class SeedError(Exception):
    """Raised when a seed document cannot be read, parsed or validated."""


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------


class SeedState(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)


class SeedProduct(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None


class SeedEnablement(BaseModel):
    state: str = Field(min_length=1)
    product: str = Field(min_length=1)
    enabled: bool = True


class SeedDocument(BaseModel):
    """Top-level seed document.  Every section is optional."""

    model_config = {"extra": "forbid"}

    states: list[SeedState] = []
    products: list[SeedProduct] = []
    enablements: list[SeedEnablement] = []
    templates: list[TemplateDefinition] = []


@dataclass
class SeedSummary:
    states_created: int = 0
    products: int = 0
    enablements: int = 0
    templates: int = 0


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _check_yaml_safety(content: str) -> None:
    if len(content) > _MAX_DOCUMENT_SIZE:
        raise SeedError(
            f"Seed document exceeds maximum size "
            f"({len(content):,} chars > {_MAX_DOCUMENT_SIZE:,} limit)"
        )
    if _ANCHOR_RE.search(content):
        raise SeedError("YAML anchors/aliases are not supported in seed documents")


def parse_seed(content: str) -> SeedDocument:
    """Parse and validate a seed document from YAML text."""
    _check_yaml_safety(content)
    yaml = YAML(typ="safe", pure=True)
    yaml.max_depth = _MAX_DEPTH
    try:
        data: Any = yaml.load(content)
    except YAMLError as exc:
        raise SeedError(f"Invalid YAML in seed document: {exc}") from exc
    if data is None:
        return SeedDocument()
    if not isinstance(data, dict):
        raise SeedError("Seed document must be a mapping")
    try:
        return SeedDocument.model_validate(data)
    except ValidationError as exc:
        raise SeedError(f"Invalid seed document: {exc}") from exc


def load_seed(path: str | Path) -> SeedDocument:
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SeedError(f"Cannot read seed file {path}: {exc}") from exc
    return parse_seed(content)


# ---------------------------------------------------------------------------
# Applying
# ---------------------------------------------------------------------------


def apply_seed(admin: PlatformAdmin, document: SeedDocument) -> SeedSummary:
    """Apply a seed document.  Re-applying the same document is a no-op.

    Existing states are kept as they are; products, enablements and
    templates are upserted by code.
    """
    summary = SeedSummary()
    existing = {s.code for s in admin.list_states()}

    for state in document.states:
        code = state.code.strip().upper()
        if code in existing:
            continue
        admin.create_state(code, state.name)
        existing.add(code)
        summary.states_created += 1

    for product in document.products:
        admin.create_product(product.code, product.name, description=product.description)
        summary.products += 1

    for enablement in document.enablements:
        admin.set_state_product_enablement(
            enablement.state, enablement.product, enablement.enabled
        )
        summary.enablements += 1

    for definition in document.templates:
        admin.register_template(definition.product_code, definition)
        summary.templates += 1

    logger.info(
        "Seed applied: %d new states, %d products, %d enablements, %d templates",
        summary.states_created, summary.products, summary.enablements, summary.templates,
    )
    return summary
