"""Precedence-aware merge of intelligence fragments.

The accumulated blob has three sections (``consultation``, ``market`` and
``brand``) plus a ``provenance`` map from dotted leaf path to the source tier
that last wrote it. Merging is pure: the input blob is never mutated.
"""

import copy
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from consultflow.domain.precedence import SourceTier, should_overwrite

SECTIONS = ("consultation", "market", "brand")

# Keys stored alongside the sections; fragments can never write them
RESERVED_KEYS = frozenset({
    "provenance",
    "brand_source",
    "completion_stage",
    "readiness_score",
    "demo_readiness_score",
})

CONSULTATION_COLUMNS = (
    "industry",
    "goal",
    "target_audience",
    "service_type",
    "challenge",
    "unique_value",
    "competitive_differentiator",
    "pain_points",
    "authority_markers",
    "offer",
    "business_name",
    "website_url",
    "communication_style",
)

LIST_COLUMNS = frozenset({"pain_points", "authority_markers"})

BRAND_ASSET_FIELDS = (
    "logo_url",
    "primary_color",
    "secondary_color",
    "accent_color",
    "heading_font",
    "body_font",
    "guide_provided",
    "guide_skipped",
)


@dataclass
class MergeApplication:
    """Outcome of applying one fragment to a blob."""

    intelligence: dict
    changed_paths: list[str] = field(default_factory=list)
    ignored_paths: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changed_paths)


def empty_intelligence() -> dict:
    return {"consultation": {}, "market": {}, "brand": {}, "provenance": {}}


def is_supplied(value: Any) -> bool:
    """Blank strings, empty collections, None and False count as not supplied."""
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return [item.strip() if isinstance(item, str) else item for item in value if is_supplied(item)]
    return value


def _leaves(values: dict, prefix: str) -> Iterator[tuple[str, Any]]:
    for key, value in values.items():
        path = f"{prefix}.{key}"
        if isinstance(value, dict):
            yield from _leaves(value, path)
        elif is_supplied(value):
            normalized = _normalize(value)
            if is_supplied(normalized):
                yield path, normalized


def get_path(intelligence: dict, path: str) -> Any:
    """Read a dotted path from the blob, None when any segment is missing."""
    node: Any = intelligence
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _set_path(intelligence: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    node = intelligence
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def provenance_of(intelligence: dict, path: str) -> SourceTier | None:
    slug = (intelligence.get("provenance") or {}).get(path)
    return SourceTier.from_slug(slug) if slug else None


def merge_fragment(intelligence: dict | None, fragment: dict, source: SourceTier) -> MergeApplication:
    """Apply ``fragment`` into a copy of ``intelligence`` honouring source precedence.

    For every supplied leaf: unset fields are taken, fields owned by an
    equal-or-higher tier are left alone, fields owned by a lower tier are
    overwritten. Unknown top-level keys are ignored.
    """
    result = copy.deepcopy(intelligence) if intelligence else empty_intelligence()
    for section in SECTIONS:
        result.setdefault(section, {})
    provenance = result.setdefault("provenance", {})

    application = MergeApplication(intelligence=result)

    for section, values in fragment.items():
        if section not in SECTIONS or not isinstance(values, dict):
            if section not in RESERVED_KEYS:
                application.ignored_paths.append(section)
            continue

        for path, value in _leaves(values, section):
            existing = provenance_of(result, path)
            if not should_overwrite(existing, source):
                application.ignored_paths.append(path)
                continue
            if existing == source and get_path(result, path) == value:
                continue
            _set_path(result, path, value)
            provenance[path] = source.slug
            application.changed_paths.append(path)

    if any(path.startswith("brand.") for path in application.changed_paths):
        brand_tiers = [
            SourceTier.from_slug(slug) for path, slug in provenance.items() if path.startswith("brand.")
        ]
        result["brand_source"] = max(brand_tiers).slug

    return application


def fragment_for_field(column: str, value: Any) -> dict:
    """Wrap a single consultation answer as a fragment."""
    if column not in CONSULTATION_COLUMNS:
        raise ValueError(f"Unknown consultation field: {column}")
    return {"consultation": {column: value}}


def project_columns(intelligence: dict) -> dict:
    """Typed ConsultationRecord column values derived from the blob."""
    consultation = intelligence.get("consultation") or {}
    brand = intelligence.get("brand") or {}

    columns: dict[str, Any] = {}
    for column in CONSULTATION_COLUMNS:
        value = consultation.get(column)
        if column in LIST_COLUMNS:
            value = list(value) if isinstance(value, list) else ([value] if is_supplied(value) else [])
        columns[column] = value

    columns["brand_assets"] = {key: brand[key] for key in BRAND_ASSET_FIELDS if key in brand}
    return columns
