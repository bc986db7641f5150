"""Readiness scoring and completion stage.

The score is a capped weighted sum over the accumulated blob. Values owned
by the ``manual_default`` tier, and brand values equal to the stock palette
or font, never score.
"""

from enum import Enum

from consultflow.domain.accumulator import get_path, is_supplied, provenance_of
from consultflow.domain.precedence import SourceTier

DEFAULT_COLORS = {
    "primary_color": "#7C3AED",
    "secondary_color": "#4F46E5",
    "accent_color": "#06B6D4",
}
DEFAULT_FONT = "Inter"

READINESS_WEIGHTS: dict[str, int] = {
    "industry": 10,
    "audience": 15,
    "value_proposition": 15,
    "differentiator": 10,
    "pain_points": 10,
    "authority_markers": 10,
    "logo": 10,
    "custom_color": 8,
    "custom_font": 6,
    "brand_guide": 6,
}

# Minimum stripped length for a narrative answer to count as non-trivial
MIN_LENGTHS = {
    "consultation.industry": 3,
    "consultation.target_audience": 4,
    "consultation.unique_value": 10,
    "consultation.competitive_differentiator": 10,
}

MAX_SCORE = 100


class CompletionStage(str, Enum):
    EMPTY = "empty"
    PARTIAL = "partial"
    READY = "ready"


def _scored_value(intelligence: dict, path: str):
    """Return the value at ``path`` unless it is missing or a manual default."""
    value = get_path(intelligence, path)
    if not is_supplied(value):
        return None
    if provenance_of(intelligence, path) == SourceTier.MANUAL_DEFAULT:
        return None
    return value


def _long_enough(intelligence: dict, path: str) -> bool:
    value = _scored_value(intelligence, path)
    return isinstance(value, str) and len(value.strip()) >= MIN_LENGTHS[path]


def _non_empty_list(intelligence: dict, path: str) -> bool:
    value = _scored_value(intelligence, path)
    if isinstance(value, list):
        return any(is_supplied(item) for item in value)
    return value is not None


def _has_custom_color(intelligence: dict) -> bool:
    for key, default in DEFAULT_COLORS.items():
        value = _scored_value(intelligence, f"brand.{key}")
        if isinstance(value, str) and value.strip().upper() != default:
            return True
    return False


def _has_custom_font(intelligence: dict) -> bool:
    for key in ("heading_font", "body_font"):
        value = _scored_value(intelligence, f"brand.{key}")
        if isinstance(value, str) and value.strip().lower() != DEFAULT_FONT.lower():
            return True
    return False


def readiness_breakdown(intelligence: dict | None) -> dict[str, int]:
    """Points earned per signal, keyed like ``READINESS_WEIGHTS``."""
    intelligence = intelligence or {}
    earned = {
        "industry": _long_enough(intelligence, "consultation.industry"),
        "audience": _long_enough(intelligence, "consultation.target_audience"),
        "value_proposition": _long_enough(intelligence, "consultation.unique_value"),
        "differentiator": _long_enough(intelligence, "consultation.competitive_differentiator"),
        "pain_points": _non_empty_list(intelligence, "consultation.pain_points"),
        "authority_markers": _non_empty_list(intelligence, "consultation.authority_markers"),
        "logo": _scored_value(intelligence, "brand.logo_url") is not None,
        "custom_color": _has_custom_color(intelligence),
        "custom_font": _has_custom_font(intelligence),
        "brand_guide": bool(
            _scored_value(intelligence, "brand.guide_provided") or _scored_value(intelligence, "brand.guide_skipped")
        ),
    }
    return {signal: (READINESS_WEIGHTS[signal] if hit else 0) for signal, hit in earned.items()}


def compute_readiness(intelligence: dict | None) -> int:
    return min(MAX_SCORE, sum(readiness_breakdown(intelligence).values()))


def has_non_default_data(intelligence: dict | None) -> bool:
    """True when any leaf was written by a tier above ``manual_default``."""
    provenance = (intelligence or {}).get("provenance") or {}
    return any(slug != SourceTier.MANUAL_DEFAULT.slug for slug in provenance.values())


def get_completion_stage(
    intelligence: dict | None,
    score: int | None = None,
    ready_threshold: int = 50,
) -> CompletionStage:
    score = compute_readiness(intelligence) if score is None else score
    if score >= ready_threshold:
        return CompletionStage.READY
    if has_non_default_data(intelligence):
        return CompletionStage.PARTIAL
    return CompletionStage.EMPTY
