"""Source tiers for accumulated intelligence.

A field written by one tier can only be replaced by a strictly higher tier.
``USER_INPUT`` sits on top and replaces itself, so the user's latest answer
always wins.
"""

from enum import Enum


class SourceTier(int, Enum):
    """Provenance rank of an intelligence fragment, lowest first."""

    MANUAL_DEFAULT = 0
    MARKET_RESEARCH = 1
    DEMO_CHAT = 2
    WEBSITE_EXTRACTION = 3
    BRAND_GUIDE = 4
    USER_INPUT = 5

    @property
    def slug(self) -> str:
        return self.name.lower()

    @classmethod
    def from_slug(cls, slug: str) -> "SourceTier":
        try:
            return cls[slug.upper()]
        except KeyError:
            raise ValueError(f"Unknown intelligence source: {slug}") from None


def should_overwrite(existing: SourceTier | None, incoming: SourceTier) -> bool:
    """Decide whether ``incoming`` may replace a value set by ``existing``."""
    if existing is None:
        return True
    if incoming == SourceTier.USER_INPUT:
        return True
    return incoming > existing
