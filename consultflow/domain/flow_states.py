"""Flow-state milestones and forward-only advancement rules.

Pure domain logic with no external dependencies.
"""

from dataclasses import dataclass
from enum import Enum


class FlowState(int, Enum):
    """Coarse consultation milestones. Values are ordinal for comparison."""

    STARTED = 0
    DEMO_COMPLETE = 1
    SIGNED_UP = 2
    BRAND_CAPTURED = 3
    CONSULTATION_COMPLETE = 4
    BRIEF_GENERATED = 5
    PAGE_GENERATED = 6
    PUBLISHED = 7

    @property
    def slug(self) -> str:
        """Persisted/wire representation, e.g. ``brand_captured``."""
        return self.name.lower()

    @classmethod
    def from_slug(cls, slug: str) -> "FlowState":
        try:
            return cls[slug.upper()]
        except KeyError:
            raise ValueError(f"Unknown flow state: {slug}") from None


class ConfirmationType(str, Enum):
    """Checkpoint screens shown before an artifact is generated."""

    PRE_BRIEF = "pre_brief"
    PRE_PAGE = "pre_page"


@dataclass
class AdvanceCheck:
    """Result of checking a requested flow-state move."""

    allowed: bool
    noop: bool = False
    regression: bool = False
    reason: str = ""


def check_advance(current: FlowState, target: FlowState) -> AdvanceCheck:
    """Validate whether a flow-state move is allowed.

    Pure function -- no side effects, no DB access.

    Rules:
        - Forward moves (target > current) are allowed, skipping is fine
        - Re-advancing to the current state is an idempotent no-op
        - Backward moves are regressions and must never be written
    """
    if target == current:
        return AdvanceCheck(False, noop=True, reason="Already at this state")

    if target < current:
        return AdvanceCheck(
            False,
            regression=True,
            reason=f"Cannot move from {current.slug} back to {target.slug}",
        )

    return AdvanceCheck(True, reason=f"{current.slug} -> {target.slug}")
