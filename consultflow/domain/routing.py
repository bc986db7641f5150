"""Next-step routing from persisted consultation state.

Pure decision function: no side effects, no DB access, never mutates the
flow state it reads.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from consultflow.domain.checklist import resume_point
from consultflow.domain.flow_states import ConfirmationType, FlowState

HUDDLE_ROUTE = "/huddle"
WIZARD_ROUTE = "/wizard"
REVIEW_ROUTE = "/wizard/review"
ARTIFACT_ROUTE = "/strategy-brief"
DEMO_ROUTE = "/demo"


@dataclass(frozen=True)
class RoutingThresholds:
    skip_ahead: int = 50
    confirmation: int = 70


@dataclass(frozen=True)
class RoutingSnapshot:
    """Everything the routing table reads from one consultation."""

    flow_state: FlowState
    readiness_score: int
    has_strategy_brief: bool = False
    has_brand_data: bool = False
    has_published_page: bool = False
    answers: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FlowDecision:
    route: str
    reasoning: str
    confirmation_type: ConfirmationType | None = None
    resume_field: str | None = None


def checklist_decision(answers: Mapping[str, Any], reasoning: str) -> FlowDecision:
    """Route to the first unanswered checklist field, or review when complete."""
    point = resume_point(answers)
    if point.complete:
        return FlowDecision(route=REVIEW_ROUTE, reasoning=f"{reasoning}; checklist complete")
    return FlowDecision(
        route=f"{WIZARD_ROUTE}?step={point.field}",
        reasoning=reasoning,
        resume_field=point.field,
    )


def next_step(
    snapshot: RoutingSnapshot | None,
    thresholds: RoutingThresholds | None = None,
) -> FlowDecision:
    """Pick the next screen. First matching rule wins.

    Rules:
        1. signed_up with score >= confirmation threshold -> pre_brief checkpoint
        2. brand_captured with a brief and score >= skip-ahead threshold -> pre_page checkpoint
        3. brand_captured with score below skip-ahead threshold -> back into the checklist
        4. brief, brand data and published page all present -> artifact viewer
        5. otherwise -> next unanswered checklist field
    """
    thresholds = thresholds or RoutingThresholds()

    if snapshot is None:
        return FlowDecision(route=DEMO_ROUTE, reasoning="No consultation found; starting fresh")

    score = snapshot.readiness_score
    state = snapshot.flow_state

    if state == FlowState.SIGNED_UP and score >= thresholds.confirmation:
        return FlowDecision(
            route=HUDDLE_ROUTE,
            confirmation_type=ConfirmationType.PRE_BRIEF,
            reasoning=f"Readiness {score} >= {thresholds.confirmation}; confirm before generating the brief",
        )

    if state == FlowState.BRAND_CAPTURED and snapshot.has_strategy_brief and score >= thresholds.skip_ahead:
        return FlowDecision(
            route=HUDDLE_ROUTE,
            confirmation_type=ConfirmationType.PRE_PAGE,
            reasoning=f"Brief exists and readiness {score} >= {thresholds.skip_ahead}; confirm before page generation",
        )

    if state == FlowState.BRAND_CAPTURED and score < thresholds.skip_ahead:
        return checklist_decision(
            snapshot.answers,
            reasoning=f"Readiness {score} < {thresholds.skip_ahead}; more answers needed",
        )

    if snapshot.has_strategy_brief and snapshot.has_brand_data and snapshot.has_published_page:
        return FlowDecision(route=ARTIFACT_ROUTE, reasoning="Brief, brand and published page exist; onboarding skipped")

    return checklist_decision(snapshot.answers, reasoning="Continuing the question checklist")
