"""Ordered question checklist and resume-point derivation.

The resume point is derived from which fields are populated, never from a
stored cursor, so it heals itself after a restart. Answers are keyed by
ConsultationRecord column name.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from consultflow.domain.accumulator import is_supplied

BASE_CHECKLIST = ("industry", "goal", "audience", "challenge", "unique_value", "offer")

PROFESSIONAL_SERVICES_MARKER = "professional services"

# Checklist step -> ConsultationRecord column
STEP_COLUMNS = {
    "industry": "industry",
    "goal": "goal",
    "audience": "target_audience",
    "service_type": "service_type",
    "challenge": "challenge",
    "unique_value": "unique_value",
    "offer": "offer",
}

MIN_ANSWER_LENGTHS = {
    "industry": 2,
    "goal": 2,
    "audience": 3,
    "service_type": 2,
    "challenge": 5,
    "unique_value": 10,
    "offer": 3,
}


@dataclass(frozen=True)
class ResumePoint:
    """Where a checklist walk stopped."""

    field: str | None
    index: int
    steps: tuple[str, ...]

    @property
    def complete(self) -> bool:
        return self.field is None


def is_professional_services(industry: Any) -> bool:
    return isinstance(industry, str) and PROFESSIONAL_SERVICES_MARKER in industry.lower()


def checklist_for(industry: Any) -> tuple[str, ...]:
    """Active question order; ``service_type`` follows ``audience`` for professional services."""
    if not is_professional_services(industry):
        return BASE_CHECKLIST
    position = BASE_CHECKLIST.index("audience") + 1
    return BASE_CHECKLIST[:position] + ("service_type",) + BASE_CHECKLIST[position:]


def is_answered(step: str, answers: Mapping[str, Any]) -> bool:
    if step == "challenge":
        # Pain points gathered elsewhere answer the challenge question too
        return is_supplied(answers.get("challenge")) or is_supplied(answers.get("pain_points"))
    return is_supplied(answers.get(STEP_COLUMNS[step]))


def resume_point(answers: Mapping[str, Any]) -> ResumePoint:
    steps = checklist_for(answers.get("industry"))
    for index, step in enumerate(steps):
        if not is_answered(step, answers):
            return ResumePoint(field=step, index=index, steps=steps)
    return ResumePoint(field=None, index=len(steps), steps=steps)


def first_unanswered(answers: Mapping[str, Any]) -> str | None:
    return resume_point(answers).field


def answered_steps(answers: Mapping[str, Any]) -> list[str]:
    return [step for step in checklist_for(answers.get("industry")) if is_answered(step, answers)]


def validate_answer(step: str, value: Any) -> str | None:
    """Return an error message when ``value`` fails the step's minimum-content check."""
    if step not in STEP_COLUMNS:
        return f"Unknown question: {step}"
    if not isinstance(value, str):
        return "Answer must be text"
    minimum = MIN_ANSWER_LENGTHS[step]
    if len(value.strip()) < minimum:
        return f"Answer must be at least {minimum} characters"
    return None
