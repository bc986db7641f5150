"""Flow Pydantic schemas: routing decisions and milestone writes."""

from datetime import datetime

from pydantic import BaseModel, field_validator

from consultflow.domain.flow_states import FlowState
from consultflow.domain.routing import FlowDecision


class FlowDecisionResponse(BaseModel):
    route: str
    reasoning: str
    confirmation_type: str | None = None
    resume_field: str | None = None

    @classmethod
    def from_decision(cls, decision: FlowDecision) -> "FlowDecisionResponse":
        return cls(
            route=decision.route,
            reasoning=decision.reasoning,
            confirmation_type=decision.confirmation_type.value if decision.confirmation_type else None,
            resume_field=decision.resume_field,
        )


class AdvanceRequest(BaseModel):
    state: str
    reason: str = ""

    @field_validator("state")
    @classmethod
    def validate_state(cls, v: str) -> str:
        v = v.strip().lower()
        FlowState.from_slug(v)
        return v


class AdvanceResponse(BaseModel):
    consultation_id: str
    previous: str
    current: str
    changed: bool
    reason: str = ""


class FlowEventResponse(BaseModel):
    from_state: str | None
    to_state: str
    reason: str | None
    created_at: datetime
