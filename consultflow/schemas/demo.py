"""Demo session and claim Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from consultflow.db.models.demo_session import DemoSession
from consultflow.schemas.flow import FlowDecisionResponse


class DemoMessageRequest(BaseModel):
    role: str = "user"
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def reject_whitespace_only(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Message cannot be empty or whitespace-only")
        return stripped


class DemoSessionResponse(BaseModel):
    session_id: str
    conversation_history: list[dict[str, Any]] = Field(default_factory=list)
    message_count: int
    extracted_intelligence: dict[str, Any] = Field(default_factory=dict)
    market_research: dict[str, Any] = Field(default_factory=dict)
    readiness_score: int
    completed: bool
    claimed: bool
    claimed_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_demo(cls, demo: DemoSession, completion_threshold: int) -> "DemoSessionResponse":
        return cls(
            session_id=demo.session_id,
            conversation_history=demo.conversation_history or [],
            message_count=demo.message_count,
            extracted_intelligence=demo.extracted_intelligence or {},
            market_research=demo.market_research or {},
            readiness_score=demo.readiness_score,
            completed=demo.readiness_score >= completion_threshold,
            claimed=demo.claimed_by is not None,
            claimed_at=demo.claimed_at,
            created_at=demo.created_at,
        )


class ClaimResponse(BaseModel):
    outcome: str
    claimed: bool
    consultation_id: str | None = None
    prefilled_fields: list[str] = Field(default_factory=list)
    next_step: FlowDecisionResponse
