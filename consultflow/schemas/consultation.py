"""Consultation Pydantic schemas: API contracts for the onboarding record."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from consultflow.db.models.consultation import ConsultationRecord


class StartConsultationRequest(BaseModel):
    """Request to start a new consultation (abandons any in-progress one)."""

    prefill: dict[str, Any] | None = None


class AnswerRequest(BaseModel):
    """One answer, keyed by checklist step (``audience``) or record field."""

    field: str = Field(..., min_length=1)
    value: Any

    @field_validator("field")
    @classmethod
    def normalize_field(cls, v: str) -> str:
        return v.strip().lower()


class StrategyBriefRequest(BaseModel):
    brief: dict[str, Any] = Field(..., min_length=1)


class PublishRequest(BaseModel):
    page_url: str = Field(..., min_length=1)


class ConsultationResponse(BaseModel):
    id: str
    owner_id: str | None
    status: str
    flow_state: str
    industry: str | None = None
    goal: str | None = None
    target_audience: str | None = None
    service_type: str | None = None
    challenge: str | None = None
    unique_value: str | None = None
    competitive_differentiator: str | None = None
    pain_points: list[str] = Field(default_factory=list)
    authority_markers: list[str] = Field(default_factory=list)
    offer: str | None = None
    business_name: str | None = None
    website_url: str | None = None
    communication_style: dict[str, Any] | None = None
    brand_assets: dict[str, Any] = Field(default_factory=dict)
    extracted_intelligence: dict[str, Any] = Field(default_factory=dict)
    readiness_score: int
    strategy_brief: dict[str, Any] | None = None
    published_page_url: str | None = None
    demo_session_id: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ConsultationRecord) -> "ConsultationResponse":
        return cls(
            id=str(record.id),
            owner_id=record.owner_id,
            status=record.status,
            flow_state=record.flow_state,
            industry=record.industry,
            goal=record.goal,
            target_audience=record.target_audience,
            service_type=record.service_type,
            challenge=record.challenge,
            unique_value=record.unique_value,
            competitive_differentiator=record.competitive_differentiator,
            pain_points=record.pain_points or [],
            authority_markers=record.authority_markers or [],
            offer=record.offer,
            business_name=record.business_name,
            website_url=record.website_url,
            communication_style=record.communication_style,
            brand_assets=record.brand_assets or {},
            extracted_intelligence=record.extracted_intelligence or {},
            readiness_score=record.readiness_score,
            strategy_brief=record.strategy_brief,
            published_page_url=record.published_page_url,
            demo_session_id=record.demo_session_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
        )


class ConsultationSummary(BaseModel):
    id: str
    status: str
    flow_state: str
    business_name: str | None = None
    industry: str | None = None
    readiness_score: int


class SearchResponse(BaseModel):
    query: str
    superseded: bool = False
    results: list[ConsultationSummary] = Field(default_factory=list)


class ReadinessResponse(BaseModel):
    consultation_id: str
    readiness_score: int
    completion_stage: str
    breakdown: dict[str, int]
    resume_field: str | None = None
    answered: list[str] = Field(default_factory=list)
