"""Intelligence Pydantic schemas: fragment merges and producer runs."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from consultflow.domain.precedence import SourceTier
from consultflow.services.producers import PRODUCER_SOURCES


class IntelligenceFragmentRequest(BaseModel):
    """A fragment pushed by a producer callback or the client."""

    source: str
    fragment: dict[str, Any]

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        v = v.strip().lower()
        SourceTier.from_slug(v)  # ValueError surfaces as a 422
        return v

    @property
    def tier(self) -> SourceTier:
        return SourceTier.from_slug(self.source)


class MergeResponse(BaseModel):
    session_id: str
    applied: bool
    readiness_score: int
    completion_stage: str
    changed_paths: list[str] = Field(default_factory=list)
    ignored_paths: list[str] = Field(default_factory=list)


class ProducerRequestItem(BaseModel):
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v not in PRODUCER_SOURCES:
            raise ValueError(f"Unknown producer: {v}")
        return v


class GatherRequest(BaseModel):
    producers: list[ProducerRequestItem] = Field(..., min_length=1)


class GatherAcceptedResponse(BaseModel):
    consultation_id: str
    status: str = "accepted"
    channel: str
    producers: list[str]
