"""Draft recovery Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from consultflow.services.draft_service import DraftChoice


class DraftSaveRequest(BaseModel):
    wizard_data: dict[str, Any]
    current_step: str | None = None


class DraftResponse(BaseModel):
    owner_id: str
    wizard_data: dict[str, Any]
    current_step: str | None = None
    updated_at: datetime


class DraftCheckResponse(BaseModel):
    offered: bool
    consultation_id: str | None = None
    resume_field: str | None = None
    draft_updated_at: datetime | None = None
    record_updated_at: datetime | None = None
    choices: list[DraftChoice] = Field(default_factory=list)


class DraftResolveRequest(BaseModel):
    choice: DraftChoice


class DraftResolutionResponse(BaseModel):
    choice: DraftChoice
    consultation_id: str | None = None
    resume_field: str | None = None
    wizard_data: dict[str, Any] | None = None
