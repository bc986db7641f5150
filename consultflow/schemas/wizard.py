"""Wizard mount Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field

from consultflow.services.draft_service import DraftChoice


class WizardMountRequest(BaseModel):
    """Entry options for a form wizard mount."""

    has_website: bool = False
    suppress_draft_prompt: bool = False
    prefill: dict[str, Any] = Field(default_factory=dict)


class WizardMountResponse(BaseModel):
    consultation_id: str
    stage: str
    draft_pending: bool
    draft_choices: list[DraftChoice] = Field(default_factory=list)
    resume_field: str | None = None
    answered: list[str] = Field(default_factory=list)
