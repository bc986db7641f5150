"""Draft routes: autosave and the recovery prompt."""

from fastapi import APIRouter, Depends, HTTPException

from consultflow.api.deps import get_draft_service
from consultflow.core.auth import AuthenticatedOwner, require_auth
from consultflow.schemas.drafts import (
    DraftCheckResponse,
    DraftResolutionResponse,
    DraftResolveRequest,
    DraftResponse,
    DraftSaveRequest,
)
from consultflow.services.draft_service import DraftService

router = APIRouter()


def _draft_response(draft) -> DraftResponse:
    return DraftResponse(
        owner_id=draft.owner_id,
        wizard_data=draft.wizard_data or {},
        current_step=draft.current_step,
        updated_at=draft.updated_at,
    )


@router.put("", response_model=DraftResponse)
async def save_draft(
    request: DraftSaveRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: DraftService = Depends(get_draft_service),
):
    draft = await service.save(owner.owner_id, request.wizard_data, request.current_step)
    return _draft_response(draft)


@router.get("", response_model=DraftResponse)
async def get_draft(
    owner: AuthenticatedOwner = Depends(require_auth),
    service: DraftService = Depends(get_draft_service),
):
    draft = await service.get(owner.owner_id)
    if draft is None:
        raise HTTPException(status_code=404, detail="No draft saved")
    return _draft_response(draft)


@router.get("/check", response_model=DraftCheckResponse)
async def check_draft(
    owner: AuthenticatedOwner = Depends(require_auth),
    service: DraftService = Depends(get_draft_service),
):
    """Whether to show the resume / start fresh / delete prompt."""
    check = await service.check(owner.owner_id)
    return DraftCheckResponse(
        offered=check.offered,
        consultation_id=check.consultation_id,
        resume_field=check.resume_field,
        draft_updated_at=check.draft_updated_at,
        record_updated_at=check.record_updated_at,
        choices=check.choices,
    )


@router.post("/resolve", response_model=DraftResolutionResponse)
async def resolve_draft(
    request: DraftResolveRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: DraftService = Depends(get_draft_service),
):
    resolution = await service.resolve(owner.owner_id, request.choice)
    return DraftResolutionResponse(
        choice=resolution.choice,
        consultation_id=resolution.consultation_id,
        resume_field=resolution.resume_field,
        wizard_data=resolution.wizard_data,
    )
