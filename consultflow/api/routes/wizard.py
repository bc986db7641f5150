"""Wizard routes: mounting the guided form wizard."""

from fastapi import APIRouter, Depends

from consultflow.api.deps import get_wizard_service
from consultflow.core.auth import AuthenticatedOwner, require_auth
from consultflow.domain.stages import EntryOptions
from consultflow.schemas.wizard import WizardMountRequest, WizardMountResponse
from consultflow.services.wizard_service import WizardService

router = APIRouter()


@router.post("/mount", response_model=WizardMountResponse)
async def mount_wizard(
    request: WizardMountRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: WizardService = Depends(get_wizard_service),
):
    """Resolve the consultation record and the draft prompt for a wizard entry.

    Reuses the owner's in-progress consultation when there is one.
    """
    options = EntryOptions(
        suppress_draft_prompt=request.suppress_draft_prompt,
        has_website=request.has_website,
        prefill=request.prefill,
    )
    mount = await service.mount(owner.owner_id, options)
    return WizardMountResponse(
        consultation_id=str(mount.record.id),
        stage=mount.machine.stage.value,
        draft_pending=mount.machine.draft_pending,
        draft_choices=mount.draft.choices if mount.machine.draft_pending else [],
        resume_field=mount.resume_field,
        answered=mount.answered,
    )
