"""Claim route: attach a demo session to the signed-in owner."""

from fastapi import APIRouter, Depends

from consultflow.api.deps import get_claim_service
from consultflow.core.auth import AuthenticatedOwner, require_auth
from consultflow.schemas.demo import ClaimResponse
from consultflow.schemas.flow import FlowDecisionResponse
from consultflow.services.claim_service import ClaimService

router = APIRouter()


@router.post("/{session_token}", response_model=ClaimResponse)
async def claim_demo_session(
    session_token: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ClaimService = Depends(get_claim_service),
):
    """Claim a demo session.

    Losing the race, or an unknown token, is not an error: the owner is sent
    to the checklist without prefill.
    """
    result = await service.claim(session_token, owner.owner_id)
    return ClaimResponse(
        outcome=result.outcome.value,
        claimed=result.claimed,
        consultation_id=result.consultation_id,
        prefilled_fields=result.prefilled_fields,
        next_step=FlowDecisionResponse.from_decision(result.decision),
    )
