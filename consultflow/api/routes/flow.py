"""Flow API routes: where the owner goes next, and milestone writes."""

from fastapi import APIRouter, Depends

from consultflow.api.deps import get_consultation_service, get_flow_service
from consultflow.core.auth import AuthenticatedOwner, require_auth
from consultflow.domain.flow_states import FlowState
from consultflow.domain.routing import next_step
from consultflow.schemas.flow import AdvanceRequest, AdvanceResponse, FlowDecisionResponse, FlowEventResponse
from consultflow.services.consultation_service import ConsultationService
from consultflow.services.flow_service import FlowService

router = APIRouter()


@router.get("/next", response_model=FlowDecisionResponse)
async def next_step_for_owner(
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    """Route the owner from their active consultation, or to the demo if there is none."""
    record = await service.get_active(owner.owner_id)
    if record is None:
        return FlowDecisionResponse.from_decision(next_step(None, flow.thresholds))
    return FlowDecisionResponse.from_decision(await flow.next_step(record.id))


@router.get("/{consultation_id}/next", response_model=FlowDecisionResponse)
async def next_step_for_consultation(
    consultation_id: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    """Read-only routing decision.

    Raises:
        HTTPException(404): If not found or owned by someone else
    """
    record = await service.get(owner.owner_id, consultation_id)
    return FlowDecisionResponse.from_decision(await flow.next_step(record.id))


@router.post("/{consultation_id}/advance", response_model=AdvanceResponse)
async def advance_flow_state(
    consultation_id: str,
    request: AdvanceRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    """Record a milestone. Moving backwards is rejected with 409."""
    record = await service.get(owner.owner_id, consultation_id)
    result = await flow.advance(record.id, FlowState.from_slug(request.state), request.reason)
    return AdvanceResponse(
        consultation_id=result.consultation_id,
        previous=result.previous.slug,
        current=result.current.slug,
        changed=result.changed,
        reason=result.reason,
    )


@router.get("/{consultation_id}/history", response_model=list[FlowEventResponse])
async def flow_history(
    consultation_id: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    record = await service.get(owner.owner_id, consultation_id)
    events = await flow.history(record.id)
    return [
        FlowEventResponse(
            from_state=event.from_state,
            to_state=event.to_state,
            reason=event.reason,
            created_at=event.created_at,
        )
        for event in events
    ]
