"""Demo API routes. Public: demo sessions exist before signup."""

from fastapi import APIRouter, Depends

from consultflow.api.deps import get_demo_service
from consultflow.core.config import get_settings
from consultflow.schemas.demo import DemoMessageRequest, DemoSessionResponse
from consultflow.schemas.intelligence import IntelligenceFragmentRequest, MergeResponse
from consultflow.services.demo_service import DemoService

router = APIRouter()


def _response(demo) -> DemoSessionResponse:
    return DemoSessionResponse.from_demo(demo, get_settings().readiness_skip_ahead_threshold)


@router.post("/sessions", response_model=DemoSessionResponse, status_code=201)
async def create_demo_session(service: DemoService = Depends(get_demo_service)):
    return _response(await service.create())


@router.get("/sessions/{session_token}", response_model=DemoSessionResponse)
async def get_demo_session(session_token: str, service: DemoService = Depends(get_demo_service)):
    return _response(await service.get(session_token))


@router.post("/sessions/{session_token}/messages", response_model=DemoSessionResponse)
async def append_demo_message(
    session_token: str,
    request: DemoMessageRequest,
    service: DemoService = Depends(get_demo_service),
):
    """Append a chat turn.

    Raises:
        HTTPException(400): If the role is not user or assistant
        HTTPException(404): If the session does not exist
        HTTPException(409): If the session has been claimed
    """
    return _response(await service.append_message(session_token, request.role, request.content))


@router.post("/sessions/{session_token}/intelligence", response_model=MergeResponse)
async def merge_demo_intelligence(
    session_token: str,
    request: IntelligenceFragmentRequest,
    service: DemoService = Depends(get_demo_service),
):
    outcome = await service.merge_intelligence(session_token, request.fragment, request.tier)
    return MergeResponse(
        session_id=outcome.session_id,
        applied=outcome.applied,
        readiness_score=outcome.readiness_score,
        completion_stage=outcome.completion_stage.value,
        changed_paths=outcome.changed_paths,
        ignored_paths=outcome.ignored_paths,
    )
