"""Consultation API routes: record lifecycle, answers, intelligence and progress."""

import asyncio
import json
import time

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import StreamingResponse

from consultflow.api.deps import (
    get_accumulator,
    get_consultation_service,
    get_flow_service,
    get_producer,
    get_publisher,
    get_search_debouncer,
)
from consultflow.core.auth import AuthenticatedOwner, require_auth
from consultflow.core.config import get_settings
from consultflow.domain.checklist import answered_steps, resume_point
from consultflow.domain.flow_states import FlowState
from consultflow.domain.readiness import get_completion_stage, readiness_breakdown
from consultflow.schemas.consultation import (
    AnswerRequest,
    ConsultationResponse,
    ConsultationSummary,
    PublishRequest,
    ReadinessResponse,
    SearchResponse,
    StartConsultationRequest,
    StrategyBriefRequest,
)
from consultflow.schemas.intelligence import (
    GatherAcceptedResponse,
    GatherRequest,
    IntelligenceFragmentRequest,
    MergeResponse,
)
from consultflow.services.accumulator_service import AccumulatorService
from consultflow.services.consultation_service import ConsultationService
from consultflow.services.debounce import LatestOnlyDebouncer
from consultflow.services.events import (
    TERMINAL_EVENT_TYPES,
    ConsultationEventType,
    ProgressPublisher,
    events_channel,
)
from consultflow.services.flow_service import FlowService, record_answers
from consultflow.services.gathering_service import IntelligenceGatherer, ProducerRequest
from consultflow.services.producers import IntelligenceProducer

router = APIRouter()

_EVENTS_HEARTBEAT_INTERVAL = 15.0


def _summary(record) -> ConsultationSummary:
    return ConsultationSummary(
        id=str(record.id),
        status=record.status,
        flow_state=record.flow_state,
        business_name=record.business_name,
        industry=record.industry,
        readiness_score=record.readiness_score,
    )


async def _advance_if_behind(flow: FlowService, consultation_id: str, target: FlowState, reason: str) -> None:
    """Advance to ``target`` unless the record is already there or further along."""
    next_state = await flow.current_state(consultation_id)
    if next_state < target:
        await flow.advance(consultation_id, target, reason)


@router.post("", response_model=ConsultationResponse)
async def start_consultation(
    request: StartConsultationRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
):
    """Start a new consultation. Any in-progress consultation is abandoned first."""
    record = await service.start(owner.owner_id, prefill=request.prefill)
    return ConsultationResponse.from_record(record)


@router.get("", response_model=list[ConsultationSummary])
async def list_consultations(
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
):
    records = await service.list_for_owner(owner.owner_id)
    return [_summary(record) for record in records]


@router.get("/search", response_model=SearchResponse)
async def search_consultations(
    q: str = Query(..., min_length=1),
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    debouncer: LatestOnlyDebouncer = Depends(get_search_debouncer),
):
    """Search-as-you-type lookup. A newer search from the same owner supersedes this one."""
    result = await debouncer.run(f"search:{owner.owner_id}", service.search, owner.owner_id, q)
    if result.superseded:
        return SearchResponse(query=q, superseded=True)
    return SearchResponse(query=q, results=[_summary(record) for record in result.value])


@router.get("/{consultation_id}", response_model=ConsultationResponse)
async def get_consultation(
    consultation_id: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
):
    record = await service.get(owner.owner_id, consultation_id)
    return ConsultationResponse.from_record(record)


@router.post("/{consultation_id}/answers", response_model=ConsultationResponse)
async def submit_answer(
    consultation_id: str,
    request: AnswerRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
):
    """Record one answer as user input.

    Raises:
        HTTPException(400): If the answer fails validation or the consultation is closed
        HTTPException(404): If not found or owned by someone else
    """
    record = await service.submit_answer(owner.owner_id, consultation_id, request.field, request.value)
    return ConsultationResponse.from_record(record)


@router.post("/{consultation_id}/intelligence", response_model=MergeResponse)
async def merge_intelligence(
    consultation_id: str,
    request: IntelligenceFragmentRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    accumulator: AccumulatorService = Depends(get_accumulator),
    publisher: ProgressPublisher = Depends(get_publisher),
):
    """Merge a fragment with the given source tier.

    Raises:
        MergeConflictError: If concurrent writers kept the fragment from being stored (409)
    """
    record = await service.get(owner.owner_id, consultation_id)
    outcome = await accumulator.merge(str(record.id), request.fragment, request.tier)
    if outcome is None:
        # Abandoned records accept no more intelligence
        return MergeResponse(
            session_id=str(record.id),
            applied=False,
            readiness_score=record.readiness_score,
            completion_stage=get_completion_stage(
                record.extracted_intelligence,
                score=record.readiness_score,
                ready_threshold=accumulator.ready_threshold,
            ).value,
        )
    if outcome.changed_paths:
        await publisher.publish(
            outcome.session_id,
            ConsultationEventType.MERGED,
            source=request.source,
            changed=outcome.changed_paths,
            readiness_score=outcome.readiness_score,
        )
    return MergeResponse(
        session_id=outcome.session_id,
        applied=outcome.applied,
        readiness_score=outcome.readiness_score,
        completion_stage=outcome.completion_stage.value,
        changed_paths=outcome.changed_paths,
        ignored_paths=outcome.ignored_paths,
    )


@router.post("/{consultation_id}/gather", response_model=GatherAcceptedResponse, status_code=202)
async def gather_intelligence(
    consultation_id: str,
    request: GatherRequest,
    background_tasks: BackgroundTasks,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    accumulator: AccumulatorService = Depends(get_accumulator),
    producer: IntelligenceProducer = Depends(get_producer),
    publisher: ProgressPublisher = Depends(get_publisher),
):
    """Run producers in the background. Progress streams on the events endpoint."""
    record = await service.get(owner.owner_id, consultation_id)
    gatherer = IntelligenceGatherer(
        producer,
        accumulator,
        publisher=publisher,
        timeout_seconds=get_settings().producer_timeout_seconds,
    )
    requests = [ProducerRequest(name=item.name, payload=item.payload) for item in request.producers]
    background_tasks.add_task(gatherer.gather, str(record.id), requests)

    return GatherAcceptedResponse(
        consultation_id=str(record.id),
        channel=events_channel(str(record.id)),
        producers=[item.name for item in request.producers],
    )


@router.get("/{consultation_id}/events/stream")
async def stream_consultation_events(
    consultation_id: str,
    request: Request,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    publisher: ProgressPublisher = Depends(get_publisher),
):
    """Stream progress events via SSE with a 15-second heartbeat.

    Closes the stream after the gathering-completed event.

    Raises:
        HTTPException(404): If not found or owned by someone else
    """
    record = await service.get(owner.owner_id, consultation_id)
    redis = publisher.redis
    channel = events_channel(str(record.id))

    async def event_generator():
        if redis is None:
            yield "event: unavailable\ndata: {}\n\n"
            return

        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        last_heartbeat = time.monotonic()

        try:
            while True:
                if await request.is_disconnected():
                    return

                now = time.monotonic()
                if now - last_heartbeat >= _EVENTS_HEARTBEAT_INTERVAL:
                    yield "event: heartbeat\ndata: {}\n\n"
                    last_heartbeat = now

                try:
                    message = await asyncio.wait_for(
                        pubsub.get_message(ignore_subscribe_messages=True),
                        timeout=1.0,
                    )
                except TimeoutError:
                    continue

                if message and message["type"] == "message":
                    yield f"data: {message['data']}\n\n"
                    last_heartbeat = time.monotonic()
                    try:
                        data = json.loads(message["data"])
                        if data.get("type") in TERMINAL_EVENT_TYPES:
                            return
                    except (json.JSONDecodeError, TypeError):
                        pass
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{consultation_id}/readiness", response_model=ReadinessResponse)
async def get_readiness(
    consultation_id: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
):
    """Readiness breakdown plus the checklist resume point."""
    record = await service.get(owner.owner_id, consultation_id)
    intelligence = record.extracted_intelligence or {}
    answers = record_answers(record)
    threshold = get_settings().readiness_skip_ahead_threshold
    return ReadinessResponse(
        consultation_id=str(record.id),
        readiness_score=record.readiness_score,
        completion_stage=get_completion_stage(intelligence, score=record.readiness_score, ready_threshold=threshold).value,
        breakdown=readiness_breakdown(intelligence),
        resume_field=resume_point(answers).field,
        answered=answered_steps(answers),
    )


@router.post("/{consultation_id}/strategy-brief", response_model=ConsultationResponse)
async def attach_strategy_brief(
    consultation_id: str,
    request: StrategyBriefRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    """Store the generated strategy brief and record the brief_generated milestone."""
    record = await service.attach_strategy_brief(owner.owner_id, consultation_id, request.brief)
    await _advance_if_behind(flow, str(record.id), FlowState.BRIEF_GENERATED, "strategy_brief_generated")
    return ConsultationResponse.from_record(await service.get(owner.owner_id, consultation_id))


@router.post("/{consultation_id}/publish", response_model=ConsultationResponse)
async def publish_page(
    consultation_id: str,
    request: PublishRequest,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    record = await service.record_published_page(owner.owner_id, consultation_id, request.page_url)
    await _advance_if_behind(flow, str(record.id), FlowState.PUBLISHED, "page_published")
    return ConsultationResponse.from_record(await service.get(owner.owner_id, consultation_id))


@router.post("/{consultation_id}/complete", response_model=ConsultationResponse)
async def complete_consultation(
    consultation_id: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
    flow: FlowService = Depends(get_flow_service),
):
    record = await service.complete(owner.owner_id, consultation_id)
    await _advance_if_behind(flow, str(record.id), FlowState.CONSULTATION_COMPLETE, "consultation_completed")
    return ConsultationResponse.from_record(await service.get(owner.owner_id, consultation_id))


@router.post("/{consultation_id}/abandon", response_model=ConsultationResponse)
async def abandon_consultation(
    consultation_id: str,
    owner: AuthenticatedOwner = Depends(require_auth),
    service: ConsultationService = Depends(get_consultation_service),
):
    record = await service.abandon(owner.owner_id, consultation_id)
    return ConsultationResponse.from_record(record)
