"""Tests for routing reads and forward-only flow-state writes."""

import asyncio
import json
import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from consultflow.core.exceptions import FlowStateRegressionError
from consultflow.domain.flow_states import ConfirmationType, FlowState
from consultflow.domain.precedence import SourceTier
from consultflow.domain.routing import DEMO_ROUTE
from consultflow.services.accumulator_service import AccumulatorService
from consultflow.services.consultation_service import ConsultationService
from consultflow.services.events import ConsultationEventType, ProgressPublisher, events_channel
from consultflow.services.flow_service import FlowService

pytestmark = pytest.mark.integration


@pytest.fixture
def consultations(session_factory):
    return ConsultationService(session_factory)


@pytest.fixture
def flow(session_factory):
    return FlowService(session_factory)


async def test_advance_moves_forward_and_records_event(consultations, flow):
    record = await consultations.start("owner-1")

    result = await flow.advance(record.id, FlowState.BRAND_CAPTURED, "brand_confirmed")

    assert result.changed is True
    assert result.previous == FlowState.SIGNED_UP
    assert result.current == FlowState.BRAND_CAPTURED
    assert await flow.current_state(record.id) == FlowState.BRAND_CAPTURED

    events = await flow.history(record.id)
    assert [(event.from_state, event.to_state) for event in events] == [
        (None, "signed_up"),
        ("signed_up", "brand_captured"),
    ]
    assert events[-1].reason == "brand_confirmed"


async def test_advance_to_current_state_is_noop(consultations, flow):
    record = await consultations.start("owner-1")

    result = await flow.advance(record.id, FlowState.SIGNED_UP)

    assert result.changed is False
    assert len(await flow.history(record.id)) == 1


async def test_regression_is_rejected_and_not_written(consultations, flow):
    record = await consultations.start("owner-1")
    await flow.advance(record.id, FlowState.BRIEF_GENERATED)

    with pytest.raises(FlowStateRegressionError) as exc_info:
        await flow.advance(record.id, FlowState.BRAND_CAPTURED)

    assert exc_info.value.current == "brief_generated"
    assert exc_info.value.requested == "brand_captured"
    assert await flow.current_state(record.id) == FlowState.BRIEF_GENERATED


async def test_advance_unknown_consultation(flow):
    with pytest.raises(HTTPException) as exc_info:
        await flow.advance(uuid.uuid4(), FlowState.BRAND_CAPTURED)
    assert exc_info.value.status_code == 404


async def test_concurrent_advances_never_move_backwards(consultations, flow):
    """Racing writers end at the furthest milestone requested."""
    record = await consultations.start("owner-1")

    await asyncio.gather(
        flow.advance(record.id, FlowState.BRAND_CAPTURED),
        flow.advance(record.id, FlowState.CONSULTATION_COMPLETE),
        return_exceptions=True,
    )

    assert await flow.current_state(record.id) == FlowState.CONSULTATION_COMPLETE
    states = [FlowState.from_slug(event.to_state) for event in await flow.history(record.id)]
    assert states == sorted(states)


async def test_next_step_does_not_write(consultations, flow, session_factory):
    record = await consultations.start("owner-1")
    accumulator = AccumulatorService(session_factory)
    await accumulator.merge(
        str(record.id),
        {
            "consultation": {
                "industry": "B2B SaaS",
                "target_audience": "CFOs at mid-market companies",
                "unique_value": "Closes the books in two days",
                "competitive_differentiator": "Only tool with native ERP sync",
                "pain_points": ["Slow close"],
                "authority_markers": ["SOC 2 Type II"],
            }
        },
        SourceTier.USER_INPUT,
    )
    before = await consultations.get("owner-1", record.id)

    decision = await flow.next_step(record.id)

    after = await consultations.get("owner-1", record.id)
    assert decision.confirmation_type == ConfirmationType.PRE_BRIEF
    assert after.flow_state == before.flow_state
    assert after.version == before.version


async def test_next_step_for_missing_consultation_routes_to_demo(flow):
    assert (await flow.next_step(uuid.uuid4())).route == DEMO_ROUTE


async def test_advance_publishes_flow_event(consultations, session_factory, redis_client):
    record = await consultations.start("owner-1")
    flow = FlowService(session_factory, publisher=ProgressPublisher(redis_client))

    # Capture published payloads
    redis_client.publish = AsyncMock()

    await flow.advance(record.id, FlowState.BRAND_CAPTURED, "brand_confirmed")

    redis_client.publish.assert_called_once()
    channel, raw = redis_client.publish.call_args[0]
    assert channel == events_channel(str(record.id))
    event = json.loads(raw)
    assert event["type"] == ConsultationEventType.FLOW_ADVANCED
    assert event["from_state"] == "signed_up"
    assert event["to_state"] == "brand_captured"
    assert event["reason"] == "brand_confirmed"


async def test_noop_advance_publishes_nothing(consultations, session_factory, redis_client):
    record = await consultations.start("owner-1")
    flow = FlowService(session_factory, publisher=ProgressPublisher(redis_client))
    redis_client.publish = AsyncMock()

    await flow.advance(record.id, FlowState.SIGNED_UP)

    redis_client.publish.assert_not_called()
