"""Tests for the demo session claim protocol."""

import asyncio

import pytest
from sqlalchemy import func, select

from consultflow.db.models.consultation import ConsultationRecord
from consultflow.domain.flow_states import ConfirmationType
from consultflow.domain.precedence import SourceTier
from consultflow.services.accumulator_service import AccumulatorService
from consultflow.services.claim_service import ClaimOutcome, ClaimService
from consultflow.services.consultation_service import ConsultationService
from consultflow.services.demo_service import DemoService
from consultflow.services.flow_service import FlowService

pytestmark = pytest.mark.integration

DEMO_FRAGMENT = {
    "consultation": {
        "industry": "B2B SaaS",
        "target_audience": "CFOs at mid-market companies",
        "unique_value": "Closes the books in two days",
        "competitive_differentiator": "Only tool with native ERP sync",
        "pain_points": ["Month-end close takes two weeks"],
        "authority_markers": ["SOC 2 Type II"],
    },
}


@pytest.fixture
def demos(session_factory):
    return DemoService(session_factory, AccumulatorService(session_factory))


@pytest.fixture
def claims(session_factory):
    return ClaimService(session_factory)


@pytest.fixture
async def ready_demo(demos):
    """Demo session with enough intelligence to score 70."""
    demo = await demos.create()
    await demos.merge_intelligence(demo.session_id, DEMO_FRAGMENT, SourceTier.DEMO_CHAT)
    await demos.merge_intelligence(demo.session_id, {"market": {"market_size": "$4.2B"}}, SourceTier.MARKET_RESEARCH)
    return await demos.get(demo.session_id)


async def test_claim_creates_prefilled_consultation(claims, ready_demo, session_factory):
    result = await claims.claim(ready_demo.session_id, "owner-1")

    assert result.claimed is True
    assert result.outcome == ClaimOutcome.CLAIMED
    assert "consultation.industry" in result.prefilled_fields
    assert "market.market_size" in result.prefilled_fields
    # Readiness 70 on a signed-up record asks for the pre-brief checkpoint
    assert result.decision.confirmation_type == ConfirmationType.PRE_BRIEF

    record = await ConsultationService(session_factory).get("owner-1", result.consultation_id)
    assert record.flow_state == "signed_up"
    assert record.status == "in_progress"
    assert record.industry == "B2B SaaS"
    assert record.readiness_score == 70
    assert record.demo_session_id == ready_demo.session_id
    blob = record.extracted_intelligence
    assert blob["provenance"]["consultation.industry"] == "demo_chat"
    assert blob["provenance"]["market.market_size"] == "demo_chat"
    assert blob["demo_readiness_score"] == 70


async def test_claim_marks_demo_claimed(claims, demos, ready_demo):
    await claims.claim(ready_demo.session_id, "owner-1")

    demo = await demos.get(ready_demo.session_id)
    assert demo.claimed_by == "owner-1"
    assert demo.claimed_at is not None


async def test_second_claim_gets_no_prefill(claims, ready_demo):
    await claims.claim(ready_demo.session_id, "owner-1")

    result = await claims.claim(ready_demo.session_id, "owner-2")

    assert result.claimed is False
    assert result.outcome == ClaimOutcome.ALREADY_CLAIMED
    assert result.consultation_id is None
    assert result.prefilled_fields == []
    assert result.decision.route == "/wizard?step=industry"


async def test_unknown_token(claims):
    result = await claims.claim("no-such-token", "owner-1")
    assert result.outcome == ClaimOutcome.NOT_FOUND
    assert result.decision.resume_field == "industry"


async def test_concurrent_claims_have_exactly_one_winner(claims, ready_demo, session_factory):
    results = await asyncio.gather(
        claims.claim(ready_demo.session_id, "owner-1"),
        claims.claim(ready_demo.session_id, "owner-2"),
    )

    winners = [result for result in results if result.claimed]
    losers = [result for result in results if not result.claimed]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].outcome == ClaimOutcome.ALREADY_CLAIMED

    async with session_factory() as session:
        count = await session.scalar(
            select(func.count())
            .select_from(ConsultationRecord)
            .where(ConsultationRecord.demo_session_id == ready_demo.session_id)
        )
    assert count == 1


async def test_claim_abandons_previous_in_progress_record(claims, ready_demo, session_factory):
    consultations = ConsultationService(session_factory)
    previous = await consultations.start("owner-1")

    result = await claims.claim(ready_demo.session_id, "owner-1")

    assert (await consultations.get("owner-1", previous.id)).status == "abandoned"
    active = await consultations.get_active("owner-1")
    assert str(active.id) == result.consultation_id


async def test_claim_records_initial_flow_event(claims, ready_demo, session_factory):
    result = await claims.claim(ready_demo.session_id, "owner-1")

    events = await FlowService(session_factory).history(result.consultation_id)

    assert [(event.from_state, event.to_state, event.reason) for event in events] == [
        (None, "signed_up", "demo_claimed")
    ]


async def test_claimed_demo_rejects_new_messages(claims, demos, ready_demo):
    from fastapi import HTTPException

    await claims.claim(ready_demo.session_id, "owner-1")

    with pytest.raises(HTTPException) as exc_info:
        await demos.append_message(ready_demo.session_id, "user", "one more thing")
    assert exc_info.value.status_code == 409
