"""ClaimService: converts an anonymous demo session into an owned consultation, once.

The claim is a conditional update (``claimed_by IS NULL``). Only the caller
whose update touched a row goes on to create a consultation. Everyone else is
routed into the plain checklist with no prefill.
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultflow.db.models.demo_session import DemoSession
from consultflow.db.utils import utcnow
from consultflow.domain.accumulator import SECTIONS, merge_fragment
from consultflow.domain.flow_states import FlowState
from consultflow.domain.precedence import SourceTier
from consultflow.domain.routing import FlowDecision, RoutingThresholds, checklist_decision, next_step
from consultflow.services.consultation_service import open_consultation
from consultflow.services.flow_service import build_snapshot

logger = structlog.get_logger(__name__)


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FOUND = "not_found"


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    decision: FlowDecision
    consultation_id: str | None = None
    prefilled_fields: list[str] = field(default_factory=list)

    @property
    def claimed(self) -> bool:
        return self.outcome == ClaimOutcome.CLAIMED


def demo_intelligence(demo: DemoSession) -> dict:
    """Demo data as one consultation blob, every leaf at the demo_chat tier."""
    extracted = demo.extracted_intelligence or {}
    fragment = {section: extracted.get(section) or {} for section in SECTIONS}
    application = merge_fragment(None, fragment, SourceTier.DEMO_CHAT)

    if demo.market_research:
        application = merge_fragment(
            application.intelligence,
            {"market": demo.market_research},
            SourceTier.DEMO_CHAT,
        )

    blob = application.intelligence
    blob["demo_readiness_score"] = demo.readiness_score
    return blob


class ClaimService:
    """Runs the claim protocol for authenticated owners."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: RoutingThresholds | None = None,
    ):
        self.session_factory = session_factory
        self.thresholds = thresholds or RoutingThresholds()

    async def claim(self, session_token: str, owner_id: str) -> ClaimResult:
        """Claim ``session_token`` for ``owner_id``.

        Returns:
            ClaimResult. A lost race is a normal outcome, not an error.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                update(DemoSession)
                .where(
                    DemoSession.session_id == session_token,
                    DemoSession.claimed_by.is_(None),
                )
                .values(claimed_by=owner_id, claimed_at=utcnow(), version=DemoSession.version + 1)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                await session.rollback()
                exists = await session.scalar(select(DemoSession.id).where(DemoSession.session_id == session_token))
                outcome = ClaimOutcome.ALREADY_CLAIMED if exists else ClaimOutcome.NOT_FOUND
                logger.info("demo_claim_lost", session_token=session_token, owner_id=owner_id, outcome=outcome.value)
                return ClaimResult(
                    outcome=outcome,
                    decision=checklist_decision({}, reasoning="Demo session unavailable; starting without prefill"),
                )

            demo = await session.scalar(select(DemoSession).where(DemoSession.session_id == session_token))
            intelligence = demo_intelligence(demo)
            record = await open_consultation(
                session,
                owner_id,
                flow_state=FlowState.SIGNED_UP,
                intelligence=intelligence,
                demo_session_id=session_token,
                ready_threshold=self.thresholds.skip_ahead,
            )
            await session.commit()
            await session.refresh(record)

        prefilled = sorted((record.extracted_intelligence or {}).get("provenance", {}).keys())
        logger.info(
            "demo_claimed",
            session_token=session_token,
            owner_id=owner_id,
            consultation_id=str(record.id),
            readiness_score=record.readiness_score,
            demo_readiness_score=intelligence.get("demo_readiness_score"),
            prefilled=len(prefilled),
        )
        return ClaimResult(
            outcome=ClaimOutcome.CLAIMED,
            decision=next_step(build_snapshot(record), self.thresholds),
            consultation_id=str(record.id),
            prefilled_fields=prefilled,
        )
