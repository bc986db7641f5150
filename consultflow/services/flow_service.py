"""FlowService: routing reads and forward-only flow-state writes.

``next_step`` only reads. ``advance`` is the sole writer of ``flow_state``
and appends a FlowEvent for every accepted move.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultflow.core.exceptions import FlowStateRegressionError
from consultflow.db.models.consultation import ConsultationRecord
from consultflow.db.models.flow_event import FlowEvent
from consultflow.db.utils import parse_uuid, utcnow
from consultflow.domain.accumulator import CONSULTATION_COLUMNS, is_supplied
from consultflow.domain.flow_states import FlowState, check_advance
from consultflow.domain.routing import FlowDecision, RoutingSnapshot, RoutingThresholds, next_step
from consultflow.services.events import ConsultationEventType, ProgressPublisher

logger = structlog.get_logger(__name__)


@dataclass
class AdvanceResult:
    """Outcome of an advance request that did not violate monotonicity."""

    consultation_id: str
    previous: FlowState
    current: FlowState
    changed: bool
    reason: str = ""


def record_answers(record: ConsultationRecord) -> dict:
    """Column-keyed answers used by the checklist."""
    return {column: getattr(record, column) for column in CONSULTATION_COLUMNS}


def build_snapshot(record: ConsultationRecord) -> RoutingSnapshot:
    brand = record.brand_assets or {}
    return RoutingSnapshot(
        flow_state=FlowState.from_slug(record.flow_state),
        readiness_score=record.readiness_score or 0,
        has_strategy_brief=bool(record.strategy_brief),
        has_brand_data=any(is_supplied(value) for value in brand.values()),
        has_published_page=bool(record.published_page_url),
        answers=record_answers(record),
    )


class FlowService:
    """Reads routing decisions and records flow milestones."""

    MAX_ADVANCE_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: RoutingThresholds | None = None,
        publisher: ProgressPublisher | None = None,
    ):
        self.session_factory = session_factory
        self.thresholds = thresholds or RoutingThresholds()
        self.publisher = publisher or ProgressPublisher(None)

    async def _load(self, session: AsyncSession, consultation_id: str | UUID) -> ConsultationRecord | None:
        record_id = parse_uuid(consultation_id)
        if record_id is None:
            return None
        result = await session.execute(select(ConsultationRecord).where(ConsultationRecord.id == record_id))
        return result.scalar_one_or_none()

    async def next_step(self, consultation_id: str | UUID) -> FlowDecision:
        """Decide the next screen for a consultation. Never writes."""
        async with self.session_factory() as session:
            record = await self._load(session, consultation_id)

        snapshot = build_snapshot(record) if record is not None else None
        return next_step(snapshot, self.thresholds)

    async def current_state(self, consultation_id: str | UUID) -> FlowState:
        """Raises HTTPException(404) if the consultation does not exist."""
        async with self.session_factory() as session:
            record = await self._load(session, consultation_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Consultation not found")
        return FlowState.from_slug(record.flow_state)

    async def history(self, consultation_id: str | UUID) -> list[FlowEvent]:
        record_id = parse_uuid(consultation_id)
        if record_id is None:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(FlowEvent)
                .where(FlowEvent.consultation_id == record_id)
                .order_by(FlowEvent.created_at.asc())
            )
            return list(result.scalars().all())

    async def advance(self, consultation_id: str | UUID, new_state: FlowState, reason: str = "") -> AdvanceResult:
        """Record a milestone, forward only.

        Writes with a compare-and-swap on the observed state. If another writer
        moves the record first and it is now at or past ``new_state``, the
        request is treated as already satisfied.

        Raises:
            HTTPException(404): If the consultation does not exist
            FlowStateRegressionError: If ``new_state`` is behind the current state
        """
        for attempt in range(1, self.MAX_ADVANCE_ATTEMPTS + 1):
            async with self.session_factory() as session:
                record = await self._load(session, consultation_id)
                if record is None:
                    raise HTTPException(status_code=404, detail="Consultation not found")

                current = FlowState.from_slug(record.flow_state)
                check = check_advance(current, new_state)

                if check.noop:
                    return AdvanceResult(str(record.id), current, current, changed=False, reason=check.reason)

                if check.regression:
                    if attempt > 1:
                        # A concurrent writer already moved past the requested milestone
                        logger.info(
                            "flow_advance_superseded",
                            consultation_id=str(record.id),
                            current=current.slug,
                            requested=new_state.slug,
                        )
                        return AdvanceResult(str(record.id), current, current, changed=False, reason="Superseded")
                    logger.error(
                        "flow_state_regression_rejected",
                        consultation_id=str(record.id),
                        current=current.slug,
                        requested=new_state.slug,
                        reason=reason,
                    )
                    raise FlowStateRegressionError(str(record.id), current.slug, new_state.slug)

                result = await session.execute(
                    update(ConsultationRecord)
                    .where(
                        ConsultationRecord.id == record.id,
                        ConsultationRecord.flow_state == current.slug,
                    )
                    .values(
                        flow_state=new_state.slug,
                        version=ConsultationRecord.version + 1,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    logger.info("flow_advance_conflict", consultation_id=str(record.id), attempt=attempt)
                    continue

                session.add(
                    FlowEvent(
                        consultation_id=record.id,
                        from_state=current.slug,
                        to_state=new_state.slug,
                        reason=reason or None,
                    )
                )
                await session.commit()

            logger.info(
                "flow_state_advanced",
                consultation_id=str(record.id),
                from_state=current.slug,
                to_state=new_state.slug,
                reason=reason,
            )
            await self.publisher.publish(
                str(record.id),
                ConsultationEventType.FLOW_ADVANCED,
                from_state=current.slug,
                to_state=new_state.slug,
                reason=reason,
            )
            return AdvanceResult(str(record.id), current, new_state, changed=True, reason=check.reason)

        raise HTTPException(status_code=409, detail="Flow state is changing concurrently, retry the request")
