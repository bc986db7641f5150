"""ConsultationService: consultation lifecycle and checklist answers.

Responsibilities:
- Start: abandon any in-progress record for the owner, then create one (same transaction)
- Answers: validate against the checklist, merge as user input through the accumulator
- Artifacts: attach strategy brief and published page
- Complete / abandon
- Owner isolation via owner_id filtering
"""

from typing import Any
from uuid import UUID

import structlog
from fastapi import HTTPException
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultflow.core.exceptions import AnswerValidationError, DuplicateConsultationError
from consultflow.db.models.consultation import ConsultationRecord
from consultflow.db.models.flow_event import FlowEvent
from consultflow.db.utils import parse_uuid, utcnow
from consultflow.domain.accumulator import (
    CONSULTATION_COLUMNS,
    fragment_for_field,
    merge_fragment,
    project_columns,
)
from consultflow.domain.checklist import STEP_COLUMNS, validate_answer
from consultflow.domain.flow_states import FlowState
from consultflow.domain.precedence import SourceTier
from consultflow.domain.readiness import compute_readiness, get_completion_stage
from consultflow.services.accumulator_service import AccumulatorService

logger = structlog.get_logger(__name__)

# Fields that can be edited directly besides the checklist steps
FREEFORM_FIELDS = frozenset(CONSULTATION_COLUMNS) - frozenset(STEP_COLUMNS.values())


async def open_consultation(
    session: AsyncSession,
    owner_id: str,
    flow_state: FlowState = FlowState.SIGNED_UP,
    intelligence: dict | None = None,
    demo_session_id: str | None = None,
    ready_threshold: int = 50,
) -> ConsultationRecord:
    """Abandon the owner's in-progress record and add a new one. Caller commits.

    Raises:
        DuplicateConsultationError: If the partial unique index still rejects the insert
    """
    now = utcnow()
    abandoned = await session.execute(
        update(ConsultationRecord)
        .where(
            ConsultationRecord.owner_id == owner_id,
            ConsultationRecord.status == "in_progress",
        )
        .values(status="abandoned", updated_at=now, version=ConsultationRecord.version + 1)
        .execution_options(synchronize_session=False)
    )
    if abandoned.rowcount:
        logger.info("consultation_abandoned_for_new_attempt", owner_id=owner_id, count=abandoned.rowcount)

    blob = intelligence or {}
    score = compute_readiness(blob)
    if blob:
        blob["readiness_score"] = score
        blob["completion_stage"] = get_completion_stage(blob, score=score, ready_threshold=ready_threshold).value

    record = ConsultationRecord(
        owner_id=owner_id,
        status="in_progress",
        flow_state=flow_state.slug,
        extracted_intelligence=blob,
        readiness_score=score,
        demo_session_id=demo_session_id,
        **project_columns(blob),
    )
    session.add(record)

    try:
        await session.flush()
    except IntegrityError as exc:
        logger.error("duplicate_in_progress_consultation", owner_id=owner_id, error=str(exc))
        raise DuplicateConsultationError(owner_id) from exc

    session.add(
        FlowEvent(
            consultation_id=record.id,
            from_state=None,
            to_state=flow_state.slug,
            reason="demo_claimed" if demo_session_id else "consultation_started",
        )
    )
    return record


class ConsultationService:
    """Service layer for owner-scoped consultation records."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        accumulator: AccumulatorService | None = None,
    ):
        self.session_factory = session_factory
        self.accumulator = accumulator or AccumulatorService(session_factory)

    async def start(self, owner_id: str, prefill: dict[str, Any] | None = None) -> ConsultationRecord:
        """Start a new consultation, abandoning any in-progress one.

        Args:
            owner_id: Authenticated owner
            prefill: Optional column-keyed answers, stored as user input

        Returns:
            The new in-progress ConsultationRecord
        """
        intelligence = None
        if prefill:
            consultation = {key: value for key, value in prefill.items() if key in CONSULTATION_COLUMNS}
            intelligence = merge_fragment(None, {"consultation": consultation}, SourceTier.USER_INPUT).intelligence

        async with self.session_factory() as session:
            record = await open_consultation(
                session,
                owner_id,
                intelligence=intelligence,
                ready_threshold=self.accumulator.ready_threshold,
            )
            await session.commit()
            await session.refresh(record)

        logger.info("consultation_started", owner_id=owner_id, consultation_id=str(record.id))
        return record

    async def _get_owned(self, session: AsyncSession, owner_id: str, consultation_id: str | UUID) -> ConsultationRecord:
        record_id = parse_uuid(consultation_id)
        if record_id is None:
            raise HTTPException(status_code=404, detail="Consultation not found")

        result = await session.execute(
            select(ConsultationRecord).where(
                ConsultationRecord.id == record_id,
                ConsultationRecord.owner_id == owner_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise HTTPException(status_code=404, detail="Consultation not found")
        return record

    async def get(self, owner_id: str, consultation_id: str | UUID) -> ConsultationRecord:
        """Get a consultation with owner isolation.

        Raises:
            HTTPException(404): If not found or owned by someone else
        """
        async with self.session_factory() as session:
            return await self._get_owned(session, owner_id, consultation_id)

    async def list_for_owner(self, owner_id: str) -> list[ConsultationRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ConsultationRecord)
                .where(ConsultationRecord.owner_id == owner_id)
                .order_by(ConsultationRecord.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_active(self, owner_id: str) -> ConsultationRecord | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ConsultationRecord).where(
                    ConsultationRecord.owner_id == owner_id,
                    ConsultationRecord.status == "in_progress",
                )
            )
            return result.scalar_one_or_none()

    async def search(self, owner_id: str, query: str, limit: int = 20) -> list[ConsultationRecord]:
        """Case-insensitive match on business name or industry."""
        pattern = f"%{query.strip()}%"
        async with self.session_factory() as session:
            result = await session.execute(
                select(ConsultationRecord)
                .where(
                    ConsultationRecord.owner_id == owner_id,
                    or_(
                        ConsultationRecord.business_name.ilike(pattern),
                        ConsultationRecord.industry.ilike(pattern),
                    ),
                )
                .order_by(ConsultationRecord.updated_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def submit_answer(
        self,
        owner_id: str,
        consultation_id: str,
        field: str,
        value: Any,
    ) -> ConsultationRecord:
        """Record a user answer for a checklist step or a freeform field.

        Checklist steps (``audience``, ``unique_value``...) are validated for
        minimum content. User input outranks every producer tier.

        Raises:
            HTTPException(404): If not found or owned by someone else
            HTTPException(400): If the consultation is not in progress
            AnswerValidationError: If the answer fails its minimum-content check
            MergeConflictError: If concurrent writers kept the answer from being stored
        """
        if field in STEP_COLUMNS:
            error = validate_answer(field, value)
            if error:
                raise AnswerValidationError(field, error)
            column = STEP_COLUMNS[field]
        elif field in FREEFORM_FIELDS:
            column = field
        else:
            raise AnswerValidationError(field, "Unknown field")

        record = await self.get(owner_id, consultation_id)
        if record.status != "in_progress":
            raise HTTPException(status_code=400, detail="Cannot answer questions in a completed or abandoned consultation")

        await self.accumulator.merge(str(record.id), fragment_for_field(column, value), SourceTier.USER_INPUT)
        return await self.get(owner_id, consultation_id)

    async def attach_strategy_brief(self, owner_id: str, consultation_id: str, brief: dict) -> ConsultationRecord:
        async with self.session_factory() as session:
            record = await self._get_owned(session, owner_id, consultation_id)
            record.strategy_brief = brief
            record.version = record.version + 1
            await session.commit()
            await session.refresh(record)
            return record

    async def record_published_page(self, owner_id: str, consultation_id: str, page_url: str) -> ConsultationRecord:
        async with self.session_factory() as session:
            record = await self._get_owned(session, owner_id, consultation_id)
            if not record.strategy_brief:
                raise HTTPException(status_code=400, detail="Cannot publish before a strategy brief exists")
            record.published_page_url = page_url
            record.version = record.version + 1
            await session.commit()
            await session.refresh(record)
            return record

    async def complete(self, owner_id: str, consultation_id: str) -> ConsultationRecord:
        """Mark an in-progress consultation completed.

        Raises:
            HTTPException(400): If the consultation is not in progress
        """
        async with self.session_factory() as session:
            record = await self._get_owned(session, owner_id, consultation_id)
            if record.status != "in_progress":
                raise HTTPException(status_code=400, detail="Only in-progress consultations can be completed")
            record.status = "completed"
            record.completed_at = utcnow()
            record.version = record.version + 1
            await session.commit()
            await session.refresh(record)

        logger.info("consultation_completed", owner_id=owner_id, consultation_id=str(record.id))
        return record

    async def abandon(self, owner_id: str, consultation_id: str) -> ConsultationRecord:
        async with self.session_factory() as session:
            record = await self._get_owned(session, owner_id, consultation_id)
            if record.status != "in_progress":
                raise HTTPException(status_code=400, detail="Only in-progress consultations can be abandoned")
            record.status = "abandoned"
            record.version = record.version + 1
            await session.commit()
            await session.refresh(record)

        logger.info("consultation_abandoned", owner_id=owner_id, consultation_id=str(record.id))
        return record
