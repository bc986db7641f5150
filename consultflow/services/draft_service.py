"""DraftService: wizard snapshots and the draft recovery choice.

The ConsultationRecord is the system of record. A draft is only offered when
it is newer than the record, still inside its TTL and holds meaningful
answers. The owner then picks one of three choices; none is applied
automatically.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from consultflow.db.models.consultation import ConsultationRecord
from consultflow.db.models.consultation_draft import ConsultationDraft
from consultflow.db.utils import as_utc, utcnow
from consultflow.domain.accumulator import is_supplied
from consultflow.domain.checklist import resume_point
from consultflow.services.consultation_service import open_consultation
from consultflow.services.flow_service import record_answers

logger = structlog.get_logger(__name__)


class DraftChoice(str, Enum):
    RESUME = "resume"
    START_FRESH = "start_fresh"
    DELETE = "delete"


@dataclass
class DraftCheck:
    """What the wizard should show on entry."""

    offered: bool
    consultation_id: str | None = None
    resume_field: str | None = None
    draft_updated_at: datetime | None = None
    record_updated_at: datetime | None = None
    choices: list[DraftChoice] = field(default_factory=list)


@dataclass
class DraftResolution:
    choice: DraftChoice
    consultation_id: str | None
    resume_field: str | None
    wizard_data: dict[str, Any] | None = None


def has_meaningful_data(wizard_data: dict | None) -> bool:
    return any(is_supplied(value) for value in (wizard_data or {}).values())


class DraftService:
    """Saves wizard drafts and resolves the recovery choice."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], ttl_hours: int = 24):
        self.session_factory = session_factory
        self.ttl = timedelta(hours=ttl_hours)

    async def _active_record(self, session: AsyncSession, owner_id: str) -> ConsultationRecord | None:
        result = await session.execute(
            select(ConsultationRecord).where(
                ConsultationRecord.owner_id == owner_id,
                ConsultationRecord.status == "in_progress",
            )
        )
        return result.scalar_one_or_none()

    async def _draft(self, session: AsyncSession, owner_id: str) -> ConsultationDraft | None:
        result = await session.execute(select(ConsultationDraft).where(ConsultationDraft.owner_id == owner_id))
        return result.scalar_one_or_none()

    async def save(
        self,
        owner_id: str,
        wizard_data: dict[str, Any],
        current_step: str | None = None,
    ) -> ConsultationDraft:
        """Upsert the owner's single draft snapshot."""
        async with self.session_factory() as session:
            draft = await self._draft(session, owner_id)
            if draft is None:
                draft = ConsultationDraft(owner_id=owner_id, wizard_data=dict(wizard_data), current_step=current_step)
                session.add(draft)
            else:
                draft.wizard_data = dict(wizard_data)
                flag_modified(draft, "wizard_data")
                draft.current_step = current_step
                draft.updated_at = utcnow()
            await session.commit()
            await session.refresh(draft)
            return draft

    async def get(self, owner_id: str) -> ConsultationDraft | None:
        async with self.session_factory() as session:
            return await self._draft(session, owner_id)

    async def check(self, owner_id: str, now: datetime | None = None) -> DraftCheck:
        """Decide whether to offer draft recovery.

        Args:
            owner_id: Authenticated owner
            now: Current time (for deterministic testing)
        """
        now = now or utcnow()
        async with self.session_factory() as session:
            record = await self._active_record(session, owner_id)
            draft = await self._draft(session, owner_id)

        consultation_id = str(record.id) if record else None
        resume_field = resume_point(record_answers(record)).field if record else "industry"
        record_updated_at = as_utc(record.updated_at) if record else None

        if draft is None or not has_meaningful_data(draft.wizard_data):
            return DraftCheck(False, consultation_id, resume_field, record_updated_at=record_updated_at)

        draft_updated_at = as_utc(draft.updated_at)
        expired = now - draft_updated_at > self.ttl
        stale = record_updated_at is not None and draft_updated_at <= record_updated_at
        if expired or stale:
            logger.info("draft_not_offered", owner_id=owner_id, expired=expired, stale=stale)
            return DraftCheck(
                False,
                consultation_id,
                resume_field,
                draft_updated_at=draft_updated_at,
                record_updated_at=record_updated_at,
            )

        return DraftCheck(
            True,
            consultation_id,
            resume_field,
            draft_updated_at=draft_updated_at,
            record_updated_at=record_updated_at,
            choices=list(DraftChoice),
        )

    async def resolve(self, owner_id: str, choice: DraftChoice) -> DraftResolution:
        """Apply the owner's draft choice.

        - resume: return the draft's raw wizard_data untouched; the draft is kept
        - start_fresh: delete the draft, abandon the in-progress record, open a new one
        - delete: delete the draft, resume from checklist evaluation
        """
        async with self.session_factory() as session:
            draft = await self._draft(session, owner_id)
            record = await self._active_record(session, owner_id)

            if choice == DraftChoice.RESUME:
                wizard_data = dict(draft.wizard_data) if draft else None
                resume_field = draft.current_step if draft and draft.current_step else None
                if resume_field is None and record is not None:
                    resume_field = resume_point(record_answers(record)).field
                logger.info("draft_resumed", owner_id=owner_id, found=draft is not None)
                return DraftResolution(
                    choice=choice,
                    consultation_id=str(record.id) if record else None,
                    resume_field=resume_field,
                    wizard_data=wizard_data,
                )

            await session.execute(delete(ConsultationDraft).where(ConsultationDraft.owner_id == owner_id))

            if choice == DraftChoice.START_FRESH:
                fresh = await open_consultation(session, owner_id)
                await session.commit()
                logger.info(
                    "draft_discarded_start_fresh",
                    owner_id=owner_id,
                    abandoned=str(record.id) if record else None,
                    consultation_id=str(fresh.id),
                )
                return DraftResolution(choice=choice, consultation_id=str(fresh.id), resume_field="industry")

            await session.commit()
            logger.info("draft_deleted", owner_id=owner_id)
            return DraftResolution(
                choice=choice,
                consultation_id=str(record.id) if record else None,
                resume_field=resume_point(record_answers(record)).field if record else "industry",
            )
