"""AccumulatorService: persists precedence-aware intelligence merges.

Merges into the same session are serialized by a ``version`` compare-and-swap:
read, merge in memory, then ``UPDATE ... WHERE version = <read version>``. A
lost race re-reads and re-merges, so interleaved producer completions never
drop each other's fields. A writer that loses every attempt raises
MergeConflictError rather than reporting success. Different sessions never
contend.
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultflow.core.exceptions import MergeConflictError
from consultflow.db.models.consultation import ConsultationRecord
from consultflow.db.models.demo_session import DemoSession
from consultflow.db.utils import parse_uuid, utcnow
from consultflow.domain.accumulator import merge_fragment, project_columns
from consultflow.domain.precedence import SourceTier
from consultflow.domain.readiness import CompletionStage, compute_readiness, get_completion_stage

logger = structlog.get_logger(__name__)


class SessionKind(str, Enum):
    CONSULTATION = "consultation"
    DEMO = "demo"


@dataclass
class MergeOutcome:
    """Result of one persisted merge."""

    session_id: str
    applied: bool
    readiness_score: int
    completion_stage: CompletionStage
    changed_paths: list[str] = field(default_factory=list)
    ignored_paths: list[str] = field(default_factory=list)
    attempts: int = 1


class AccumulatorService:
    """Merges intelligence fragments into consultation and demo records."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        ready_threshold: int = 50,
    ):
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.ready_threshold = ready_threshold

    async def _load(self, session: AsyncSession, session_id: str, kind: SessionKind):
        if kind == SessionKind.DEMO:
            result = await session.execute(select(DemoSession).where(DemoSession.session_id == session_id))
            return result.scalar_one_or_none()

        record_id = parse_uuid(session_id)
        if record_id is None:
            return None
        result = await session.execute(select(ConsultationRecord).where(ConsultationRecord.id == record_id))
        return result.scalar_one_or_none()

    async def merge(
        self,
        session_id: str,
        fragment: dict,
        source: SourceTier,
        kind: SessionKind = SessionKind.CONSULTATION,
    ) -> MergeOutcome | None:
        """Merge ``fragment`` from ``source`` into the session's accumulated intelligence.

        Returns:
            MergeOutcome, or None when the session is gone, abandoned or
            (for demo sessions) already claimed. Such fragments are dropped
            and logged.

        Raises:
            MergeConflictError: If every compare-and-swap attempt lost to another writer
        """
        model = DemoSession if kind == SessionKind.DEMO else ConsultationRecord

        for attempt in range(1, self.max_attempts + 1):
            async with self.session_factory() as session:
                row = await self._load(session, session_id, kind)

                if row is None:
                    logger.info("merge_dropped_missing_session", session_id=session_id, kind=kind.value, source=source.slug)
                    return None
                if kind == SessionKind.DEMO and row.claimed_by is not None:
                    logger.info("merge_dropped_claimed_session", session_id=session_id, source=source.slug)
                    return None
                if kind == SessionKind.CONSULTATION and row.status == "abandoned":
                    logger.info("merge_dropped_abandoned_session", session_id=session_id, source=source.slug)
                    return None

                application = merge_fragment(row.extracted_intelligence, fragment, source)
                blob = application.intelligence
                score = compute_readiness(blob)
                stage = get_completion_stage(blob, score=score, ready_threshold=self.ready_threshold)

                if not application.changed:
                    return MergeOutcome(
                        session_id=session_id,
                        applied=True,
                        readiness_score=row.readiness_score,
                        completion_stage=stage,
                        ignored_paths=application.ignored_paths,
                        attempts=attempt,
                    )

                blob["readiness_score"] = score
                blob["completion_stage"] = stage.value

                values = {
                    "extracted_intelligence": blob,
                    "readiness_score": score,
                    "version": row.version + 1,
                    "updated_at": utcnow(),
                }
                if kind == SessionKind.CONSULTATION:
                    values.update(project_columns(blob))
                else:
                    values["market_research"] = blob.get("market", {})

                result = await session.execute(
                    update(model)
                    .where(model.id == row.id, model.version == row.version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    await session.commit()
                    logger.info(
                        "intelligence_merged",
                        session_id=session_id,
                        kind=kind.value,
                        source=source.slug,
                        changed=application.changed_paths,
                        ignored=len(application.ignored_paths),
                        readiness_score=score,
                        attempt=attempt,
                    )
                    return MergeOutcome(
                        session_id=session_id,
                        applied=True,
                        readiness_score=score,
                        completion_stage=stage,
                        changed_paths=application.changed_paths,
                        ignored_paths=application.ignored_paths,
                        attempts=attempt,
                    )

                await session.rollback()
                logger.info("merge_version_conflict", session_id=session_id, kind=kind.value, attempt=attempt)

        logger.warning("merge_conflict_exhausted", session_id=session_id, kind=kind.value, attempts=self.max_attempts)
        raise MergeConflictError(session_id, self.max_attempts)
