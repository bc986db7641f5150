"""DemoService: anonymous pre-signup sessions.

Sessions are addressed by an opaque token, not the row id. Once claimed a
session is read-only input for the claim protocol.
"""

import secrets

import structlog
from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultflow.db.models.demo_session import DemoSession
from consultflow.db.utils import utcnow
from consultflow.domain.precedence import SourceTier
from consultflow.services.accumulator_service import AccumulatorService, MergeOutcome, SessionKind

logger = structlog.get_logger(__name__)

VALID_ROLES = {"user", "assistant"}


class DemoService:
    """Service layer for demo chat sessions."""

    MAX_APPEND_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        accumulator: AccumulatorService | None = None,
    ):
        self.session_factory = session_factory
        self.accumulator = accumulator or AccumulatorService(session_factory)

    async def create(self) -> DemoSession:
        demo = DemoSession(session_id=secrets.token_urlsafe(24))
        async with self.session_factory() as session:
            session.add(demo)
            await session.commit()
            await session.refresh(demo)

        logger.info("demo_session_created", session_token=demo.session_id)
        return demo

    async def get(self, session_token: str) -> DemoSession:
        """Raises HTTPException(404) for unknown tokens."""
        async with self.session_factory() as session:
            result = await session.execute(select(DemoSession).where(DemoSession.session_id == session_token))
            demo = result.scalar_one_or_none()
        if demo is None:
            raise HTTPException(status_code=404, detail="Demo session not found")
        return demo

    async def append_message(self, session_token: str, role: str, content: str) -> DemoSession:
        """Append one chat turn.

        Raises:
            HTTPException(400): If role is not user/assistant
            HTTPException(404): If the session does not exist
            HTTPException(409): If the session has been claimed
        """
        if role not in VALID_ROLES:
            raise HTTPException(status_code=400, detail=f"Invalid role: {role}")

        for _ in range(self.MAX_APPEND_ATTEMPTS):
            demo = await self.get(session_token)
            if demo.claimed_by is not None:
                raise HTTPException(status_code=409, detail="Demo session has already been claimed")

            history = list(demo.conversation_history or [])
            history.append({"role": role, "content": content, "timestamp": utcnow().isoformat()})

            async with self.session_factory() as session:
                result = await session.execute(
                    update(DemoSession)
                    .where(
                        DemoSession.id == demo.id,
                        DemoSession.version == demo.version,
                        DemoSession.claimed_by.is_(None),
                    )
                    .values(
                        conversation_history=history,
                        message_count=len(history),
                        version=demo.version + 1,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await session.commit()
                    return await self.get(session_token)
                await session.rollback()

        raise HTTPException(status_code=409, detail="Demo session is changing concurrently, retry the request")

    async def merge_intelligence(self, session_token: str, fragment: dict, source: SourceTier) -> MergeOutcome:
        """Merge extracted intelligence into an unclaimed demo session.

        Raises:
            HTTPException(404): If the session does not exist
            HTTPException(409): If the session has been claimed
            MergeConflictError: If concurrent writers kept the fragment from being stored
        """
        demo = await self.get(session_token)
        if demo.claimed_by is not None:
            raise HTTPException(status_code=409, detail="Demo session has already been claimed")

        outcome = await self.accumulator.merge(session_token, fragment, source, kind=SessionKind.DEMO)
        if outcome is None:
            # Claimed between the read and the merge
            raise HTTPException(status_code=409, detail="Demo session has already been claimed")
        return outcome
