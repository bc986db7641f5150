"""DemoSession model: anonymous pre-signup chat, claimed exactly once."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Uuid

from consultflow.db.base import Base
from consultflow.db.utils import utcnow


class DemoSession(Base):
    __tablename__ = "demo_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(String(255), nullable=False, unique=True, index=True)  # opaque client token

    conversation_history = Column(JSON, nullable=False, default=list)  # [{role, content, timestamp}]
    message_count = Column(Integer, nullable=False, default=0)
    extracted_intelligence = Column(JSON, nullable=False, default=dict)
    market_research = Column(JSON, nullable=False, default=dict)
    readiness_score = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)

    # Set once, null -> owner, via conditional update
    claimed_by = Column(String(255), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
