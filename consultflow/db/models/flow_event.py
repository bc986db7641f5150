"""FlowEvent model: append-only flow-state history."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid

from consultflow.db.base import Base
from consultflow.db.utils import utcnow


class FlowEvent(Base):
    __tablename__ = "flow_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    consultation_id = Column(Uuid(as_uuid=True), ForeignKey("consultations.id"), nullable=False, index=True)

    from_state = Column(String(40), nullable=True)  # null for the initial milestone
    to_state = Column(String(40), nullable=False)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    # NO updated_at -- events are immutable (append-only)
