"""ConsultationDraft model: advisory wizard snapshot, never the system of record."""

import uuid

from sqlalchemy import JSON, Column, DateTime, String, Uuid

from consultflow.db.base import Base
from consultflow.db.utils import utcnow


class ConsultationDraft(Base):
    __tablename__ = "consultation_drafts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(String(255), nullable=False, unique=True, index=True)

    wizard_data = Column(JSON, nullable=False, default=dict)  # raw wizard answers as snapshotted
    current_step = Column(String(50), nullable=True)  # cache only, re-derivable from field presence

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
