"""ConsultationRecord model: one owner-scoped onboarding attempt."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid, text

from consultflow.db.base import Base
from consultflow.db.utils import utcnow


class ConsultationRecord(Base):
    __tablename__ = "consultations"
    __table_args__ = (
        # At most one in-progress consultation per owner
        Index(
            "uq_consultations_owner_in_progress",
            "owner_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(String(255), nullable=True, index=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default="in_progress")  # in_progress, completed, abandoned
    flow_state = Column(String(40), nullable=False, default="signed_up")
    version = Column(Integer, nullable=False, default=0)

    # Checklist answers (projection of extracted_intelligence["consultation"])
    industry = Column(String(255), nullable=True)
    goal = Column(Text, nullable=True)
    target_audience = Column(Text, nullable=True)
    service_type = Column(String(255), nullable=True)
    challenge = Column(Text, nullable=True)
    unique_value = Column(Text, nullable=True)
    competitive_differentiator = Column(Text, nullable=True)
    pain_points = Column(JSON, nullable=False, default=list)
    authority_markers = Column(JSON, nullable=False, default=list)
    offer = Column(Text, nullable=True)
    business_name = Column(String(255), nullable=True)
    website_url = Column(String(2048), nullable=True)
    communication_style = Column(JSON, nullable=True)  # {tone, voice, ...}
    brand_assets = Column(JSON, nullable=False, default=dict)  # logo, colour triple, font pair

    # Accumulator
    extracted_intelligence = Column(JSON, nullable=False, default=dict)
    readiness_score = Column(Integer, nullable=False, default=0)

    # Downstream artifacts
    strategy_brief = Column(JSON, nullable=True)
    published_page_url = Column(String(2048), nullable=True)

    # Demo session this record was claimed from
    demo_session_id = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
