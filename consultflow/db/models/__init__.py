"""Re-export all models so Base.metadata sees them."""

from consultflow.db.models.consultation import ConsultationRecord
from consultflow.db.models.consultation_draft import ConsultationDraft
from consultflow.db.models.demo_session import DemoSession
from consultflow.db.models.flow_event import FlowEvent

__all__ = [
    "ConsultationDraft",
    "ConsultationRecord",
    "DemoSession",
    "FlowEvent",
]
