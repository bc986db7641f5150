"""Progress events for consultations, published over Redis Pub/Sub.

Flat JSON envelope with a ``type`` discriminator on
``consultation:{id}:events``. Publishing is best-effort: a Redis outage is
logged and never fails the operation that emitted the event.
"""

import json
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)


class ConsultationEventType:
    """Event type constants for the consultation:{id}:events Pub/Sub channel."""

    STAGE_STARTED = "intelligence.stage.started"
    STAGE_COMPLETED = "intelligence.stage.completed"
    STAGE_FAILED = "intelligence.stage.failed"
    MERGED = "intelligence.merged"
    GATHERING_COMPLETED = "intelligence.gathering.completed"
    FLOW_ADVANCED = "flow.advanced"


# Events after which an SSE stream can close
TERMINAL_EVENT_TYPES = frozenset({ConsultationEventType.GATHERING_COMPLETED})

# Human-readable labels for producer stages
STAGE_LABELS: dict[str, str] = {
    "market_research": "Researching your market...",
    "website_extraction": "Reading your website...",
    "brand_guide": "Parsing your brand guide...",
    "demo_chat": "Reviewing our conversation...",
}


def events_channel(consultation_id: str) -> str:
    return f"consultation:{consultation_id}:events"


class ProgressPublisher:
    """Publishes consultation progress events. A None client makes it a no-op."""

    def __init__(self, redis: Redis | None):
        self.redis = redis

    async def publish(
        self,
        consultation_id: str,
        event_type: str,
        now: datetime | None = None,
        **payload,
    ) -> None:
        if self.redis is None:
            return

        now = now or datetime.now(UTC)
        envelope = {
            "type": event_type,
            "consultation_id": consultation_id,
            "timestamp": now.isoformat(),
            **payload,
        }
        try:
            await self.redis.publish(events_channel(consultation_id), json.dumps(envelope, default=str))
        except RedisError as exc:
            logger.warning(
                "progress_publish_failed",
                consultation_id=consultation_id,
                event_type=event_type,
                error=str(exc),
            )
