"""FastAPI dependency providers for services.

Override these in tests via ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from consultflow.core.config import get_settings
from consultflow.db.base import get_session_factory
from consultflow.db.redis import get_redis
from consultflow.domain.routing import RoutingThresholds
from consultflow.services.accumulator_service import AccumulatorService
from consultflow.services.claim_service import ClaimService
from consultflow.services.consultation_service import ConsultationService
from consultflow.services.debounce import LatestOnlyDebouncer
from consultflow.services.demo_service import DemoService
from consultflow.services.draft_service import DraftService
from consultflow.services.events import ProgressPublisher
from consultflow.services.flow_service import FlowService
from consultflow.services.producers import HttpIntelligenceProducer, IntelligenceProducer, ProducerFake
from consultflow.services.wizard_service import WizardService


def get_producer() -> IntelligenceProducer:
    """Provide the intelligence producer.

    Returns HttpIntelligenceProducer when PRODUCER_BASE_URL is set, otherwise
    ProducerFake for local dev.
    """
    settings = get_settings()
    if settings.producer_base_url:
        return HttpIntelligenceProducer(
            settings.producer_base_url,
            api_key=settings.producer_api_key,
            timeout_seconds=settings.producer_timeout_seconds,
        )
    return ProducerFake()


def get_publisher() -> ProgressPublisher:
    """Progress publisher on the shared Redis pool; a no-op when Redis is not initialized."""
    try:
        return ProgressPublisher(get_redis())
    except RuntimeError:
        return ProgressPublisher(None)


def get_thresholds() -> RoutingThresholds:
    settings = get_settings()
    return RoutingThresholds(
        skip_ahead=settings.readiness_skip_ahead_threshold,
        confirmation=settings.readiness_confirmation_threshold,
    )


def get_accumulator() -> AccumulatorService:
    settings = get_settings()
    return AccumulatorService(
        get_session_factory(),
        max_attempts=settings.merge_max_attempts,
        ready_threshold=settings.readiness_skip_ahead_threshold,
    )


def get_consultation_service(accumulator: AccumulatorService = Depends(get_accumulator)) -> ConsultationService:
    return ConsultationService(get_session_factory(), accumulator)


def get_flow_service(
    thresholds: RoutingThresholds = Depends(get_thresholds),
    publisher: ProgressPublisher = Depends(get_publisher),
) -> FlowService:
    return FlowService(get_session_factory(), thresholds=thresholds, publisher=publisher)


def get_demo_service(accumulator: AccumulatorService = Depends(get_accumulator)) -> DemoService:
    return DemoService(get_session_factory(), accumulator)


def get_draft_service() -> DraftService:
    return DraftService(get_session_factory(), ttl_hours=get_settings().draft_ttl_hours)


def get_wizard_service(
    consultations: ConsultationService = Depends(get_consultation_service),
    drafts: DraftService = Depends(get_draft_service),
) -> WizardService:
    return WizardService(consultations, drafts)


def get_claim_service(thresholds: RoutingThresholds = Depends(get_thresholds)) -> ClaimService:
    return ClaimService(get_session_factory(), thresholds=thresholds)


@lru_cache
def get_search_debouncer() -> LatestOnlyDebouncer:
    """One debouncer per process so newer searches supersede older ones across requests."""
    return LatestOnlyDebouncer(get_settings().search_debounce_seconds)
