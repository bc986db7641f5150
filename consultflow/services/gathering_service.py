"""IntelligenceGatherer: runs several producers for one consultation.

Producers run concurrently. Each call gets a timeout and one retry; a
producer that still fails is logged and skipped. Fragments are merged in the
order the producers finish, not the order they were requested. Progress is
published on the consultation's event channel as each stage starts and ends.
"""

import asyncio
from dataclasses import dataclass, field

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from consultflow.core.exceptions import MergeConflictError, ProducerError
from consultflow.services.accumulator_service import AccumulatorService, SessionKind
from consultflow.services.events import STAGE_LABELS, ConsultationEventType, ProgressPublisher
from consultflow.services.producers import IntelligenceProducer, source_for

logger = structlog.get_logger(__name__)


@dataclass
class ProducerRequest:
    name: str
    payload: dict = field(default_factory=dict)


@dataclass
class GatheringReport:
    consultation_id: str
    merged: list[str] = field(default_factory=list)  # producer names, in merge order
    failed: dict[str, str] = field(default_factory=dict)
    readiness_score: int | None = None
    dropped: bool = False  # consultation disappeared mid-run


class IntelligenceGatherer:
    """Fans producer calls out and merges each fragment as it arrives."""

    def __init__(
        self,
        producer: IntelligenceProducer,
        accumulator: AccumulatorService,
        publisher: ProgressPublisher | None = None,
        timeout_seconds: float = 30.0,
    ):
        self.producer = producer
        self.accumulator = accumulator
        self.publisher = publisher or ProgressPublisher(None)
        self.timeout_seconds = timeout_seconds

    async def _invoke_once(self, request: ProducerRequest) -> dict:
        try:
            return await asyncio.wait_for(
                self.producer.invoke(request.name, request.payload),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            raise ProducerError(request.name, f"timed out after {self.timeout_seconds}s") from exc

    @retry(
        retry=retry_if_exception_type(ProducerError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
        before_sleep=lambda rs: logger.warning(
            "producer_retrying",
            producer=rs.args[1].name,
            attempt=rs.attempt_number,
            sleep_seconds=rs.next_action.sleep,
        ),
    )
    async def _invoke_with_retry(self, request: ProducerRequest) -> dict:
        """Invoke once, retrying a single time on ProducerError (including timeouts)."""
        return await self._invoke_once(request)

    async def _run_stage(self, consultation_id: str, request: ProducerRequest) -> tuple[ProducerRequest, dict | None, str | None]:
        await self.publisher.publish(
            consultation_id,
            ConsultationEventType.STAGE_STARTED,
            stage=request.name,
            stage_label=STAGE_LABELS.get(request.name, request.name),
        )
        try:
            fragment = await self._invoke_with_retry(request)
        except ProducerError as exc:
            return request, None, str(exc)
        return request, fragment, None

    async def gather(self, consultation_id: str, requests: list[ProducerRequest]) -> GatheringReport:
        report = GatheringReport(consultation_id=consultation_id)

        for request in requests:
            source_for(request.name)  # reject unknown producers before anything runs

        stages = [self._run_stage(consultation_id, request) for request in requests]

        for next_done in asyncio.as_completed(stages):
            request, fragment, error = await next_done

            if error is not None:
                report.failed[request.name] = error
                logger.warning("producer_failed_skipped", consultation_id=consultation_id, producer=request.name, error=error)
                await self.publisher.publish(
                    consultation_id,
                    ConsultationEventType.STAGE_FAILED,
                    stage=request.name,
                    error=error,
                )
                continue

            try:
                outcome = await self.accumulator.merge(
                    consultation_id,
                    fragment,
                    source_for(request.name),
                    kind=SessionKind.CONSULTATION,
                )
            except MergeConflictError as exc:
                report.failed[request.name] = str(exc)
                logger.warning("producer_merge_conflict", consultation_id=consultation_id, producer=request.name)
                await self.publisher.publish(
                    consultation_id,
                    ConsultationEventType.STAGE_FAILED,
                    stage=request.name,
                    error=str(exc),
                )
                continue
            if outcome is None:
                report.dropped = True
                continue

            report.merged.append(request.name)
            report.readiness_score = outcome.readiness_score
            if outcome.changed_paths:
                await self.publisher.publish(
                    consultation_id,
                    ConsultationEventType.MERGED,
                    source=source_for(request.name).slug,
                    changed=outcome.changed_paths,
                    readiness_score=outcome.readiness_score,
                )
            await self.publisher.publish(
                consultation_id,
                ConsultationEventType.STAGE_COMPLETED,
                stage=request.name,
                changed=outcome.changed_paths,
                readiness_score=outcome.readiness_score,
            )

        await self.publisher.publish(
            consultation_id,
            ConsultationEventType.GATHERING_COMPLETED,
            merged=report.merged,
            failed=sorted(report.failed),
            readiness_score=report.readiness_score,
        )
        logger.info(
            "intelligence_gathering_complete",
            consultation_id=consultation_id,
            merged=report.merged,
            failed=sorted(report.failed),
            readiness_score=report.readiness_score,
        )
        return report
