"""WizardService: mounts the form wizard for an owner.

A mount drives a FormWizardMachine from ``loading`` through the draft check.
Its initializer resolves the consultation record (the owner's in-progress one,
or a new one) and looks for a recoverable draft. The machine runs that
initializer once per mount, so a double-fired mount never opens two records.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from consultflow.db.models.consultation import ConsultationRecord
from consultflow.domain.accumulator import is_supplied
from consultflow.domain.checklist import answered_steps, resume_point
from consultflow.domain.stages import EntryOptions, FormWizardMachine, WizardStage
from consultflow.services.consultation_service import ConsultationService
from consultflow.services.draft_service import DraftCheck, DraftService
from consultflow.services.flow_service import record_answers

logger = structlog.get_logger(__name__)


@dataclass
class WizardMount:
    machine: FormWizardMachine
    record: ConsultationRecord
    draft: DraftCheck

    @property
    def resume_field(self) -> str | None:
        return resume_point(self.machine.answers).field

    @property
    def answered(self) -> list[str]:
        return answered_steps(self.machine.answers)


class WizardService:
    """Entry point for the guided form wizard."""

    def __init__(self, consultations: ConsultationService, drafts: DraftService):
        self.consultations = consultations
        self.drafts = drafts

    async def open_record(self, owner_id: str, prefill: Mapping[str, Any] | None = None) -> ConsultationRecord:
        """Reuse the owner's in-progress consultation, or start one with ``prefill``."""
        record = await self.consultations.get_active(owner_id)
        if record is not None:
            logger.info("wizard_record_reused", owner_id=owner_id, consultation_id=str(record.id))
            return record
        return await self.consultations.start(owner_id, prefill=dict(prefill) if prefill else None)

    async def _initialize(self, owner_id: str, options: EntryOptions) -> tuple[ConsultationRecord, DraftCheck]:
        record = await self.open_record(owner_id, options.prefill)
        draft = await self.drafts.check(owner_id)
        return record, draft

    async def mount(
        self,
        owner_id: str,
        options: EntryOptions | None = None,
        machine: FormWizardMachine | None = None,
    ) -> WizardMount:
        """Mount the wizard, or rejoin a mount already in flight on ``machine``."""
        options = options or EntryOptions()
        machine = machine or FormWizardMachine(options)

        record, draft = await machine.initialize(lambda: self._initialize(owner_id, options))

        # Only the first caller past initialize leaves the draft check
        if machine.stage == WizardStage.CHECKING_DRAFT and not machine.draft_pending:
            machine.answers.update(
                {column: value for column, value in record_answers(record).items() if is_supplied(value)}
            )
            machine.finish_draft_check(draft_available=draft.offered)
            logger.info(
                "wizard_mounted",
                owner_id=owner_id,
                consultation_id=str(record.id),
                stage=machine.stage.value,
                draft_pending=machine.draft_pending,
            )

        return WizardMount(machine=machine, record=record, draft=draft)
