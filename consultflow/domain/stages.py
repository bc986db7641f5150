"""Entry-point stage machines layered above the coarse flow state.

Each entry surface (form wizard, conversational wizard, brand capture) walks
its own one-directional transition table. The only backwards move is
``FormWizardMachine.back()``, which changes the displayed question and
never touches answers.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from consultflow.domain.checklist import STEP_COLUMNS, checklist_for, resume_point, validate_answer

T = TypeVar("T")


class WizardStage(str, Enum):
    LOADING = "loading"
    CHECKING_DRAFT = "checking_draft"
    INTRO = "intro"
    BRAND_EXTRACTOR = "brand_extractor"
    ANALYSIS = "analysis"
    MAIN_QUESTIONS = "main_questions"
    CHATTING = "chatting"
    RESEARCHING = "researching"
    CAPTURE = "capture"
    EXTRACTING = "extracting"
    CONFIRM = "confirm"
    REVIEW = "review"
    SUBMITTING = "submitting"
    DONE = "done"


FORM_WIZARD_TRANSITIONS: dict[WizardStage, list[WizardStage]] = {
    WizardStage.LOADING: [WizardStage.CHECKING_DRAFT],
    WizardStage.CHECKING_DRAFT: [WizardStage.INTRO, WizardStage.BRAND_EXTRACTOR],
    WizardStage.INTRO: [WizardStage.ANALYSIS],
    WizardStage.BRAND_EXTRACTOR: [WizardStage.ANALYSIS],
    WizardStage.ANALYSIS: [WizardStage.MAIN_QUESTIONS],
    WizardStage.MAIN_QUESTIONS: [WizardStage.REVIEW],
    WizardStage.REVIEW: [WizardStage.SUBMITTING],
    WizardStage.SUBMITTING: [WizardStage.DONE],
    WizardStage.DONE: [],  # Terminal state
}

CONVERSATIONAL_WIZARD_TRANSITIONS: dict[WizardStage, list[WizardStage]] = {
    WizardStage.LOADING: [WizardStage.CHECKING_DRAFT],
    WizardStage.CHECKING_DRAFT: [WizardStage.CHATTING],
    WizardStage.CHATTING: [WizardStage.RESEARCHING],
    WizardStage.RESEARCHING: [WizardStage.REVIEW],
    WizardStage.REVIEW: [WizardStage.SUBMITTING],
    WizardStage.SUBMITTING: [WizardStage.DONE],
    WizardStage.DONE: [],
}

BRAND_CAPTURE_TRANSITIONS: dict[WizardStage, list[WizardStage]] = {
    WizardStage.LOADING: [WizardStage.CAPTURE],
    WizardStage.CAPTURE: [WizardStage.EXTRACTING, WizardStage.CONFIRM],  # CONFIRM when extraction is skipped
    WizardStage.EXTRACTING: [WizardStage.CONFIRM],
    WizardStage.CONFIRM: [WizardStage.DONE],
    WizardStage.DONE: [],
}


@dataclass
class StageTransition:
    """Result of a transition or navigation attempt."""

    allowed: bool
    reason: str = ""
    stage: WizardStage | None = None
    validation_error: bool = False


@dataclass(frozen=True)
class EntryOptions:
    """Explicit entry parameters for a wizard mount."""

    suppress_draft_prompt: bool = False
    has_website: bool = False
    prefill: Mapping[str, Any] = field(default_factory=dict)


class StageMachine:
    """Transition-table driven stage machine with a run-once initializer."""

    TRANSITIONS: dict[WizardStage, list[WizardStage]] = {}

    def __init__(
        self,
        transitions: dict[WizardStage, list[WizardStage]] | None = None,
        initial: WizardStage = WizardStage.LOADING,
    ):
        self.transitions = transitions if transitions is not None else self.TRANSITIONS
        self.stage = initial
        self.history: list[WizardStage] = [initial]
        self.progress: list[dict] = []
        self._init_task: asyncio.Future | None = None

    @property
    def terminal(self) -> bool:
        return not self.transitions.get(self.stage)

    @property
    def initialized(self) -> bool:
        return self._init_task is not None and self._init_task.done()

    def can_transition(self, target: WizardStage) -> bool:
        return target in self.transitions.get(self.stage, [])

    def transition(self, target: WizardStage) -> StageTransition:
        if not self.can_transition(target):
            return StageTransition(False, f"Cannot move from {self.stage.value} to {target.value}", self.stage)
        self.stage = target
        self.history.append(target)
        return StageTransition(True, f"Moved to {target.value}", target)

    async def initialize(self, initializer: Callable[[], Awaitable[T]]) -> T:
        """Run ``initializer`` at most once per machine.

        Concurrent and repeated calls all await the same run and get its result.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._run_initializer(initializer))
        return await asyncio.shield(self._init_task)

    async def _run_initializer(self, initializer: Callable[[], Awaitable[T]]) -> T:
        result = await initializer()
        if self.stage == WizardStage.LOADING:
            first_stage = self.transitions[WizardStage.LOADING][0]
            self.transition(first_stage)
        return result

    def notify_progress(self, event: Mapping[str, Any]) -> None:
        """Record a producer progress event for display. Never changes the stage."""
        self.progress.append(dict(event))


class FormWizardMachine(StageMachine):
    """Guided form entry: draft check, optional website analysis, checklist questions."""

    TRANSITIONS = FORM_WIZARD_TRANSITIONS

    def __init__(self, options: EntryOptions | None = None):
        super().__init__()
        self.options = options or EntryOptions()
        self.answers: dict[str, Any] = dict(self.options.prefill)
        self.question_index = 0
        self.draft_pending = False

    @property
    def steps(self) -> tuple[str, ...]:
        return checklist_for(self.answers.get("industry"))

    @property
    def current_question(self) -> str | None:
        if self.stage != WizardStage.MAIN_QUESTIONS:
            return None
        steps = self.steps
        return steps[self.question_index] if self.question_index < len(steps) else None

    def finish_draft_check(self, draft_available: bool = False) -> StageTransition:
        if draft_available and not self.options.suppress_draft_prompt:
            self.draft_pending = True
            return StageTransition(False, "Waiting for a draft recovery choice", self.stage)
        return self._leave_draft_check()

    def apply_draft_choice(self, wizard_data: Mapping[str, Any] | None = None) -> StageTransition:
        """Continue after the user picked a draft option; ``wizard_data`` only for resume."""
        if wizard_data:
            self.answers.update(wizard_data)
        self.draft_pending = False
        return self._leave_draft_check()

    def _leave_draft_check(self) -> StageTransition:
        target = WizardStage.BRAND_EXTRACTOR if self.options.has_website else WizardStage.INTRO
        return self.transition(target)

    def start_analysis(self) -> StageTransition:
        return self.transition(WizardStage.ANALYSIS)

    def finish_analysis(self, skipped: bool = False) -> StageTransition:
        """Website analysis resolved or was skipped; jump to the first open question."""
        result = self.transition(WizardStage.MAIN_QUESTIONS)
        if not result.allowed:
            return result
        point = resume_point(self.answers)
        if point.complete:
            return self.transition(WizardStage.REVIEW)
        self.question_index = point.index
        reason = "Analysis skipped" if skipped else "Analysis complete"
        return StageTransition(True, f"{reason}; starting at {point.field}", self.stage)

    def answer(self, value: Any) -> StageTransition:
        step = self.current_question
        if step is None:
            return StageTransition(False, "No question is being asked", self.stage)

        error = validate_answer(step, value)
        if error:
            return StageTransition(False, error, self.stage, validation_error=True)

        self.answers[STEP_COLUMNS[step]] = value.strip()

        point = resume_point(self.answers)
        if point.complete:
            return self.transition(WizardStage.REVIEW)
        self.question_index = point.index
        return StageTransition(True, f"Next question: {point.field}", self.stage)

    def back(self) -> StageTransition:
        if self.stage != WizardStage.MAIN_QUESTIONS:
            return StageTransition(False, "Back is only available between questions", self.stage)
        if self.question_index == 0:
            return StageTransition(False, "Already at the first question", self.stage)
        self.question_index -= 1
        return StageTransition(True, f"Showing {self.current_question}", self.stage)

    def submit(self) -> StageTransition:
        return self.transition(WizardStage.SUBMITTING)

    def complete(self) -> StageTransition:
        return self.transition(WizardStage.DONE)


def conversational_wizard() -> StageMachine:
    return StageMachine(CONVERSATIONAL_WIZARD_TRANSITIONS)


def brand_capture() -> StageMachine:
    return StageMachine(BRAND_CAPTURE_TRANSITIONS)
