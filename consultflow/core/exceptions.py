class ConsultFlowError(Exception):
    """Base exception for the ConsultFlow application."""

    pass


class InvariantViolationError(ConsultFlowError):
    """Raised when a persisted-state invariant would be broken. Never retried."""

    pass


class FlowStateRegressionError(InvariantViolationError):
    """Raised when a flow-state write would move a consultation backwards."""

    def __init__(self, consultation_id: str, current: str, requested: str):
        self.consultation_id = consultation_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Flow state for consultation '{consultation_id}' cannot move from '{current}' back to '{requested}'"
        )


class DuplicateConsultationError(InvariantViolationError):
    """Raised when an owner would end up with two in-progress consultations."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Owner '{owner_id}' already has an in-progress consultation")


class AnswerValidationError(ConsultFlowError):
    """Raised when an answer fails its minimum-content check. Blocks only the current step."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ProducerError(ConsultFlowError):
    """Raised when an intelligence producer fails or times out."""

    def __init__(self, producer: str, message: str):
        self.producer = producer
        super().__init__(f"Producer '{producer}' failed: {message}")



class MergeConflictError(ConsultFlowError):
    """Raised when concurrent writers kept winning every merge attempt. Safe to retry."""

    def __init__(self, session_id: str, attempts: int):
        self.session_id = session_id
        self.attempts = attempts
        super().__init__(f"Session '{session_id}' changed concurrently; merge not applied after {attempts} attempts")
