class CBTDiaryError(Exception):
    """Base exception for the CBT diary service."""

    pass


class InvalidStepError(CBTDiaryError):
    """Raised when a step identifier is not one of the diary steps."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Unknown CBT step '{step}'")


class InvalidStepDataError(CBTDiaryError):
    """Raised when a step payload does not match the step's data shape."""

    def __init__(self, step: str, errors: list[dict] | None = None):
        self.step = step
        self.errors = errors or []
        super().__init__(f"Invalid data for step '{step}'")


class OutOfOrderStepError(CBTDiaryError):
    """Raised when data is submitted for a step other than the current one."""

    def __init__(self, step: str, current_step: str, reason: str = ""):
        self.step = step
        self.current_step = current_step
        self.reason = reason
        super().__init__(
            f"Cannot submit step '{step}' while current step is '{current_step}'"
            + (f": {reason}" if reason else "")
        )


class StepNotReachableError(CBTDiaryError):
    """Raised when navigation targets a step the user has not reached yet."""

    def __init__(self, step: str, reason: str = ""):
        self.step = step
        self.reason = reason
        super().__init__(reason or f"Step '{step}' is not reachable yet")


class FlowNotCompleteError(CBTDiaryError):
    """Raised when finalizing a diary whose steps are not all complete."""

    pass


class DraftNotFoundError(CBTDiaryError):
    """Raised when a saved draft id does not exist."""

    def __init__(self, draft_id: str):
        self.draft_id = draft_id
        super().__init__(f"Draft '{draft_id}' not found")


class ChatHandoffError(CBTDiaryError):
    """Raised when the chat service rejects a finished diary entry."""

    def __init__(self, error: str | None):
        self.error = error or "Failed to send diary to chat"
        super().__init__(self.error)
