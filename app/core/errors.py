class WorkflowError(Exception):
    """Base class for errors raised by the translation workflow."""


class InputValidationError(WorkflowError):
    """The job request is invalid; the caller must fix it and resubmit."""


class TransientActivityError(WorkflowError):
    """An external call failed in a way that may succeed on retry."""


class ActivityRejectedError(WorkflowError):
    """The external service refused the request; retrying will not help."""


class RetryExhaustedError(WorkflowError):
    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


class PollingTimeoutError(WorkflowError):
    def __init__(self, label: str, ceiling_seconds: float):
        self.label = label
        self.ceiling_seconds = ceiling_seconds
        minutes = int(ceiling_seconds // 60)
        super().__init__(f"{label} timed out after {minutes} minutes")


class InvalidTransitionError(WorkflowError):
    pass


class StaleJobStateError(WorkflowError):
    pass


class JobNotFoundError(WorkflowError):
    pass


class ApprovalConflictError(WorkflowError):
    pass
