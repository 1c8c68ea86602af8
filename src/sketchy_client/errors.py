"""Error kinds raised by the workflow client."""


class WorkflowError(Exception):
    """Base class for every failure surfaced to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(WorkflowError):
    """Raised for empty upload batches or empty prompts."""


class PreconditionFailed(WorkflowError):
    """Raised when a step runs before its predecessor has committed."""


class NotFound(WorkflowError):
    """Raised when selecting an image id that is not in the session."""


class StepInProgress(WorkflowError):
    """Raised when a step is triggered while its request is in flight."""


class RemoteFailure(WorkflowError):
    """Raised for non-success backend responses."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportFailure(WorkflowError):
    """Raised when the backend could not be reached or replied garbage."""


class PersistenceCorrupt(WorkflowError):
    """Raised internally when a stored snapshot cannot be parsed."""


class PersistenceFailure(WorkflowError):
    """Raised when a snapshot could not be written to the durable store."""
