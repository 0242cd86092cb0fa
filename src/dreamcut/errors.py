"""Error taxonomy shared by the stages, the store and the API."""


class DreamCutError(Exception):
    """Base class for pipeline errors."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class ValidationError(DreamCutError):
    """Raised for malformed stage input, including unparsable upstream responses."""

    error_code = "VALIDATION_ERROR"


class UpstreamTimeoutError(DreamCutError):
    """Raised when an external model call exceeds its configured timeout."""

    error_code = "UPSTREAM_TIMEOUT"


class UpstreamError(DreamCutError):
    """Raised when an external model returns a non-success response."""

    error_code = "UPSTREAM_ERROR"

    def __init__(self, message: str, stage: str | None = None, status_code: int | None = None):
        super().__init__(message, stage=stage)
        self.status_code = status_code


class PersistenceError(DreamCutError):
    """Raised when the progress store rejects a write."""

    error_code = "PERSISTENCE_ERROR"


class InvalidTransitionError(PersistenceError):
    """Raised when a write would mutate a terminal query or asset."""

    error_code = "INVALID_TRANSITION"


class NotFoundError(DreamCutError):
    """Raised when a query or asset id is unknown."""

    error_code = "NOT_FOUND"


class PipelineCancelledError(DreamCutError):
    """Raised at a stage boundary once cancellation has been requested."""

    error_code = "CANCELLED"


class InsufficientAssetsError(DreamCutError):
    """Raised when fewer assets succeeded than the configured minimum."""

    error_code = "INSUFFICIENT_ASSETS"
