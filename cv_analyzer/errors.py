"""Error taxonomy for the analysis service."""


class AnalyzerError(Exception):
    """Base class for errors raised by the analyzer."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AnalyzerError):
    """Caller supplied a malformed or missing field."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(AnalyzerError):
    status_code = 404


class ConflictError(AnalyzerError):
    status_code = 409


class SchedulingError(AnalyzerError):
    """The background run could not be queued."""

    status_code = 503


class ExtractionError(AnalyzerError):
    """PDF is unreadable, empty, or yields low-quality text."""

    status_code = 422


class AIServiceError(AnalyzerError):
    """Failure talking to the language model."""

    status_code = 502

    def __init__(self, message: str, retryable: bool = False, upstream_status: int | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.upstream_status = upstream_status
