"""
Error taxonomy for task execution.

Every error carries the HTTP status the task handlers answer with, so a
handler can turn any stage failure into (status gauge, status code) without
a lookup table.
"""


class JobRunnerError(Exception):
    """Base class for all errors raised by the query/probe pipeline."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(JobRunnerError):
    """Caller input is missing or invalid."""

    status_code = 400


class MethodNotAllowed(ValidationError):
    status_code = 405


class ConfigError(JobRunnerError):
    """Configuration file could not be read or parsed."""


class ReloadNotSupported(ConfigError):
    status_code = 501


# ---------------------------------------------------------------------------
# SQL pipeline
# ---------------------------------------------------------------------------


class DSNBuildError(JobRunnerError):
    """Connection string could not be built from the request parameters."""

    status_code = 400


class EmptyTargetError(DSNBuildError):
    pass


class DSNParseError(DSNBuildError):
    pass


class DBConnectionError(JobRunnerError):
    """Opening or pinging the database failed."""


class QueryError(JobRunnerError):
    """Executing the query or reading its rows failed."""


class GenerationError(JobRunnerError):
    """Turning the result set into metrics failed."""


class ValueColumnNotFound(GenerationError):
    pass


class ContextError(JobRunnerError):
    """The task context ended before the work finished."""


class DeadlineExceeded(ContextError):
    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Canceled(ContextError):
    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# HTTP check
# ---------------------------------------------------------------------------


class ProbeError(JobRunnerError):
    """The outbound HTTP check could not be completed."""


class ProbeRequestError(ProbeError):
    status_code = 500


class ProbeTimeout(ProbeError):
    status_code = 504


class ProbeTransportFailure(ProbeError):
    status_code = 503
