"""
Standardised error handling for chunkscribe.
"""

from chunkscribe.core.constants import ErrorCode


class JobError(Exception):
    """Raised when a job or request encounters a known error condition."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ValidationError(JobError):
    """Malformed, missing or oversized input. Rejected before any job exists."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.VALIDATION, message)


class ConfigurationError(JobError):
    """A required setting (e.g. the service API key) is absent."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.CONFIGURATION, message)


class JobNotFound(JobError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(ErrorCode.JOB_NOT_FOUND, f"Job not found: {job_id}")


class RateLimitExceeded(JobError):
    """The request budget for the current window is exhausted."""

    def __init__(self, message: str, reset_at: float):
        self.remaining = 0
        self.reset_at = reset_at
        super().__init__(ErrorCode.RATE_LIMITED, message)


def error_message(exc: Exception) -> str:
    """Human-readable reason suitable for storing on a failed job."""
    if isinstance(exc, JobError):
        return exc.message
    return str(exc).strip() or type(exc).__name__
