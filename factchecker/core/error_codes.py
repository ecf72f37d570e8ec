"""
Standardised error handling for Video Fact-Checker.
"""

from factchecker.core.constants import ErrorCode, RETRYABLE_ERRORS


class JobError(Exception):
    """Raised when a request or job encounters a known error condition."""

    def __init__(self, code: str, message: str, retryable: bool | None = None,
                 details: dict | None = None):
        self.code = code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (code in RETRYABLE_ERRORS)
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class JobCancelled(Exception):
    """Raised inside a background task when its job was deleted."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} cancelled")


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS


# Request-level codes surfaced synchronously by the HTTP layer
HTTP_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_READY: 400,
    ErrorCode.ALREADY_IN_PROGRESS: 400,
    ErrorCode.ANALYSIS_INCOMPLETE: 400,
    ErrorCode.NOT_FOUND: 404,
}


def http_status_for(code: str) -> int:
    return HTTP_STATUS_BY_CODE.get(code, 500)
