"""
Error taxonomy for the upload-and-analysis workflow.

Each component raises its own error type so the orchestrator (and the UI
watching it) can tell "re-select the file" apart from "re-upload" and
"retry fetch".
"""
from typing import Any, Optional


class AnalysisUploadError(Exception):
    """Base class for every workflow error."""


class APIError(AnalysisUploadError):
    """Analysis API answered with an HTTP error status."""

    def __init__(self, status_code: int, method: str, endpoint: str, detail: Any = None):
        self.status_code = status_code
        self.method = method
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f"API error {status_code} on {method} {endpoint}: {detail}")

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class SelectionError(AnalysisUploadError):
    """Local file cannot be used (missing, empty, unsupported or unreadable)."""


class RecordError(AnalysisUploadError):
    """Upload-intent metadata could not be persisted."""


class TransportError(AnalysisUploadError):
    """Byte transfer failed; the job must be restarted from selection."""


class PollError(AnalysisUploadError):
    """Status query failed.

    Transient occurrences are retried by the poller; the error only reaches the
    orchestrator once the failure ceiling is hit or the server rejects the query.
    """

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class ProcessingError(AnalysisUploadError):
    """Remote processing job ended in the error state."""

    def __init__(self, job_id: str, reason: Optional[str] = None):
        self.job_id = job_id
        self.reason = reason or "Video processing failed"
        super().__init__(self.reason)


class FetchError(AnalysisUploadError):
    """Analysis result could not be retrieved after processing completed."""


class InvalidTransition(AnalysisUploadError):
    """State machine received an event that is not valid in its current state."""

    def __init__(self, state: Any, event: Any):
        self.state = state
        self.event = event
        super().__init__(f"Event {event} is not allowed in state {state}")


def describe_exception(exc: BaseException) -> str:
    message = str(exc).strip()
    if message:
        return message
    return f"{type(exc).__name__}: {repr(exc)}"
