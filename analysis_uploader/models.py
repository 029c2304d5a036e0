"""
Models for the upload-and-analysis workflow.

Immutable dataclasses; the orchestrator hands these out as read-only snapshots.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Optional

MiB = 1024 * 1024

TransferStrategy = Literal["direct", "resumable"]
RecordFailurePolicy = Literal["continue", "fail"]


class ProcessingState(Enum):
    """Remote processing job state, ordered by progression."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def rank(self) -> int:
        # complete and error share the terminal rank
        return {"queued": 0, "processing": 1, "complete": 2, "error": 2}[self.value]

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingState.COMPLETE, ProcessingState.ERROR)

    @classmethod
    def parse(cls, value: Any) -> "ProcessingState":
        """Map a remote status string; unknown values count as processing."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.PROCESSING


class OrchestratorState(Enum):
    """Observable orchestrator state."""
    IDLE = "idle"
    SELECTING = "selecting"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrchestratorState.COMPLETE, OrchestratorState.FAILED)


@dataclass(frozen=True)
class JobAttributes:
    """Descriptive attributes the user supplies with an upload."""
    email: str
    weight: Optional[float] = None
    height: Optional[float] = None
    load: Optional[float] = None


@dataclass(frozen=True)
class UploadJob:
    """One upload-through-analysis attempt."""
    id: str
    local_file_ref: Path
    content_type: str
    is_portrait: bool
    owner_identity: str
    size: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def filename(self) -> str:
        return self.local_file_ref.name


@dataclass(frozen=True)
class TransferProgress:
    """Bytes transferred so far for the active job."""
    bytes_sent: int
    total_bytes: int

    @property
    def percentage(self) -> float:
        if self.total_bytes <= 0:
            return 100.0
        return round(self.bytes_sent * 100.0 / self.total_bytes, 2)


@dataclass(frozen=True)
class ProcessingStatus:
    """Remote job status as observed by the poller."""
    job_id: str
    state: ProcessingState
    result_ref: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


@dataclass(frozen=True)
class AnalysisResult:
    """Discriminated analysis result: ``success`` with payload or ``error`` with reason."""
    status: Literal["success", "error"]
    payload: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, payload: Dict[str, Any]):
        return cls(status="success", payload=dict(payload))

    @classmethod
    def failure(cls, reason: str, payload: Optional[Dict[str, Any]] = None):
        return cls(status="error", payload=dict(payload or {}), reason=reason)


@dataclass(frozen=True)
class OrchestratorSnapshot:
    """Read-only view of the orchestrator handed to observers."""
    state: OrchestratorState = OrchestratorState.IDLE
    job: Optional[UploadJob] = None
    local_file_ref: Optional[Path] = None
    progress: Optional[TransferProgress] = None
    status: Optional[ProcessingStatus] = None
    error: Optional[Exception] = None
    record_error: Optional[Exception] = None
    result: Optional[AnalysisResult] = None

    @property
    def job_id(self) -> Optional[str]:
        return self.job.id if self.job else None


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for upload, polling and fetch."""
    strategy: TransferStrategy = "direct"
    resumable_endpoint: Optional[str] = None
    chunk_size: int = 150 * MiB
    progress_block_size: int = 1 * MiB
    resume_attempts: int = 3
    poll_interval: float = 5.0
    poll_max_backoff: float = 60.0
    poll_max_failures: int = 12
    record_failure_policy: RecordFailurePolicy = "continue"
    default_portrait: bool = False
    request_timeout: float = 60
    preview: bool = True

    def __post_init__(self):
        if self.strategy not in ("direct", "resumable"):
            raise ValueError(f"Unknown transfer strategy: {self.strategy}")
        if self.strategy == "resumable" and not self.resumable_endpoint:
            raise ValueError("resumable strategy requires resumable_endpoint")
        if self.record_failure_policy not in ("continue", "fail"):
            raise ValueError(f"Unknown record failure policy: {self.record_failure_policy}")
        if self.chunk_size <= 0 or self.progress_block_size <= 0:
            raise ValueError("chunk_size and progress_block_size must be positive")
        if self.poll_interval <= 0 or self.poll_max_failures < 1:
            raise ValueError("poll_interval must be positive and poll_max_failures >= 1")
