"""
Protocols (Interfaces) for Dependency Inversion.

The orchestrator depends only on these; tests substitute fakes for any of them.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Optional, Protocol, runtime_checkable

from .models import AnalysisResult, JobAttributes, ProcessingStatus, TransferProgress, UploadJob

ProgressCallback = Callable[[TransferProgress], None]


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for analysis API operations."""

    async def post(self, endpoint: str, json: Dict, max_retries: Optional[int] = None) -> Any:
        """POST request to API."""
        ...

    async def get(self, endpoint: str, max_retries: Optional[int] = None) -> Any:
        """GET request to API."""
        ...


@runtime_checkable
class IMediaSelector(Protocol):
    """Interface for validating and probing a local media file."""

    def select(self, path: Path) -> Any:
        """Return a SelectedMedia or raise SelectionError."""
        ...


class IMetadataRecorder(ABC):
    """Interface for upload-intent persistence."""

    @abstractmethod
    async def record(self, job: UploadJob, attributes: JobAttributes) -> None:
        """Persist (or overwrite) the record for ``job.id``."""
        pass


class IUploadTransport(ABC):
    """Interface for byte transfer strategies."""

    @abstractmethod
    async def send(self, job: UploadJob, on_progress: Optional[ProgressCallback] = None) -> None:
        """Transfer the job's file; raise TransportError on failure."""
        pass


class IStatusWatch(ABC):
    """Cancellable stream of processing statuses for one job."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[ProcessingStatus]:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Cancel the pending timer; no further query is issued."""
        pass


class IProcessingPoller(ABC):
    """Interface for remote job status polling."""

    @abstractmethod
    def watch(self, job_id: str, interval: Optional[float] = None) -> IStatusWatch:
        pass


class IAnalysisFetcher(ABC):
    """Interface for final result retrieval."""

    @abstractmethod
    async def fetch(self, job_id: str) -> AnalysisResult:
        pass
