"""
Analysis Uploader - upload an exercise video and follow it to its analysis.

Pipeline (one active job per orchestrator):
- MediaSelector: validate the file, probe orientation, render a preview still
- MetadataRecorder: POST /save-video-info (runs alongside the transfer)
- Upload transport: pre-authorized URL PUT, or tus resumable chunks
- ProcessingPoller: GET /video-status/{job_id} until complete/error
- AnalysisFetcher: GET /exercise-analysis/{job_id}

Usage:
    from analysis_uploader import AnalysisOrchestrator, JobAttributes, UploadConfig

    async with AnalysisOrchestrator(api_url, UploadConfig()) as orchestrator:
        orchestrator.subscribe(lambda snap: print(snap.state, snap.progress))
        orchestrator.select(video_path)
        orchestrator.submit(JobAttributes(email="me@example.com", weight=80, load=100))
        snapshot = await orchestrator.wait()
        if snapshot.result and snapshot.result.ok:
            print(snapshot.result.payload["metrics"])
"""
from .errors import (
    AnalysisUploadError,
    APIError,
    FetchError,
    InvalidTransition,
    PollError,
    ProcessingError,
    RecordError,
    SelectionError,
    TransportError,
)
from .models import (
    AnalysisResult,
    JobAttributes,
    OrchestratorSnapshot,
    OrchestratorState,
    ProcessingState,
    ProcessingStatus,
    TransferProgress,
    UploadConfig,
    UploadJob,
)
from .orchestrator import AnalysisOrchestrator
from .services import (
    AnalysisFetcher,
    DirectUploadTransport,
    HTTPAPIClient,
    MediaSelector,
    MetadataRecorder,
    ProcessingPoller,
    ResumableUploadTransport,
)

__version__ = "0.1.0"
__all__ = [
    # Main
    "AnalysisOrchestrator",
    # Models
    "AnalysisResult",
    "JobAttributes",
    "OrchestratorSnapshot",
    "OrchestratorState",
    "ProcessingState",
    "ProcessingStatus",
    "TransferProgress",
    "UploadConfig",
    "UploadJob",
    # Services
    "AnalysisFetcher",
    "DirectUploadTransport",
    "HTTPAPIClient",
    "MediaSelector",
    "MetadataRecorder",
    "ProcessingPoller",
    "ResumableUploadTransport",
    # Errors
    "AnalysisUploadError",
    "APIError",
    "FetchError",
    "InvalidTransition",
    "PollError",
    "ProcessingError",
    "RecordError",
    "SelectionError",
    "TransportError",
]
