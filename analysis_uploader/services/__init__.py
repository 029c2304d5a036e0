"""Services for the upload-and-analysis workflow."""
from .api_client import HTTPAPIClient
from .fetcher import AnalysisFetcher
from .media import MediaSelector, PreviewHandle, SelectedMedia
from .poller import PollWatch, ProcessingPoller
from .recorder import MetadataRecorder
from .transport import DirectUploadTransport, ResumableUploadTransport, build_transport

__all__ = [
    "HTTPAPIClient",
    "AnalysisFetcher",
    "MediaSelector",
    "PreviewHandle",
    "SelectedMedia",
    "PollWatch",
    "ProcessingPoller",
    "MetadataRecorder",
    "DirectUploadTransport",
    "ResumableUploadTransport",
    "build_transport",
]
