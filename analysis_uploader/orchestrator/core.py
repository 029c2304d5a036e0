"""Core orchestrator - owns one job and sequences upload, polling and fetch."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Callable, Optional

from ..errors import (
    FetchError,
    InvalidTransition,
    PollError,
    ProcessingError,
    RecordError,
    SelectionError,
    TransportError,
    describe_exception,
)
from ..models import (
    AnalysisResult,
    JobAttributes,
    OrchestratorSnapshot,
    OrchestratorState,
    ProcessingState,
    TransferProgress,
    UploadConfig,
    UploadJob,
)
from ..protocols import (
    IAPIClient,
    IAnalysisFetcher,
    IMediaSelector,
    IMetadataRecorder,
    IProcessingPoller,
    IStatusWatch,
    IUploadTransport,
)
from ..services.api_client import HTTPAPIClient
from ..services.fetcher import AnalysisFetcher
from ..services.media import MediaSelector, PreviewHandle, SelectedMedia
from ..services.poller import ProcessingPoller
from ..services.recorder import MetadataRecorder
from ..services.transport import build_transport
from ..utils.events import EventEmitter
from ..utils.ids import generate_id
from .transitions import Event, next_state

logger = logging.getLogger(__name__)

STATE_CHANGED = "state"

SnapshotCallback = Callable[[OrchestratorSnapshot], None]


class AnalysisOrchestrator:
    """
    Orchestrates select -> upload -> processing -> analysis for one job at a time.

    Collaborators are injected (or built per instance from ``api_url``), never
    shared between orchestrators. Observers receive immutable snapshots.

    Usage:
        async with AnalysisOrchestrator(api_url, config) as orchestrator:
            orchestrator.subscribe(render)
            orchestrator.select(video_path)
            orchestrator.submit(JobAttributes(email="me@example.com", load=60))
            snapshot = await orchestrator.wait()

    Selecting a new file (or disposing) cancels the active job synchronously:
    its poll timer is cleared, its task cancelled, its id invalidated so late
    results are dropped, and its preview released.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        config: Optional[UploadConfig] = None,
        *,
        token: Optional[str] = None,
        api_client: Optional[IAPIClient] = None,
        selector: Optional[IMediaSelector] = None,
        recorder: Optional[IMetadataRecorder] = None,
        transport: Optional[IUploadTransport] = None,
        poller: Optional[IProcessingPoller] = None,
        fetcher: Optional[IAnalysisFetcher] = None,
    ):
        self._api_url = api_url
        self._config = config or UploadConfig()
        self._token = token
        self._owned_client: Optional[HTTPAPIClient] = None

        self._selector = selector or MediaSelector(self._config)
        self._recorder = recorder
        self._transport = transport
        self._poller = poller
        self._fetcher = fetcher
        if api_client is not None:
            self._build_services(api_client)

        self._snapshot = OrchestratorSnapshot()
        self._events = EventEmitter()
        self._selected: Optional[SelectedMedia] = None
        self._active_job_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._watch: Optional[IStatusWatch] = None

    async def __aenter__(self):
        """Build the HTTP client and any service that was not injected."""
        if None in (self._recorder, self._transport, self._poller, self._fetcher):
            if not self._api_url:
                raise ValueError("api_url is required unless every service is injected")
            self._owned_client = HTTPAPIClient(
                self._api_url, timeout=self._config.request_timeout, token=self._token
            )
            await self._owned_client.__aenter__()
            self._build_services(self._owned_client)
        return self

    async def __aexit__(self, *args):
        """Cancel the active job and close the owned HTTP client."""
        self.dispose()
        if self._task is not None:
            await asyncio.wait({self._task})
        if self._owned_client:
            await self._owned_client.__aexit__(*args)
            self._owned_client = None

    def _build_services(self, api_client: IAPIClient) -> None:
        self._recorder = self._recorder or MetadataRecorder(api_client)
        self._transport = self._transport or build_transport(self._config, api_client, self._token)
        self._poller = self._poller or ProcessingPoller(api_client, self._config)
        self._fetcher = self._fetcher or AnalysisFetcher(api_client)

    # -- observation -------------------------------------------------------

    @property
    def snapshot(self) -> OrchestratorSnapshot:
        return self._snapshot

    @property
    def state(self) -> OrchestratorState:
        return self._snapshot.state

    @property
    def preview(self) -> Optional[PreviewHandle]:
        return self._selected.preview if self._selected else None

    def subscribe(self, callback: SnapshotCallback) -> None:
        self._events.on(STATE_CHANGED, callback)

    def unsubscribe(self, callback: SnapshotCallback) -> None:
        self._events.off(STATE_CHANGED, callback)

    def _apply(self, event: Event, fresh: bool = False, **changes) -> None:
        state = next_state(self._snapshot.state, event)
        base = OrchestratorSnapshot() if fresh else self._snapshot
        previous = self._snapshot.state
        self._snapshot = dataclasses.replace(base, state=state, **changes)
        if state is not previous:
            logger.info(f"{previous.value} -> {state.value} ({event.value}) job={self._snapshot.job_id}")
        self._events.emit(STATE_CHANGED, self._snapshot)

    def _update(self, **changes) -> None:
        self._snapshot = dataclasses.replace(self._snapshot, **changes)
        self._events.emit(STATE_CHANGED, self._snapshot)

    def _is_current(self, job_id: str) -> bool:
        return self._active_job_id == job_id

    # -- commands ----------------------------------------------------------

    def select(self, path: Path) -> OrchestratorSnapshot:
        """Select a local video, cancelling and discarding any prior job."""
        path = Path(path)
        self._cancel_active()
        self._apply(Event.SELECT, fresh=True, local_file_ref=path)

        try:
            self._selected = self._selector.select(path)
        except SelectionError as exc:
            logger.warning(f"Selection of {path.name} failed: {exc}")
            self._apply(Event.SELECTION_FAILED, error=exc)
        return self._snapshot

    def submit(self, attributes: JobAttributes) -> asyncio.Task:
        """Mint a job id and start recording + transfer. Requires a running loop."""
        if self._snapshot.state is not OrchestratorState.SELECTING or self._selected is None:
            raise InvalidTransition(self._snapshot.state, Event.SUBMIT)
        self._require_services()

        media = self._selected
        job = UploadJob(
            id=generate_id(),
            local_file_ref=media.local_file_ref,
            content_type=media.content_type,
            is_portrait=media.is_portrait,
            owner_identity=attributes.email,
            size=media.size,
        )
        self._active_job_id = job.id
        self._apply(Event.SUBMIT, job=job, progress=TransferProgress(0, media.size))

        self._task = asyncio.get_running_loop().create_task(
            self._run(job, attributes), name=f"analysis-job-{job.id}"
        )
        return self._task

    def retry_fetch(self) -> asyncio.Task:
        """Fetch the result again after a FetchError, without re-uploading or re-polling."""
        snapshot = self._snapshot
        job = snapshot.job
        if not isinstance(snapshot.error, FetchError) or job is None or not self._is_current(job.id):
            raise InvalidTransition(snapshot.state, Event.RETRY_FETCH)

        self._apply(Event.RETRY_FETCH, error=None)
        self._task = asyncio.get_running_loop().create_task(
            self._fetch(job), name=f"analysis-fetch-{job.id}"
        )
        return self._task

    async def wait(self) -> OrchestratorSnapshot:
        """Wait for the current job task to settle and return the latest snapshot."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self._snapshot

    def dispose(self) -> None:
        """Tear down: cancel the active job, release the preview, back to IDLE."""
        self._cancel_active()
        self._apply(Event.DISPOSE, fresh=True)

    def _require_services(self) -> None:
        if None in (self._recorder, self._transport, self._poller, self._fetcher):
            raise RuntimeError("AnalysisOrchestrator not initialized. Use 'async with' context.")

    def _cancel_active(self) -> None:
        superseded = self._active_job_id
        self._active_job_id = None
        if self._watch is not None:
            self._watch.stop()
            self._watch = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._selected is not None:
            self._selected.preview.release()
            self._selected = None
        if superseded:
            logger.debug(f"Cancelled job {superseded}")

    # -- job workflow ------------------------------------------------------

    async def _run(self, job: UploadJob, attributes: JobAttributes) -> None:
        try:
            if await self._upload(job, attributes):
                await self._process(job)
        except asyncio.CancelledError:
            logger.debug(f"Job {job.id} task cancelled")
            raise

    def _fail(self, job: UploadJob, event: Event, error: Exception, **changes) -> None:
        if not self._is_current(job.id):
            return
        logger.error(f"Job {job.id} failed: {describe_exception(error)}")
        self._apply(event, error=error, **changes)

    def _on_progress(self, job_id: str) -> Callable[[TransferProgress], None]:
        def callback(progress: TransferProgress) -> None:
            if self._is_current(job_id) and self._snapshot.state is OrchestratorState.UPLOADING:
                self._update(progress=progress)

        return callback

    async def _record(self, job: UploadJob, attributes: JobAttributes) -> None:
        try:
            await self._recorder.record(job, attributes)
        except RecordError as exc:
            if self._config.record_failure_policy == "fail":
                raise
            logger.warning(f"Video info for {job.id} not saved, continuing upload: {exc}")
            if self._is_current(job.id):
                self._update(record_error=exc)

    async def _upload(self, job: UploadJob, attributes: JobAttributes) -> bool:
        record_task = asyncio.create_task(self._record(job, attributes))
        send_task = asyncio.create_task(self._transport.send(job, self._on_progress(job.id)))

        try:
            await asyncio.gather(record_task, send_task)
        except asyncio.CancelledError:
            for task in (record_task, send_task):
                task.cancel()
            raise
        except Exception as exc:
            for task in (record_task, send_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(record_task, send_task, return_exceptions=True)
            if isinstance(exc, RecordError):
                self._fail(job, Event.RECORD_FAILED, exc, record_error=exc)
            elif isinstance(exc, TransportError):
                self._fail(job, Event.TRANSFER_FAILED, exc)
            else:
                error = TransportError(f"Upload of {job.id} failed: {describe_exception(exc)}")
                error.__cause__ = exc
                self._fail(job, Event.TRANSFER_FAILED, error)
            return False

        if not self._is_current(job.id):
            return False
        self._apply(Event.TRANSFER_DONE, progress=TransferProgress(job.size, job.size))
        return True

    async def _process(self, job: UploadJob) -> None:
        watch = self._poller.watch(job.id)
        self._watch = watch
        completed = False
        try:
            async for status in watch:
                if not self._is_current(job.id):
                    return
                self._update(status=status)
                if status.state is ProcessingState.COMPLETE:
                    self._apply(Event.PROCESSING_DONE)
                    completed = True
                    break
                if status.state is ProcessingState.ERROR:
                    self._fail(job, Event.PROCESSING_FAILED, ProcessingError(job.id, status.reason))
                    return
        except PollError as exc:
            self._fail(job, Event.POLL_FAILED, exc)
            return
        finally:
            watch.stop()
            if self._watch is watch:
                self._watch = None

        if completed and self._is_current(job.id):
            await self._fetch(job)

    async def _fetch(self, job: UploadJob) -> None:
        try:
            result: AnalysisResult = await self._fetcher.fetch(job.id)
        except FetchError as exc:
            self._fail(job, Event.FETCH_FAILED, exc)
            return

        if not self._is_current(job.id):
            return
        if result.ok:
            self._apply(Event.FETCH_DONE, result=result)
        else:
            self._fail(job, Event.PROCESSING_FAILED, ProcessingError(job.id, result.reason), result=result)
