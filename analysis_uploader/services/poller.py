"""
Processing Poller - Single Responsibility: follow a remote job to a terminal state.

Usage:
    watch = poller.watch(job_id)
    async for status in watch:
        ...            # queued -> processing -> complete | error
    watch.stop()       # from anywhere: clears the pending timer synchronously
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from ..errors import APIError, PollError
from ..models import ProcessingState, ProcessingStatus, UploadConfig
from ..protocols import IAPIClient, IProcessingPoller, IStatusWatch

logger = logging.getLogger(__name__)

STATUS_ENDPOINT = "/video-status/{job_id}"


def _release(timer: asyncio.Future) -> None:
    if not timer.done():
        timer.set_result(None)


class PollWatch(IStatusWatch):
    """
    Async iterator over status changes of one job.

    Queries immediately, then once per interval. Yields only forward moves;
    the terminal status is yielded once and no query follows it. Transient
    failures back off exponentially until ``poll_max_failures`` consecutive
    failures, then PollError is raised.
    """

    def __init__(
        self,
        api_client: IAPIClient,
        job_id: str,
        config: UploadConfig,
        interval: Optional[float] = None,
    ):
        self._api = api_client
        self.job_id = job_id
        self._config = config
        self._interval = interval or config.poll_interval
        self.calls = 0
        self.last_status: Optional[ProcessingStatus] = None
        self._failures = 0
        self._started = False
        self._finished = False
        self._stopped = False
        self._timer: Optional[asyncio.Future] = None
        self._timer_handle: Optional[asyncio.TimerHandle] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def finished(self) -> bool:
        return self._finished

    def __aiter__(self) -> "PollWatch":
        return self

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None
        if self._timer is not None:
            _release(self._timer)
        logger.debug(f"Stopped polling {self.job_id} after {self.calls} queries")

    async def __anext__(self) -> ProcessingStatus:
        while True:
            if self._stopped or self._finished:
                raise StopAsyncIteration

            if self._started:
                await self._sleep(self._delay())
                if self._stopped:
                    raise StopAsyncIteration
            self._started = True

            status = await self._query()
            if self._stopped:
                # response for a superseded job
                raise StopAsyncIteration
            if status is None or not self._advances(status):
                continue

            self.last_status = status
            if status.is_terminal:
                self._finished = True
            return status

    def _delay(self) -> float:
        if self._failures == 0:
            return self._interval
        backoff = self._interval * (2 ** (self._failures - 1))
        return min(backoff, max(self._config.poll_max_backoff, self._interval))

    async def _sleep(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.create_future()
        self._timer_handle = loop.call_later(delay, _release, self._timer)
        try:
            await self._timer
        finally:
            if self._timer_handle is not None:
                self._timer_handle.cancel()
            self._timer_handle = None
            self._timer = None

    async def _query(self) -> Optional[ProcessingStatus]:
        self.calls += 1
        endpoint = STATUS_ENDPOINT.format(job_id=self.job_id)
        try:
            response = await self._api.get(endpoint, max_retries=1)
            data = response.json()
        except APIError as exc:
            # 404: the job may not be registered yet right after the transfer
            if not exc.is_server_error and exc.status_code != 404:
                self._finished = True
                raise PollError(f"Status query for {self.job_id} rejected: {exc}", transient=False) from exc
            return self._transient_failure(exc)
        except (httpx.RequestError, ValueError) as exc:
            return self._transient_failure(exc)

        if not isinstance(data, dict) or "status" not in data:
            return self._transient_failure(ValueError(f"unexpected status body {data!r}"))

        self._failures = 0
        state = ProcessingState.parse(data["status"])
        return ProcessingStatus(
            job_id=self.job_id,
            state=state,
            result_ref=data.get("processed_url"),
            reason=(data.get("error") or data.get("reason")) if state is ProcessingState.ERROR else None,
        )

    def _transient_failure(self, exc: Exception) -> None:
        self._failures += 1
        if self._failures >= self._config.poll_max_failures:
            self._finished = True
            raise PollError(
                f"Status query for {self.job_id} failed {self._failures} times in a row: {exc}",
                transient=False,
            ) from exc
        logger.warning(
            f"Status query for {self.job_id} failed ({exc}); "
            f"retry {self._failures}/{self._config.poll_max_failures - 1} in {self._delay():.1f}s"
        )
        return None

    def _advances(self, status: ProcessingStatus) -> bool:
        previous = self.last_status
        if previous is None:
            return True
        if status.state.rank < previous.state.rank:
            logger.debug(f"Ignoring {status.state.value} for {self.job_id} after {previous.state.value}")
            return False
        return status.state is not previous.state


class ProcessingPoller(IProcessingPoller):
    """Creates status watches against ``GET /video-status/{job_id}``."""

    def __init__(self, api_client: IAPIClient, config: Optional[UploadConfig] = None):
        self._api = api_client
        self._config = config or UploadConfig()

    def watch(self, job_id: str, interval: Optional[float] = None) -> PollWatch:
        return PollWatch(self._api, job_id, self._config, interval)
