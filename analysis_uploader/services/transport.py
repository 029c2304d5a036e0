"""
Upload Transport - Single Responsibility: move the video bytes to storage.

Two interchangeable strategies:
- DirectUploadTransport: one PUT against a pre-authorized URL issued by the API
- ResumableUploadTransport: tus 1.0.0 chunked upload through an intermediary endpoint
"""
from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

import httpx

from ..errors import APIError, TransportError
from ..models import TransferProgress, UploadConfig, UploadJob
from ..protocols import IAPIClient, IUploadTransport, ProgressCallback

logger = logging.getLogger(__name__)

SIGNED_URL_ENDPOINT = "/generate-signed-url"
TUS_VERSION = "1.0.0"
TUS_CHUNK_CONTENT_TYPE = "application/offset+octet-stream"


class ProgressTracker:
    """
    Clamps reported progress so it never decreases and never exceeds the total.

    Closed trackers drop every update, so nothing is reported after the
    transfer ends or is cancelled.
    """

    def __init__(self, total_bytes: int, callback: Optional[ProgressCallback] = None):
        self.total_bytes = max(int(total_bytes), 0)
        self.bytes_sent = 0
        self._callback = callback
        self._closed = False
        self._emitted = False

    def update(self, bytes_sent: int) -> None:
        if self._closed:
            return
        value = min(max(int(bytes_sent), self.bytes_sent), self.total_bytes)
        if value == self.bytes_sent and self._emitted:
            return
        self.bytes_sent = value
        self._emitted = True
        if self._callback:
            self._callback(TransferProgress(value, self.total_bytes))

    def close(self) -> None:
        self._closed = True


async def _read_block(handle, size: int) -> bytes:
    return await asyncio.to_thread(handle.read, size)


async def stream_file(
    path: Path,
    start: int,
    length: int,
    block_size: int,
    tracker: ProgressTracker,
) -> AsyncIterator[bytes]:
    """Yield ``length`` bytes of ``path`` from ``start``, reporting each block."""
    with open(path, "rb") as handle:
        handle.seek(start)
        remaining = length
        position = start
        while remaining > 0:
            block = await _read_block(handle, min(block_size, remaining))
            if not block:
                raise TransportError(f"{path.name} ended at byte {position}, expected {start + length}")
            remaining -= len(block)
            position += len(block)
            yield block
            tracker.update(position)


def _file_size(job: UploadJob) -> int:
    try:
        return job.local_file_ref.stat().st_size
    except OSError as exc:
        raise TransportError(f"Cannot read {job.filename}: {exc}") from exc


class DirectUploadTransport(IUploadTransport):
    """
    Single PUT to a write-once URL obtained from ``POST /generate-signed-url``.

    The URL already carries its authorization, so the PUT goes through a
    separate client without the API credentials.
    """

    def __init__(
        self,
        api_client: IAPIClient,
        config: Optional[UploadConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api = api_client
        self._config = config or UploadConfig()
        self._transport = transport

    async def signed_url(self, job: UploadJob) -> str:
        try:
            response = await self._api.post(
                SIGNED_URL_ENDPOINT,
                json={"file_name": job.id, "content_type": job.content_type},
            )
            data = response.json()
        except (APIError, httpx.HTTPError, ValueError) as exc:
            raise TransportError(f"Could not obtain upload URL for {job.id}: {exc}") from exc

        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise TransportError(f"Upload URL missing in response for {job.id}")
        return url

    async def send(self, job: UploadJob, on_progress: Optional[ProgressCallback] = None) -> None:
        total = _file_size(job)
        url = await self.signed_url(job)
        tracker = ProgressTracker(total, on_progress)
        tracker.update(0)

        timeout = httpx.Timeout(self._config.request_timeout, write=None)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.put(
                    url,
                    content=stream_file(
                        job.local_file_ref, 0, total, self._config.progress_block_size, tracker
                    ),
                    headers={"Content-Type": job.content_type, "Content-Length": str(total)},
                )
            if response.status_code >= 400:
                raise TransportError(
                    f"Upload of {job.id} rejected with {response.status_code}: {response.text[:200]}"
                )
            tracker.update(total)
            logger.info(f"Uploaded {job.filename} as {job.id} ({total} bytes)")
        except httpx.HTTPError as exc:
            raise TransportError(f"Upload of {job.id} failed: {exc}") from exc
        finally:
            tracker.close()


def encode_upload_metadata(metadata: Dict[str, str]) -> str:
    """tus ``Upload-Metadata``: comma-separated ``key base64(value)`` pairs."""
    pairs = []
    for key, value in metadata.items():
        encoded = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        pairs.append(f"{key} {encoded}")
    return ",".join(pairs)


class ResumableUploadTransport(IUploadTransport):
    """
    tus 1.0.0 upload: create the upload, then PATCH fixed-size chunks.

    A chunk interrupted by a network error is resumed from the offset the
    server reports (HEAD), up to ``config.resume_attempts`` times in a row.
    """

    def __init__(
        self,
        endpoint: str,
        config: Optional[UploadConfig] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: float = 1.0,
    ):
        self._endpoint = endpoint
        self._config = config or UploadConfig()
        self._token = token
        self._transport = transport
        self._retry_delay = retry_delay

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {"Tus-Resumable": TUS_VERSION}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        headers.update(extra)
        return headers

    async def send(self, job: UploadJob, on_progress: Optional[ProgressCallback] = None) -> None:
        total = _file_size(job)
        tracker = ProgressTracker(total, on_progress)
        tracker.update(0)

        timeout = httpx.Timeout(self._config.request_timeout, write=None)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                location = await self.create(client, job, total)
                await self._send_chunks(client, job, location, total, tracker)
            logger.info(f"Uploaded {job.filename} as {job.id} via {location} ({total} bytes)")
        except httpx.HTTPError as exc:
            raise TransportError(f"Resumable upload of {job.id} failed: {exc}") from exc
        finally:
            tracker.close()

    async def create(self, client: httpx.AsyncClient, job: UploadJob, total: int) -> str:
        metadata = encode_upload_metadata(
            {"name": job.id, "filename": job.filename, "filetype": job.content_type}
        )
        response = await client.post(
            self._endpoint,
            headers=self._headers(**{"Upload-Length": str(total), "Upload-Metadata": metadata}),
        )
        if response.status_code >= 400:
            raise TransportError(f"Upload creation rejected with {response.status_code}")

        location = response.headers.get("Location")
        if not location:
            raise TransportError("Upload endpoint did not return a Location header")
        return str(httpx.URL(self._endpoint).join(location))

    async def _send_chunks(
        self,
        client: httpx.AsyncClient,
        job: UploadJob,
        location: str,
        total: int,
        tracker: ProgressTracker,
    ) -> None:
        offset = 0
        failures = 0
        while offset < total:
            length = min(self._config.chunk_size, total - offset)
            try:
                offset = await self._patch(client, job, location, offset, length, tracker)
                failures = 0
            except (httpx.RequestError, _OffsetConflict) as exc:
                failures += 1
                if failures > self._config.resume_attempts:
                    raise TransportError(
                        f"Chunk at offset {offset} of {job.id} failed {failures} times: {exc}"
                    ) from exc
                logger.warning(f"Chunk at offset {offset} of {job.id} interrupted ({exc}); resuming")
                await asyncio.sleep(self._retry_delay * failures)
                offset = await self.server_offset(client, location)
        tracker.update(total)

    async def _patch(
        self,
        client: httpx.AsyncClient,
        job: UploadJob,
        location: str,
        offset: int,
        length: int,
        tracker: ProgressTracker,
    ) -> int:
        response = await client.patch(
            location,
            content=stream_file(
                job.local_file_ref, offset, length, self._config.progress_block_size, tracker
            ),
            headers=self._headers(**{
                "Upload-Offset": str(offset),
                "Content-Type": TUS_CHUNK_CONTENT_TYPE,
                "Content-Length": str(length),
            }),
        )
        if response.status_code == 409:
            raise _OffsetConflict(f"server rejected offset {offset}")
        if response.status_code >= 400:
            raise TransportError(f"Chunk at offset {offset} rejected with {response.status_code}")

        new_offset = _offset_header(response, default=offset + length)
        if new_offset <= offset:
            raise TransportError(f"Server did not advance past offset {offset}")
        return new_offset

    async def server_offset(self, client: httpx.AsyncClient, location: str) -> int:
        response = await client.head(location, headers=self._headers())
        if response.status_code >= 400:
            raise TransportError(f"Upload {location} cannot be resumed ({response.status_code})")
        offset = _offset_header(response)
        if offset is None:
            raise TransportError(f"Upload {location} did not report its offset")
        return offset


class _OffsetConflict(Exception):
    pass


def _offset_header(response: httpx.Response, default: Optional[int] = None) -> Optional[int]:
    value = response.headers.get("Upload-Offset")
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise TransportError(f"Invalid Upload-Offset header: {value!r}")


def build_transport(
    config: UploadConfig,
    api_client: IAPIClient,
    token: Optional[str] = None,
) -> IUploadTransport:
    """Transport for ``config.strategy``; one instance per orchestrator."""
    if config.strategy == "resumable":
        return ResumableUploadTransport(config.resumable_endpoint, config, token=token)
    return DirectUploadTransport(api_client, config)
