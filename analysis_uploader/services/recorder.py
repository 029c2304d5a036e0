"""Upload-intent metadata recorder backed by the analysis API."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import APIError, RecordError
from ..models import JobAttributes, UploadJob
from ..protocols import IAPIClient, IMetadataRecorder

logger = logging.getLogger(__name__)

SAVE_VIDEO_INFO_ENDPOINT = "/save-video-info"


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RecordError(f"Expected a number, got {value!r}")


class MetadataRecorder(IMetadataRecorder):
    """
    Persists one record per job id.

    The server keys records by ``videoName`` so re-recording the same job
    overwrites it; ``recorded`` mirrors the last payload sent per job id.
    """

    def __init__(self, api_client: IAPIClient):
        self._api = api_client
        self.recorded: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def payload(job: UploadJob, attributes: JobAttributes) -> Dict[str, Any]:
        email = (attributes.email or "").strip()
        if not email:
            raise RecordError("An email address is required to record an upload")
        return {
            "email": email,
            "weight": _number(attributes.weight),
            "height": _number(attributes.height),
            "load": _number(attributes.load),
            "videoName": job.id,
            "isPortrait": job.is_portrait,
        }

    async def record(self, job: UploadJob, attributes: JobAttributes) -> None:
        payload = self.payload(job, attributes)
        try:
            await self._api.post(SAVE_VIDEO_INFO_ENDPOINT, json=payload)
        except (APIError, httpx.HTTPError) as exc:
            raise RecordError(f"Could not save video info for {job.id}: {exc}") from exc

        replaced = job.id in self.recorded
        self.recorded[job.id] = payload
        logger.debug(f"Recorded video info for {job.id} (overwrite={replaced})")
