"""Analysis result retrieval."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import APIError, FetchError
from ..models import AnalysisResult
from ..protocols import IAPIClient, IAnalysisFetcher

logger = logging.getLogger(__name__)

ANALYSIS_ENDPOINT = "/exercise-analysis/{job_id}"
DEFAULT_ERROR_REASON = "Analysis failed"


class AnalysisFetcher(IAnalysisFetcher):
    """
    Fetches the analysis of a completed job.

    Issues exactly one request per call: processing already reported
    completion, so a failure here is surfaced as FetchError instead of retried.
    """

    def __init__(self, api_client: IAPIClient):
        self._api = api_client

    async def fetch(self, job_id: str) -> AnalysisResult:
        endpoint = ANALYSIS_ENDPOINT.format(job_id=job_id)
        try:
            response = await self._api.get(endpoint, max_retries=1)
        except (APIError, httpx.HTTPError) as exc:
            raise FetchError(f"Analysis for {job_id} is unavailable: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(f"Analysis for {job_id} is not valid JSON") from exc

        return self.parse(job_id, data)

    @staticmethod
    def parse(job_id: str, data) -> AnalysisResult:
        if not isinstance(data, dict):
            raise FetchError(f"Analysis for {job_id} is malformed: expected an object")

        status = data.get("status")
        payload = {k: v for k, v in data.items() if k != "status"}
        if status == "success":
            return AnalysisResult.success(payload)
        if status == "error":
            reason: Optional[str] = data.get("error") or data.get("reason") or DEFAULT_ERROR_REASON
            logger.info(f"Analysis for {job_id} reported an error: {reason}")
            return AnalysisResult.failure(str(reason), payload)
        raise FetchError(f"Analysis for {job_id} is malformed: unknown status {status!r}")
