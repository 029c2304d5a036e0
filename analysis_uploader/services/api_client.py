"""HTTP adapter for analysis API operations."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import APIError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


class HTTPAPIClient:
    """
    HTTP client adapter for the analysis API.

    Implements IAPIClient protocol. Retries 5xx answers and network errors with a
    linear back-off; any other status >= 400 raises APIError immediately.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: float = 0.5,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._token = token
        self._transport = transport
        self._retry_delay = retry_delay
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def post(self, endpoint: str, json: Dict, max_retries: Optional[int] = None) -> httpx.Response:
        return await self._request("POST", endpoint, max_retries, json=json)

    async def get(self, endpoint: str, max_retries: Optional[int] = None) -> httpx.Response:
        return await self._request("GET", endpoint, max_retries)

    async def _request(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int],
        **kwargs: Any,
    ) -> httpx.Response:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")

        attempts = max(1, max_retries if max_retries is not None else DEFAULT_MAX_RETRIES)

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await self._client.request(method, endpoint, **kwargs)
            except httpx.RequestError as exc:
                if last_attempt:
                    raise
                logger.debug(f"{method} {endpoint} failed ({exc!r}), retrying")
                await asyncio.sleep(self._retry_delay * (attempt + 1))
                continue

            if response.status_code >= 500 and not last_attempt:
                logger.debug(f"{method} {endpoint} returned {response.status_code}, retrying")
                await asyncio.sleep(self._retry_delay * (attempt + 1))
                continue

            if response.status_code >= 400:
                try:
                    error_detail = response.json()
                except ValueError:
                    error_detail = response.text
                raise APIError(response.status_code, method, endpoint, error_detail)

            return response

        raise RuntimeError(f"Failed to {method} {endpoint} after {attempts} attempts")
