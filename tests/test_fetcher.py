"""Tests for the analysis fetcher."""
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from analysis_uploader.errors import APIError, FetchError
from analysis_uploader.services.fetcher import AnalysisFetcher


def _api(body=None, error=None):
    client = Mock()
    response = Mock()
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    client.get = AsyncMock(return_value=response, side_effect=error)
    return client


@pytest.mark.asyncio
async def test_success_payload():
    api = _api({"status": "success", "metrics": {"peak_velocity": 1.2}, "tension_windows": [[0, 1]]})
    result = await AnalysisFetcher(api).fetch("job123")

    assert result.ok is True
    assert result.payload == {"metrics": {"peak_velocity": 1.2}, "tension_windows": [[0, 1]]}
    api.get.assert_awaited_once_with("/exercise-analysis/job123", max_retries=1)


@pytest.mark.asyncio
async def test_error_result_carries_reason():
    result = await AnalysisFetcher(_api({"status": "error", "error": "no lifter detected"})).fetch("job123")
    assert result.ok is False
    assert result.status == "error"
    assert result.reason == "no lifter detected"


@pytest.mark.asyncio
async def test_error_result_default_reason():
    result = await AnalysisFetcher(_api({"status": "error"})).fetch("job123")
    assert result.reason == "Analysis failed"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [["not", "an", "object"], {"metrics": {}}, {"status": "pending"}])
async def test_malformed_body(body):
    with pytest.raises(FetchError, match="malformed"):
        await AnalysisFetcher(_api(body)).fetch("job123")


@pytest.mark.asyncio
async def test_invalid_json():
    with pytest.raises(FetchError, match="JSON"):
        await AnalysisFetcher(_api(ValueError("Expecting value"))).fetch("job123")


@pytest.mark.asyncio
async def test_api_error_is_fetch_error():
    api = _api(error=APIError(503, "GET", "/exercise-analysis/job123", "unavailable"))
    with pytest.raises(FetchError) as info:
        await AnalysisFetcher(api).fetch("job123")
    assert isinstance(info.value.__cause__, APIError)
    assert api.get.await_count == 1


@pytest.mark.asyncio
async def test_network_error_is_fetch_error():
    with pytest.raises(FetchError):
        await AnalysisFetcher(_api(error=httpx.ReadTimeout("timed out"))).fetch("job123")
