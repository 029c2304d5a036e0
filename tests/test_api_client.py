"""Tests for the HTTP API adapter."""
import httpx
import pytest

from analysis_uploader.errors import APIError
from analysis_uploader.services.api_client import HTTPAPIClient


def _client(handler, **kwargs):
    return HTTPAPIClient(
        "http://api.test",
        transport=httpx.MockTransport(handler),
        retry_delay=0,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_get_retries_server_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"status": "processing"})

    async with _client(handler) as client:
        response = await client.get("/video-status/abc")

    assert response.json() == {"status": "processing"}
    assert len(calls) == 3
    assert calls[0].url.path == "/video-status/abc"


@pytest.mark.asyncio
async def test_single_attempt_raises_on_server_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    async with _client(handler) as client:
        with pytest.raises(APIError) as info:
            await client.get("/exercise-analysis/abc", max_retries=1)

    assert len(calls) == 1
    assert info.value.status_code == 502
    assert info.value.is_server_error is True
    assert info.value.detail == "bad gateway"


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(422, json={"error": "email missing"})

    async with _client(handler) as client:
        with pytest.raises(APIError) as info:
            await client.post("/save-video-info", json={})

    assert len(calls) == 1
    assert info.value.status_code == 422
    assert info.value.method == "POST"
    assert info.value.detail == {"error": "email missing"}


@pytest.mark.asyncio
async def test_network_errors_are_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(httpx.ConnectError):
            await client.get("/video-status/abc", max_retries=2)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_bearer_token_and_json_body():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(200, json={"ok": True})

    async with _client(handler, token="secret-token") as client:
        await client.post("/save-video-info", json={"videoName": "abc"})

    assert seen["auth"] == "Bearer secret-token"
    assert b'"videoName"' in seen["body"]


@pytest.mark.asyncio
async def test_requires_context_manager():
    client = HTTPAPIClient("http://api.test")
    with pytest.raises(RuntimeError, match="not initialized"):
        await client.get("/video-status/abc")
