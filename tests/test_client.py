"""
Tests for ApiClient, the orchestrator's HTTP collaborators.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from searchbox.backends.base import CompletionError
from searchbox.client import ApiClient


def _response(status=200, json_data=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = json_data if json_data is not None else {}
    return resp


def _mock_client(response=None, exc=None):
    client = AsyncMock()
    if exc is not None:
        client.post.side_effect = exc
    else:
        client.post.return_value = response
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


@pytest.mark.asyncio
async def test_complete_success_sends_cookie():
    client = _mock_client(_response(json_data={"text": "hi", "model": "mistral", "timestamp": "t"}))
    with patch("searchbox.client.httpx.AsyncClient", return_value=client) as ctor:
        completion = await ApiClient("http://sb.test/", user_email="a@b.c").complete(
            [{"content": "hello", "isUser": True}], "mistral",
        )

    assert completion.text == "hi"
    assert completion.timestamp == "t"
    assert ctor.call_args.kwargs["cookies"] == {"userEmail": "a%40b.c"}
    assert client.post.call_args.args[0] == "http://sb.test/chat"
    assert client.post.call_args.kwargs["json"]["model"] == "mistral"


@pytest.mark.asyncio
async def test_complete_server_error_raises_with_message():
    client = _mock_client(_response(status=500, json_data={"error": "Chat completion API request failed: Status 503"}))
    with patch("searchbox.client.httpx.AsyncClient", return_value=client):
        with pytest.raises(CompletionError) as exc_info:
            await ApiClient().complete([{"content": "x", "isUser": True}], "mistral")
    assert exc_info.value.message == "Chat completion API request failed: Status 503"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_complete_timeout():
    client = _mock_client(exc=httpx.ReadTimeout("slow"))
    with patch("searchbox.client.httpx.AsyncClient", return_value=client):
        with pytest.raises(CompletionError, match="timed out"):
            await ApiClient().complete([{"content": "x", "isUser": True}], "mistral")


@pytest.mark.asyncio
async def test_search_success():
    body = {
        "organic_results": [{"title": "T", "link": "https://w.test/a", "snippet": "s", "position": 1}],
        "search_metadata": {"status": "Success"},
        "timestamp": "t",
    }
    with patch("searchbox.client.httpx.AsyncClient", return_value=_mock_client(_response(json_data=body))) as ctor:
        outcome = await ApiClient().search("tokyo")

    assert outcome.ok
    assert outcome.results[0].source == "w.test"
    assert ctor.call_args.kwargs["cookies"] == {}


@pytest.mark.asyncio
async def test_search_failure_is_outcome():
    with patch("searchbox.client.httpx.AsyncClient",
               return_value=_mock_client(_response(status=500, json_data={"error": "down"}))):
        outcome = await ApiClient().search("tokyo")
    assert not outcome.ok
    assert outcome.error == "down"

    with patch("searchbox.client.httpx.AsyncClient",
               return_value=_mock_client(exc=httpx.ConnectError("refused"))):
        outcome = await ApiClient().search("tokyo")
    assert not outcome.ok
    assert outcome.error == "refused"


@pytest.mark.asyncio
async def test_dashboard_sends_bearer_token():
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"usage": {"totalRequests": 2}}
    client = _mock_client()
    client.get.return_value = resp
    with patch("searchbox.client.httpx.AsyncClient", return_value=client):
        snapshot = await ApiClient("http://sb.test").dashboard("tok", force_refresh=True)

    assert snapshot["usage"]["totalRequests"] == 2
    resp.raise_for_status.assert_called_once()
    assert client.get.call_args.args[0] == "http://sb.test/dashboard"
    assert client.get.call_args.kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert client.get.call_args.kwargs["params"] == {"_nocache": "1"}
