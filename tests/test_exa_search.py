"""Tests for the Exa MCP search client and its session cache."""
from __future__ import annotations

import asyncio
import itertools
import json

import httpx
import pytest

from company_scout.tools.exa_search import ExaSearchClient, is_rate_limited
from company_scout.tools.exa_session import ExaSessionManager


def _search_body(*urls: str) -> str:
    results = [{"title": f"Result {i}", "url": url, "text": "body"} for i, url in enumerate(urls)]
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": 2,
            "result": {"content": [{"type": "text", "text": json.dumps({"results": results})}]},
        }
    )


class FakeProvider:
    """Scripted MCP endpoint: handshakes succeed, tools/call replies come from a queue."""

    def __init__(self, replies=None, session_id: str = "sess-1"):
        self.replies = list(replies or [])
        self.session_id = session_id
        self.requests: list[httpx.Request] = []

    def methods(self) -> list[str]:
        return [json.loads(request.content)["method"] for request in self.requests]

    def search_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if json.loads(r.content)["method"] == "tools/call"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = json.loads(request.content)["method"]
        if method == "initialize":
            return httpx.Response(
                200,
                headers={"Mcp-Session-Id": self.session_id},
                json={"jsonrpc": "2.0", "id": 1, "result": {"protocolVersion": "2024-11-05"}},
            )
        if method == "notifications/initialized":
            return httpx.Response(202)
        reply = self.replies.pop(0) if self.replies else httpx.Response(200, text=_search_body("https://a.com"))
        if isinstance(reply, Exception):
            raise reply
        return reply


def _client(provider, **kwargs):
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    client = ExaSearchClient(
        api_key="test-key",
        endpoint="https://mcp.test/mcp",
        transport=httpx.MockTransport(provider),
        sleep=fake_sleep,
        **kwargs,
    )
    return client, sleeps


class TestSessionManager:
    def test_token_expires_after_ttl(self):
        now = [100.0]
        sessions = ExaSessionManager(ttl_seconds=240, clock=lambda: now[0])

        sessions.store("abc")
        assert sessions.get() == "abc"

        now[0] = 339.9
        assert sessions.is_valid

        now[0] = 340.0
        assert sessions.get() is None

    def test_invalidate_drops_token(self):
        sessions = ExaSessionManager()
        sessions.store("abc")

        sessions.invalidate()

        assert sessions.get() is None


class TestRateLimitDetection:
    def test_status_429(self):
        assert is_rate_limited(429, "", []) is True

    def test_textual_429_in_unrecognised_body(self):
        assert is_rate_limited(200, '{"error": "429 Too Many Requests"}', None) is True

    def test_textual_429_ignored_when_results_parsed(self):
        from company_scout.models.scout import SearchResult

        assert is_rate_limited(200, "raised $429M", [SearchResult(title="t", url="u")]) is False

    def test_recognised_empty_results_are_not_throttling(self):
        body = json.dumps(
            {"jsonrpc": "2.0", "id": 429, "result": {"content": [{"type": "text", "text": '{"results": []}'}]}}
        )
        assert is_rate_limited(200, body, []) is False

    def test_echoed_request_id_is_not_sniffed(self):
        body = json.dumps({"jsonrpc": "2.0", "id": 1429, "error": {"code": -32603, "message": "internal"}})
        assert is_rate_limited(200, body, None) is False


class TestSearch:
    @pytest.mark.asyncio
    async def test_handshake_then_search(self):
        provider = FakeProvider(replies=[httpx.Response(200, text=_search_body("https://a.com", "https://b.com"))])
        client, sleeps = _client(provider)

        results = await client.search("glp-1 telehealth", num_results=5)

        assert [r.url for r in results] == ["https://a.com", "https://b.com"]
        assert provider.methods() == ["initialize", "notifications/initialized", "tools/call"]
        search_request = provider.search_requests()[0]
        assert search_request.headers["Mcp-Session-Id"] == "sess-1"
        assert search_request.headers["MCP-Protocol-Version"] == "2025-03-26"
        assert search_request.url.params["exaApiKey"] == "test-key"
        arguments = json.loads(search_request.content)["params"]["arguments"]
        assert arguments["query"] == "glp-1 telehealth"
        assert arguments["numResults"] == 5
        assert client.sessions.get() == "sess-1"
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_session_is_reused_across_searches(self):
        provider = FakeProvider()
        client, _ = _client(provider)

        await client.search("one")
        await client.search("two")

        assert provider.methods().count("initialize") == 1
        assert len(provider.search_requests()) == 2

    @pytest.mark.asyncio
    async def test_explicit_session_token_skips_handshake(self):
        provider = FakeProvider()
        client, _ = _client(provider)

        await client.search("one", session_token="given-token")

        assert provider.methods() == ["tools/call"]
        assert provider.requests[0].headers["Mcp-Session-Id"] == "given-token"

    @pytest.mark.asyncio
    async def test_rate_limit_retries_with_fresh_session(self):
        provider = FakeProvider(
            replies=[
                httpx.Response(429, text="Too Many Requests"),
                httpx.Response(200, text=_search_body("https://a.com")),
            ]
        )
        client, sleeps = _client(provider)

        results = await client.search("query")

        assert len(results) == 1
        assert sleeps == [2]
        assert provider.methods().count("initialize") == 2

    @pytest.mark.asyncio
    async def test_textual_429_in_body_is_retried(self):
        provider = FakeProvider(
            replies=[
                httpx.Response(200, text='{"jsonrpc": "2.0", "error": {"message": "HTTP 429 rate limit"}}'),
                httpx.Response(200, text=_search_body("https://a.com")),
            ]
        )
        client, sleeps = _client(provider)

        results = await client.search("query")

        assert len(results) == 1
        assert sleeps == [2]

    @pytest.mark.asyncio
    async def test_empty_result_echoing_id_429_is_returned_once(self):
        request_ids: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            request_id = json.loads(request.content)["id"]
            request_ids.append(request_id)
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "result": {"content": [{"type": "text", "text": json.dumps({"results": []})}]},
                },
            )

        client, sleeps = _client(handler)
        client._request_ids = itertools.count(429)
        client.sessions.store("sess-1")

        assert await client.search("obscure company") == []
        assert request_ids == [429]
        assert sleeps == []
        assert client.sessions.get() == "sess-1"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        provider = FakeProvider(replies=[httpx.Response(429) for _ in range(4)])
        client, sleeps = _client(provider, max_retries=3)

        results = await client.search("query")

        assert results == []
        assert sleeps == [2, 4, 8]
        assert len(provider.search_requests()) == 4

    @pytest.mark.asyncio
    async def test_client_error_is_terminal(self):
        provider = FakeProvider(replies=[httpx.Response(400, text="bad request")])
        client, sleeps = _client(provider)

        assert await client.search("query") == []
        assert sleeps == []
        assert len(provider.search_requests()) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        provider = FakeProvider(
            replies=[
                httpx.Response(503, text="unavailable"),
                httpx.Response(200, text=_search_body("https://a.com")),
            ]
        )
        client, sleeps = _client(provider)

        assert len(await client.search("query")) == 1
        assert sleeps == [2]

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self):
        provider = FakeProvider(
            replies=[
                httpx.ConnectError("connection refused"),
                httpx.Response(200, text=_search_body("https://a.com")),
            ]
        )
        client, sleeps = _client(provider)

        assert len(await client.search("query")) == 1
        assert sleeps == [2]

    @pytest.mark.asyncio
    async def test_rejected_handshake_returns_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="invalid api key")

        client, sleeps = _client(handler)

        assert await client.search("query") == []
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_cancelled_search_issues_no_requests(self):
        provider = FakeProvider()
        client, _ = _client(provider)
        cancel_event = asyncio.Event()
        cancel_event.set()

        assert await client.search("query", cancel_event=cancel_event) == []
        assert provider.requests == []
