from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from company_scout.config import settings
from company_scout.models.scout import SearchResult
from company_scout.services import logger as log_service
from company_scout.services.cancellation import is_cancelled, sleep_unless_cancelled
from company_scout.tools.exa_parsers import parse_known_formats, provider_message
from company_scout.tools.exa_session import ExaSessionManager

SESSION_HEADER = "Mcp-Session-Id"
CLIENT_INFO = {"name": "company-scout", "version": "0.1.0"}
HANDSHAKE_PROTOCOL_VERSION = "2024-11-05"


def is_rate_limited(status_code: int, body: str, results: list[SearchResult] | None) -> bool:
    """The provider signals throttling with a textual "429", not always the status.

    `results` is None when no parser recognised the body. Only such bodies are
    sniffed, and only their error or text content, never the echoed request id.
    """
    if status_code == 429:
        return True
    return results is None and "429" in provider_message(body)


class ExaSearchClient:
    """Search client for Exa's hosted MCP endpoint (JSON-RPC over HTTP).

    One handshake yields a session id that is cached in `sessions` and reused
    by every search until it expires or a rate-limit response invalidates it.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        endpoint: str | None = None,
        sessions: ExaSessionManager | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = settings.exa_api_key if api_key is None else api_key
        self.endpoint = endpoint or settings.exa_mcp_endpoint
        self.sessions = sessions or ExaSessionManager(ttl_seconds=settings.exa_session_ttl_seconds)
        self.timeout = timeout or settings.exa_request_timeout_seconds
        self.max_retries = settings.exa_max_retries if max_retries is None else max_retries
        self._transport = transport
        self._sleep = sleep
        self._request_ids = itertools.count(1)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self, session_token: str | None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "MCP-Protocol-Version": settings.exa_protocol_version,
        }
        if session_token:
            headers[SESSION_HEADER] = session_token
        return headers

    def _params(self) -> dict[str, str]:
        return {"exaApiKey": self.api_key, "tools": settings.exa_search_tool}

    def _rpc(self, method: str, params: dict[str, Any], *, notification: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method, "params": params}
        if not notification:
            payload["id"] = next(self._request_ids)
        return payload

    async def handshake(self, client: httpx.AsyncClient) -> str | None:
        """Open a provider session and cache its id."""
        response = await client.post(
            self.endpoint,
            params=self._params(),
            headers=self._headers(None),
            json=self._rpc(
                "initialize",
                {
                    "protocolVersion": HANDSHAKE_PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "clientInfo": CLIENT_INFO,
                },
            ),
        )
        response.raise_for_status()
        token = response.headers.get(SESSION_HEADER)
        if not token:
            logger.debug("Search provider returned no session id; continuing without one")
            return None
        self.sessions.store(token)

        try:
            await client.post(
                self.endpoint,
                params=self._params(),
                headers=self._headers(token),
                json=self._rpc("notifications/initialized", {}, notification=True),
            )
        except httpx.HTTPError as exc:
            # Notifications carry no response contract.
            logger.debug(f"initialized notification failed: {exc}")
        return token

    def _search_arguments(self, query: str, num_results: int) -> dict[str, Any]:
        return {
            "query": query,
            "numResults": num_results,
            "type": "auto",
            "useAutoprompt": True,
            "text": {"maxCharacters": settings.exa_text_max_characters},
            "highlights": {
                "numSentences": settings.exa_highlight_sentences,
                "highlightsPerUrl": settings.exa_highlights_per_url,
            },
        }

    async def search(
        self,
        query: str,
        session_token: str | None = None,
        num_results: int | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[SearchResult]:
        """Run one search; degrade to [] rather than raise once retries run out."""
        num_results = num_results or settings.search_num_results
        token = session_token

        for attempt in range(self.max_retries + 1):
            if is_cancelled(cancel_event):
                return []

            started = time.monotonic()
            failure: str
            try:
                async with self._client() as client:
                    if token is None:
                        token = self.sessions.get() or await self.handshake(client)
                    response = await client.post(
                        self.endpoint,
                        params=self._params(),
                        headers=self._headers(token),
                        json=self._rpc(
                            "tools/call",
                            {
                                "name": settings.exa_search_tool,
                                "arguments": self._search_arguments(query, num_results),
                            },
                        ),
                    )
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status != 429 and status < 500:
                    log_service.log_search_call(query, attempt, "error", error=f"handshake HTTP {status}")
                    return []
                failure = f"handshake HTTP {status}"
            except httpx.TransportError as exc:
                failure = f"transport error: {exc!r}"
            else:
                body = response.text
                parsed = parse_known_formats(body)
                results = parsed or []
                elapsed_ms = int((time.monotonic() - started) * 1000)
                status = response.status_code
                if is_rate_limited(status, body, parsed):
                    failure = "rate limited"
                elif status >= 500 or status == 404:
                    failure = f"HTTP {status}"
                elif status >= 400:
                    log_service.log_search_call(
                        query, attempt, "error", duration_ms=elapsed_ms, error=f"HTTP {status}"
                    )
                    return []
                else:
                    log_service.log_search_call(
                        query, attempt, "success", results_count=len(results), duration_ms=elapsed_ms
                    )
                    return results

            log_service.log_search_call(
                query,
                attempt,
                "retry" if attempt < self.max_retries else "failed",
                duration_ms=int((time.monotonic() - started) * 1000),
                error=failure,
            )
            if attempt >= self.max_retries:
                break

            # Drop the shared session so the retry (and every other caller) re-handshakes.
            self.sessions.invalidate()
            token = None
            if await sleep_unless_cancelled(2 ** (attempt + 1), cancel_event, sleep=self._sleep):
                return []

        logger.warning(f"Search gave up after {self.max_retries + 1} attempts: {query[:80]}")
        return []


_client: ExaSearchClient | None = None


def client() -> ExaSearchClient:
    """Get or create the shared search client (and with it the shared session)."""
    global _client
    if _client is None:
        _client = ExaSearchClient()
    return _client
