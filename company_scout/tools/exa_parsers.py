"""Parsers for the search provider's response bodies.

The same tool call can come back as a plain JSON-RPC object, as a server-sent
event stream with the JSON behind `data:` prefixes, or as free text laid out
in `Title:` / `URL:` / `Text:` blocks. Each parser returns None when the body
is not in its format so the chain can move on to the next one.
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable

from company_scout.models.scout import SearchResult

_FIELD_PATTERN = re.compile(
    r"^(Title|URL|Published Date|Author|Highlights|Text):\s*(.*)$", re.IGNORECASE
)


def _to_result(raw: dict[str, Any]) -> SearchResult:
    highlights = raw.get("highlights") or []
    if not isinstance(highlights, list):
        highlights = [str(highlights)]
    text = raw.get("text")
    return SearchResult(
        title=str(raw.get("title") or ""),
        url=str(raw.get("url") or ""),
        text=text if isinstance(text, str) and text else None,
        highlights=[str(h) for h in highlights if h],
        published_date=raw.get("publishedDate") or raw.get("published_date"),
    )


def _results_from_list(raw_results: Any) -> list[SearchResult] | None:
    if not isinstance(raw_results, list):
        return None
    return [_to_result(item) for item in raw_results if isinstance(item, dict)]


def _results_from_payload(payload: Any) -> list[SearchResult] | None:
    """Pull search hits out of a JSON-RPC envelope or a bare results object."""
    if not isinstance(payload, dict):
        return None
    if "results" in payload:
        return _results_from_list(payload["results"])

    result = payload.get("result")
    if not isinstance(result, dict):
        return None
    if "results" in result:
        return _results_from_list(result["results"])

    for block in result.get("content") or []:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text = block.get("text") or ""
        try:
            inner = json.loads(text)
        except json.JSONDecodeError:
            parsed = parse_plain_text(text)
        else:
            parsed = _results_from_list(inner.get("results")) if isinstance(inner, dict) else None
        if parsed is not None:
            return parsed
    return None


def parse_json_body(body: str) -> list[SearchResult] | None:
    """Format 1: the whole body is a single JSON object."""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return None
    return _results_from_payload(payload)


def parse_event_stream(body: str) -> list[SearchResult] | None:
    """Format 2: newline-delimited event stream with JSON after `data:`."""
    for line in body.splitlines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if not data:
            continue
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            continue
        results = _results_from_payload(payload)
        if results is not None:
            return results
    return None


def parse_plain_text(body: str) -> list[SearchResult] | None:
    """Format 3: free text made of `Title:` / `URL:` / `Text:` blocks.

    Continuation lines after `Text:` belong to the text. A new `Title:` line
    starts the next result.
    """
    results: list[SearchResult] = []
    current: dict[str, Any] | None = None
    last_field: str | None = None

    def flush() -> None:
        if current and (current.get("title") or current.get("url")):
            results.append(
                SearchResult(
                    title=current.get("title", ""),
                    url=current.get("url", ""),
                    text="\n".join(current.get("text", [])).strip() or None,
                    highlights=current.get("highlights", []),
                    published_date=current.get("published_date"),
                )
            )

    for raw_line in body.splitlines():
        line = raw_line.strip()
        match = _FIELD_PATTERN.match(line)
        if match:
            name, value = match.group(1).lower(), match.group(2).strip()
            if name == "title" or current is None:
                flush()
                current = {}
            if name == "title":
                current["title"] = value
            elif name == "url":
                current["url"] = value
            elif name == "published date":
                current["published_date"] = value or None
            elif name == "highlights":
                current["highlights"] = [value] if value else []
            elif name == "text":
                current["text"] = [value] if value else []
            last_field = name
            continue

        if current is None or not line:
            continue
        if last_field == "text":
            current.setdefault("text", []).append(line)
        elif last_field == "highlights":
            current.setdefault("highlights", []).append(line)

    flush()
    return results or None


PARSERS: tuple[Callable[[str], list[SearchResult] | None], ...] = (
    parse_json_body,
    parse_event_stream,
    parse_plain_text,
)


def parse_known_formats(body: str) -> list[SearchResult] | None:
    """Run the parser chain; first parser that recognises the body wins, else None."""
    if not body or not body.strip():
        return None
    for parser in PARSERS:
        results = parser(body)
        if results is not None:
            return results
    return None


def _payload_message(payload: Any) -> str:
    if not isinstance(payload, dict):
        return json.dumps(payload)
    parts = []
    if "error" in payload:
        parts.append(json.dumps(payload["error"]))
    result = payload.get("result")
    if isinstance(result, dict):
        for block in result.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text") or ""))
    return "\n".join(parts)


def provider_message(body: str) -> str:
    """Text the provider wrote into a body, leaving out JSON-RPC envelope fields like `id`."""
    try:
        return _payload_message(json.loads(body))
    except json.JSONDecodeError:
        pass

    messages = []
    for line in body.splitlines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        try:
            messages.append(_payload_message(json.loads(data)))
        except json.JSONDecodeError:
            messages.append(data)
    return "\n".join(messages) if messages else body
