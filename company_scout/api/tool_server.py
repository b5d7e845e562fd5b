from __future__ import annotations

import asyncio
import json
from typing import Any

from loguru import logger
from pydantic import ValidationError

from company_scout.agents.orchestrator import ScoutOrchestrator
from company_scout.config import settings
from company_scout.errors import ScoutError
from company_scout.models.schemas import ScoutRequest, SheetExportRequest
from company_scout.services.streaming import ProgressReporter
from company_scout.tools.sheets_export import create_company_sheet

SCOUT_TOOL = "scout_companies"
SHEET_TOOL = "create_company_sheet"


def text_result(text: str, structured: Any = None) -> dict[str, Any]:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if structured is not None:
        result["structuredContent"] = structured
    return result


def error_result(message: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": message}], "isError": True}


def _first_validation_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid value')}" if location else error.get("msg", "invalid value")


class ScoutToolServer:
    """MCP-style tool surface over the scout pipeline and the sheet export."""

    def __init__(self, orchestrator: ScoutOrchestrator | None = None, google_access_token: str | None = None):
        self.orchestrator = orchestrator or ScoutOrchestrator()
        self.google_access_token = (
            settings.google_access_token if google_access_token is None else google_access_token
        )

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": SCOUT_TOOL,
                "description": (
                    "Research and verify companies matching the criteria. Plans searches, "
                    "extracts candidates, verifies each one and returns a ranked list."
                ),
                "inputSchema": ScoutRequest.model_json_schema(by_alias=True),
            },
            {
                "name": SHEET_TOOL,
                "description": "Export a list of companies to a new Google Sheet and return its URL.",
                "inputSchema": SheetExportRequest.model_json_schema(by_alias=True),
            },
        ]

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        reporter: ProgressReporter | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        if name == SCOUT_TOOL:
            return await self._scout(arguments or {}, reporter=reporter, cancel_event=cancel_event)
        if name == SHEET_TOOL:
            return await self._export(arguments or {})
        return error_result(f"Unknown tool: {name}")

    async def _scout(
        self,
        arguments: dict[str, Any],
        *,
        reporter: ProgressReporter | None,
        cancel_event: asyncio.Event | None,
    ) -> dict[str, Any]:
        try:
            request = ScoutRequest.model_validate(arguments)
        except ValidationError as exc:
            return error_result(f"Scout tool failed: invalid arguments ({_first_validation_error(exc)})")

        try:
            result = await self.orchestrator.scout_companies(
                request.criteria,
                request.max_results,
                request.min_relevance_score,
                reporter=reporter,
                cancel_event=cancel_event,
            )
        except ScoutError as exc:
            logger.warning(f"Scout run failed: {exc}")
            return error_result(f"Scout tool failed: {exc}")
        except Exception as exc:
            logger.exception("Scout run crashed")
            return error_result(f"Scout tool failed: {exc}")

        payload = result.to_dict()
        return text_result(json.dumps(payload), payload)

    async def _export(self, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            request = SheetExportRequest.model_validate(arguments)
        except ValidationError as exc:
            return error_result(f"Failed to create sheet: invalid arguments ({_first_validation_error(exc)})")
        if not self.google_access_token:
            return error_result("Google account not connected. Please connect Google to export.")

        try:
            url = await create_company_sheet(self.google_access_token, request.title, request.companies)
        except ScoutError as exc:
            return error_result(f"Failed to create sheet: {exc}")

        return text_result(
            f"Created Google Sheet with {len(request.companies)} companies: {url}",
            {"type": "google_sheet", "url": url, "title": request.title},
        )
