from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from company_scout.config import settings
from company_scout.errors import SheetsExportError

SHEET_TITLE = "Companies"
HEADER_ROW = ["Company Name", "Website", "Reasoning", "Fit Score", "Status"]
SHEET_URL_TEMPLATE = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}"


def company_row(company: dict[str, Any], min_relevance_score: int = 5) -> list[str]:
    """One sheet row; accepts scout records and the older reasoning/fitScore shape."""
    score = company.get("relevanceScore", company.get("fitScore", 0))
    status = company.get("status")
    included = status == "Accepted" if status else float(score or 0) >= min_relevance_score
    return [
        str(company.get("name", "")),
        str(company.get("website", "")),
        str(company.get("reason") or company.get("reasoning") or company.get("description") or ""),
        str(score),
        "Included" if included else "Excluded",
    ]


def _format_requests(sheet_id: int) -> list[dict[str, Any]]:
    return [
        {
            "repeatCell": {
                "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
                "cell": {"userEnteredFormat": {"textFormat": {"bold": True}}},
                "fields": "userEnteredFormat.textFormat.bold",
            }
        },
        {
            "autoResizeDimensions": {
                "dimensions": {
                    "sheetId": sheet_id,
                    "dimension": "COLUMNS",
                    "startIndex": 0,
                    "endIndex": len(HEADER_ROW),
                }
            }
        },
    ]


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.status_code >= 400:
        raise SheetsExportError(f"Failed to {action}: HTTP {response.status_code} {response.text[:200]}")


async def create_company_sheet(
    access_token: str,
    title: str,
    companies: list[dict[str, Any]],
    *,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Create a spreadsheet holding the companies and return its URL."""
    if not access_token:
        raise SheetsExportError("Google account not connected")

    base = (base_url or settings.google_sheets_base_url).rstrip("/")
    headers = {"Authorization": f"Bearer {access_token}"}
    rows = [HEADER_ROW, *(company_row(company) for company in companies)]

    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport, headers=headers) as client:
            created = await client.post(
                base,
                json={
                    "properties": {"title": title},
                    "sheets": [{"properties": {"title": SHEET_TITLE}}],
                },
            )
            _raise_for_status(created, "create sheet")
            payload = created.json()
            spreadsheet_id = payload["spreadsheetId"]
            sheets = payload.get("sheets") or [{}]
            sheet_id = sheets[0].get("properties", {}).get("sheetId", 0)

            written = await client.put(
                f"{base}/{spreadsheet_id}/values/{SHEET_TITLE}!A1:E{len(rows)}",
                params={"valueInputOption": "RAW"},
                json={"values": rows},
            )
            _raise_for_status(written, "write rows")

            formatted = await client.post(
                f"{base}/{spreadsheet_id}:batchUpdate",
                json={"requests": _format_requests(sheet_id)},
            )
            _raise_for_status(formatted, "format sheet")
    except httpx.HTTPError as exc:
        raise SheetsExportError(f"Google Sheets request failed: {exc}") from exc
    except (KeyError, ValueError) as exc:
        raise SheetsExportError(f"Unexpected Google Sheets response: {exc}") from exc

    url = SHEET_URL_TEMPLATE.format(spreadsheet_id=spreadsheet_id)
    logger.info(f"Exported {len(companies)} companies to {url}")
    return url
