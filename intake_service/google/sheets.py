"""Minimal async client for the Sheets v4 and Drive v3 REST APIs.

Only the calls provisioning needs: create, inspect tabs, batch update,
value writes, sharing and listing. Authenticates with a bearer access token
from either a user OAuth grant or a service account.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from intake_service.config import GOOGLE_HTTP_TIMEOUT_SECONDS
from intake_service.errors import NotFoundError, ProviderError

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_API = "https://www.googleapis.com/drive/v3"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


def spreadsheet_url(spreadsheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}"


@dataclass(frozen=True)
class SheetTab:
    sheet_id: int
    title: str
    index: int


class SheetsClient:
    def __init__(
        self,
        access_token: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = GOOGLE_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._http = http_client
        self._timeout = timeout

    # -- Sheets ---------------------------------------------------------------

    async def create_spreadsheet(self, title: str) -> tuple[str, str]:
        """Create an empty spreadsheet. Returns (spreadsheet_id, title)."""
        data = await self._request("POST", SHEETS_API, json={"properties": {"title": title}})
        spreadsheet_id = data.get("spreadsheetId")
        if not spreadsheet_id:
            raise ProviderError("Sheets API returned no spreadsheetId")
        created_title = (data.get("properties") or {}).get("title") or title
        return str(spreadsheet_id), str(created_title)

    async def get_tabs(self, spreadsheet_id: str) -> list[SheetTab]:
        data = await self._request(
            "GET",
            f"{SHEETS_API}/{spreadsheet_id}",
            params={"fields": "sheets.properties(sheetId,title,index)"},
        )
        tabs = []
        for sheet in data.get("sheets") or []:
            props = sheet.get("properties") or {}
            tabs.append(
                SheetTab(
                    sheet_id=int(props.get("sheetId", 0)),
                    title=str(props.get("title", "")),
                    index=int(props.get("index", 0)),
                )
            )
        tabs.sort(key=lambda t: t.index)
        return tabs

    async def batch_update(self, spreadsheet_id: str, requests: list[dict[str, Any]]) -> None:
        if not requests:
            return
        await self._request(
            "POST",
            f"{SHEETS_API}/{spreadsheet_id}:batchUpdate",
            json={"requests": requests},
        )

    async def update_values(
        self,
        spreadsheet_id: str,
        range_a1: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        await self._request(
            "PUT",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_a1, safe='')}",
            params={"valueInputOption": value_input_option},
            json={"range": range_a1, "majorDimension": "ROWS", "values": values},
        )

    # -- Drive ----------------------------------------------------------------

    async def share_with_user(self, file_id: str, email: str, *, role: str = "writer") -> None:
        await self._request(
            "POST",
            f"{DRIVE_API}/files/{file_id}/permissions",
            params={"sendNotificationEmail": "false", "supportsAllDrives": "true"},
            json={"type": "user", "role": role, "emailAddress": email},
        )

    async def list_spreadsheets(self, *, page_size: int = 50) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"{DRIVE_API}/files",
            params={
                "q": f"mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
                "fields": "files(id,name,modifiedTime)",
                "orderBy": "modifiedTime desc",
                "pageSize": str(page_size),
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            },
        )
        return list(data.get("files") or [])

    async def list_shared_drives(self, *, page_size: int = 50) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"{DRIVE_API}/drives",
            params={"pageSize": str(page_size), "fields": "drives(id,name)"},
        )
        return list(data.get("drives") or [])

    # -- Transport ------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._client() as client:
            try:
                resp = await client.request(
                    method, url, headers=self._headers, params=params, json=json
                )
            except httpx.HTTPError as e:
                raise ProviderError(f"Google API request failed: {e}", cause=e) from e

        if resp.status_code == 404:
            raise NotFoundError("Spreadsheet or file not found")
        if resp.status_code >= 400:
            logger.warning("Google API %s %s returned HTTP %d", method, url, resp.status_code)
            raise ProviderError(f"Google API returned HTTP {resp.status_code}")
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"Google API {method} returned a non-JSON body", cause=e) from e
        if not isinstance(data, dict):
            raise ProviderError(f"Google API {method} returned an unexpected JSON payload")
        return data

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client
