from __future__ import annotations

from typing import Any, Callable, Dict, List, Sequence

import logging
import ssl
import time

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest
from httplib2 import HttpLib2Error

from .config import SheetsConfig
from .models import StatusGrid

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_MAX_RETRY_ATTEMPTS = 4
_INITIAL_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 8.0
_RETRYABLE_EXCEPTIONS = (ssl.SSLEOFError, HttpLib2Error)


def column_letter(index: int) -> str:
    """Convert a 0-based column index to its A1 letters (0 -> A, 26 -> AA)."""

    if index < 0:
        raise ValueError(f"Column index must be 0 or greater; received {index}")
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def a1_range(sheet_name: str, cell: str = "") -> str:
    quoted = "'" + sheet_name.replace("'", "''") + "'"
    return f"{quoted}!{cell}" if cell else quoted


class GoogleSheetsClient:
    """Thin wrapper around the Google Sheets API for this project."""

    def __init__(self, conf: SheetsConfig, spreadsheet_id: str | None = None) -> None:
        self._conf = conf
        self._spreadsheet_id = spreadsheet_id or conf.spreadsheet_id
        self._service: Resource | None = None
        self._sheet_ids: Dict[str, int] = {}

    def _service_client(self) -> Resource:
        if self._service is None:
            creds = Credentials.from_service_account_file(
                str(self._conf.credentials_file), scopes=SCOPES
            )
            self._service = build("sheets", "v4", credentials=creds)
        return self._service

    # Reading -----------------------------------------------------------------
    def fetch_values(self, sheet_name: str) -> List[List[Any]]:
        """Load all displayed values from a tab of the spreadsheet."""

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=self._spreadsheet_id,
                    range=a1_range(sheet_name),
                    valueRenderOption="FORMATTED_VALUE",
                )
            )

        result = self._execute_with_retry(_build_request, operation=f"fetch '{sheet_name}'")
        return result.get("values", [])

    def spreadsheet_title(self) -> str:
        """Return the file name of the spreadsheet."""

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return service.spreadsheets().get(
                spreadsheetId=self._spreadsheet_id,
                fields="properties.title",
            )

        result = self._execute_with_retry(_build_request, operation="fetch spreadsheet title")
        return result.get("properties", {}).get("title", "")

    # Writing -----------------------------------------------------------------
    def update_cells(self, sheet_name: str, updates: Sequence[tuple[int, int, Any]]) -> None:
        """Batch write single cells given as (1-based row, 0-based column, value)."""

        if not updates:
            return

        data = []
        for row_number, column, value in updates:
            if row_number < 1:
                msg = f"Row numbers must be 1-based; received {row_number}"
                raise ValueError(msg)
            data.append(
                {
                    "range": a1_range(sheet_name, f"{column_letter(column)}{row_number}"),
                    "majorDimension": "ROWS",
                    "values": [[value]],
                }
            )

        def _batch_update_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .batchUpdate(
                    spreadsheetId=self._spreadsheet_id,
                    body={
                        "valueInputOption": "RAW",
                        "data": data,
                    },
                )
            )

        self._execute_with_retry(_batch_update_request, operation="update cells")

    def paint_backgrounds(self, sheet_name: str, grid: StatusGrid) -> None:
        """Apply the background colors of ``grid``; rows absent from it stay untouched."""

        if not grid.rows:
            return

        sheet_id = self._sheet_id(sheet_name)
        requests = []
        for row_number, colors in sorted(grid.rows.items()):
            requests.append(
                {
                    "updateCells": {
                        "range": {
                            "sheetId": sheet_id,
                            "startRowIndex": row_number - 1,
                            "endRowIndex": row_number,
                            "startColumnIndex": grid.first_column,
                            "endColumnIndex": grid.first_column + len(colors),
                        },
                        "rows": [
                            {
                                "values": [
                                    {"userEnteredFormat": {"backgroundColor": color.as_rgb()}}
                                    for color in colors
                                ]
                            }
                        ],
                        "fields": "userEnteredFormat.backgroundColor",
                    }
                }
            )

        def _batch_update_request() -> HttpRequest:
            service = self._service_client()
            return service.spreadsheets().batchUpdate(
                spreadsheetId=self._spreadsheet_id,
                body={"requests": requests},
            )

        self._execute_with_retry(_batch_update_request, operation="paint backgrounds")

    # Internal ----------------------------------------------------------------
    def _sheet_id(self, sheet_name: str) -> int:
        if sheet_name not in self._sheet_ids:

            def _build_request() -> HttpRequest:
                service = self._service_client()
                return service.spreadsheets().get(
                    spreadsheetId=self._spreadsheet_id,
                    fields="sheets.properties(sheetId,title)",
                )

            result = self._execute_with_retry(_build_request, operation="fetch sheet ids")
            for sheet in result.get("sheets", []):
                properties = sheet.get("properties", {})
                self._sheet_ids[properties.get("title", "")] = properties.get("sheetId", 0)

        try:
            return self._sheet_ids[sheet_name]
        except KeyError:
            msg = f"Sheet '{sheet_name}' not found in spreadsheet {self._spreadsheet_id}"
            raise ValueError(msg) from None

    def _reset_service(self) -> None:
        self._service = None

    def _execute_with_retry(
        self,
        request_builder: Callable[[], HttpRequest],
        *,
        operation: str,
    ) -> dict:
        """Execute a Sheets API request with retries for transient failures."""

        backoff = _INITIAL_BACKOFF_SECONDS
        last_exc: Exception | None = None

        for attempt in range(1, _MAX_RETRY_ATTEMPTS + 1):
            try:
                return request_builder().execute()
            except _RETRYABLE_EXCEPTIONS as exc:
                last_exc = exc
            except HttpError as exc:
                status = getattr(exc.resp, "status", None)
                if status not in _RETRYABLE_STATUS_CODES:
                    raise
                last_exc = exc

            if attempt == _MAX_RETRY_ATTEMPTS:
                raise last_exc

            wait_time = min(backoff, _MAX_BACKOFF_SECONDS)
            LOGGER.warning(
                "Sheets API %s failed on attempt %s/%s (%s); retrying in %.1f seconds",
                operation,
                attempt,
                _MAX_RETRY_ATTEMPTS,
                last_exc,
                wait_time,
            )
            self._reset_service()
            time.sleep(wait_time)
            backoff *= 2

        # If the loop exits without returning, re-raise the last exception.
        if last_exc is not None:  # pragma: no cover - belt and suspenders.
            raise last_exc
        raise RuntimeError("Sheets API request failed without capturing an exception")
