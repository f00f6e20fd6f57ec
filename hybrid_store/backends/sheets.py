"""Google Sheets remote store.

Talks to the Sheets v4 REST API with ``requests``. Every collection is a
tab in one spreadsheet, row 1 holding the headers.

Authentication is left to the caller: pass a pre-authorised session
(``google.auth.transport.requests.AuthorizedSession`` is a
``requests.Session``) or a bearer token.

Usage:
    store = SheetsRemoteStore("1O-89...", token=access_token)
    snapshot = store.bulk_read(config.collections)
"""

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from .base import Grid, RemoteStore
from ..errors import CollectionNotFound, RemoteStoreError

API_ROOT = "https://sheets.googleapis.com/v4/spreadsheets"


def a1_range(title: str, cells: str) -> str:
    """Build an A1 range for a tab, quoting the title."""
    return "'{}'!{}".format(title.replace("'", "''"), cells)


class SheetsRemoteStore(RemoteStore):
    """Remote store backed by a Google spreadsheet.

    Attributes:
        spreadsheet_id: Spreadsheet identifier from its URL
        session: requests session used for every call
        timeout: Per-request timeout in seconds
        columns: Column span read for each tab
    """

    def __init__(
        self,
        spreadsheet_id: str,
        session: Optional[requests.Session] = None,
        token: Optional[str] = None,
        timeout: float = 30.0,
        columns: str = "A:Z",
        ensure_retry_delay: float = 1.0,
    ):
        super().__init__(ensure_retry_delay=ensure_retry_delay)
        if not spreadsheet_id:
            raise ValueError("spreadsheet_id is required")
        self.spreadsheet_id = spreadsheet_id
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.timeout = timeout
        self.columns = columns
        self._sheet_ids: Dict[str, int] = {}

    @property
    def base_url(self) -> str:
        return f"{API_ROOT}/{self.spreadsheet_id}"

    def _values_url(self, range_: str, suffix: str = "") -> str:
        return f"{self.base_url}/values/{quote(range_, safe='')}{suffix}"

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Issue a request, mapping every failure to RemoteStoreError."""
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RemoteStoreError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}"
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError(f"{method} {url} returned invalid JSON: {e}") from e

    def _batch_update(self, requests_body: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request(
            "POST", f"{self.base_url}:batchUpdate", json={"requests": requests_body}
        )

    def _sheet_id(self, title: str) -> int:
        if title not in self._sheet_ids:
            self.load_metadata()
        try:
            return self._sheet_ids[title]
        except KeyError:
            raise CollectionNotFound(f"Sheet does not exist: {title}") from None

    def load_metadata(self) -> List[str]:
        data = self._request(
            "GET", self.base_url, params={"fields": "sheets.properties(sheetId,title)"}
        )
        self._sheet_ids = {
            sheet["properties"]["title"]: sheet["properties"]["sheetId"]
            for sheet in data.get("sheets", [])
        }
        return list(self._sheet_ids)

    def create_collection(self, name: str, headers: Sequence[str]) -> None:
        data = self._batch_update([{"addSheet": {"properties": {"title": name}}}])
        replies = data.get("replies") or [{}]
        properties = replies[0].get("addSheet", {}).get("properties", {})
        if "sheetId" in properties:
            self._sheet_ids[name] = properties["sheetId"]
        self._request(
            "PUT",
            self._values_url(a1_range(name, "A1")),
            params={"valueInputOption": "RAW"},
            json={"values": [list(headers)]},
        )

    def read_grids(self, names: Sequence[str]) -> Dict[str, Grid]:
        params = [("ranges", a1_range(name, self.columns)) for name in names]
        params.append(("majorDimension", "ROWS"))
        data = self._request("GET", f"{self.base_url}/values:batchGet", params=params)
        value_ranges = data.get("valueRanges", [])
        if len(value_ranges) != len(names):
            raise RemoteStoreError(
                f"batchGet returned {len(value_ranges)} ranges for {len(names)} requested"
            )
        return {
            name: value_range.get("values", [])
            for name, value_range in zip(names, value_ranges)
        }

    def read_grid(self, name: str) -> Grid:
        data = self._request(
            "GET",
            self._values_url(a1_range(name, self.columns)),
            params={"majorDimension": "ROWS"},
        )
        return data.get("values", [])

    def append_row(self, name: str, row: List[str]) -> None:
        self._request(
            "POST",
            self._values_url(a1_range(name, "A1"), ":append"),
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    def write_row(self, name: str, index: int, row: List[str]) -> None:
        # Grid index 0 is sheet row 1
        self._request(
            "PUT",
            self._values_url(a1_range(name, f"A{index + 1}")),
            params={"valueInputOption": "RAW"},
            json={"values": [row]},
        )

    def delete_row(self, name: str, index: int) -> None:
        self._batch_update([{
            "deleteDimension": {
                "range": {
                    "sheetId": self._sheet_id(name),
                    "dimension": "ROWS",
                    "startIndex": index,
                    "endIndex": index + 1,
                }
            }
        }])

    def describe(self) -> str:
        return f"sheets ({self.spreadsheet_id})"
