""" Google Sheets store client shared by the sampler, the recompute pass and the API."""
import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from floor_tracker.core.config import Settings, settings
from floor_tracker.core.exceptions import StoreError

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def load_credentials(config: Settings = settings) -> Optional[service_account.Credentials]:
    """Builds service-account credentials from a key file or from env-provided key material."""
    if config.GOOGLE_CREDENTIALS_FILE:
        logger.info(f"Loading Google credentials from {config.GOOGLE_CREDENTIALS_FILE}.")
        return service_account.Credentials.from_service_account_file(
            config.GOOGLE_CREDENTIALS_FILE, scopes=SHEETS_SCOPES
        )
    if config.GOOGLE_CLIENT_EMAIL and config.GOOGLE_PRIVATE_KEY:
        logger.info(f"Loading Google credentials for {config.GOOGLE_CLIENT_EMAIL} from environment.")
        info = {
            "client_email": config.GOOGLE_CLIENT_EMAIL,
            # Keys pasted into env vars usually carry literal "\n" sequences
            "private_key": config.GOOGLE_PRIVATE_KEY.replace("\\n", "\n"),
            "token_uri": config.GOOGLE_TOKEN_URI,
        }
        return service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
    logger.warning("No Google credentials configured. Sheets requests will be sent unauthenticated.")
    return None


class SheetsStore:
    """
    Append/read/update access to a single range of a spreadsheet.

    Rows are lists of cell values. The store keeps no state of its own apart
    from the HTTP client and the cached access token.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        sheet_range: str,
        credentials: Optional[service_account.Credentials] = None,
        base_url: str = "https://sheets.googleapis.com/v4",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.sheet_range = sheet_range
        self.credentials = credentials
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @property
    def _values_path(self) -> str:
        return f"/spreadsheets/{self.spreadsheet_id}/values/{quote(self.sheet_range, safe='')}"

    async def _auth_headers(self) -> dict:
        if self.credentials is None:
            return {}
        if not self.credentials.valid:
            try:
                # google-auth refreshes synchronously, keep it off the event loop
                await asyncio.to_thread(self.credentials.refresh, GoogleAuthRequest())
            except Exception as e:
                raise StoreError(f"Failed to refresh Google credentials: {e}") from e
        return {"Authorization": f"Bearer {self.credentials.token}"}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = await self._auth_headers()
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Sheets API returned {e.response.status_code} for {method} {path}: {e.response.text}")
            raise StoreError(f"Sheets API error {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Network error talking to Sheets API ({method} {path}): {e}")
            raise StoreError(f"Sheets API unreachable: {e}") from e
        except ValueError as e:
            raise StoreError(f"Malformed Sheets API response: {e}") from e

    async def read(self) -> List[List[Any]]:
        """Returns every row of the range, in sheet order."""
        data = await self._request(
            "GET", self._values_path, params={"valueRenderOption": "UNFORMATTED_VALUE"}
        )
        values = data.get("values", [])
        if not isinstance(values, list):
            raise StoreError(f"Unexpected 'values' payload from Sheets API: {values!r}")
        logger.debug(f"Read {len(values)} rows from {self.sheet_range}.")
        return values

    async def append(self, rows: List[List[Any]]) -> None:
        """Appends rows after the last non-empty row of the range."""
        await self._request(
            "POST",
            f"{self._values_path}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"majorDimension": "ROWS", "values": rows},
        )
        logger.debug(f"Appended {len(rows)} rows to {self.sheet_range}.")

    async def update(self, rows: List[List[Any]]) -> None:
        """Overwrites the range starting at its first row."""
        await self._request(
            "PUT",
            self._values_path,
            params={"valueInputOption": "RAW"},
            json={"majorDimension": "ROWS", "values": rows},
        )
        logger.debug(f"Rewrote {len(rows)} rows in {self.sheet_range}.")

    async def aclose(self) -> None:
        await self._client.aclose()


def build_store(config: Settings = settings) -> SheetsStore:
    """Creates the store client used for the lifetime of the process."""
    if not config.SPREADSHEET_ID:
        logger.warning("SPREADSHEET_ID is not set. Store requests will fail until it is configured.")
    return SheetsStore(
        spreadsheet_id=config.SPREADSHEET_ID,
        sheet_range=config.SHEET_RANGE,
        credentials=load_credentials(config),
        base_url=config.SHEETS_API_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
