import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from google.auth import default
from google.auth.exceptions import DefaultCredentialsError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from order_bot.errors import ConfigurationError, SheetAccessError, SheetNotFoundError, SheetsError

# Set up logging
logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",  # Full access to Google Sheets
]


def load_service_account_info(service_account_key: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Parses the service account JSON key pasted into the settings."""
    if isinstance(service_account_key, str):
        try:
            info = json.loads(service_account_key)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"The Google service account key is not valid JSON: {e}") from e
    else:
        info = dict(service_account_key)

    if not info.get("client_email") or not info.get("private_key"):
        raise ConfigurationError("The Google service account key has no client_email or private_key.")

    # Keys pasted through a web form often carry literal "\n" sequences
    info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


def get_credentials(service_account_key: Optional[Union[str, Dict[str, Any]]] = None):
    """Gets service account credentials, falling back to Application Default Credentials."""
    if service_account_key:
        info = load_service_account_info(service_account_key)
        logger.info(f"Using service account: {info['client_email']}")
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)

    try:
        # Use Application Default Credentials (works with Cloud Run, gcloud auth, etc.)
        creds, project = default(scopes=SCOPES)
        logger.info(f"Using Application Default Credentials for project: {project}")
        return creds
    except DefaultCredentialsError as e:
        logger.error(f"Error getting Application Default Credentials: {e}")
        raise ConfigurationError(
            "Google credentials are required. Paste the service account JSON key into the settings."
        ) from e


def quote_sheet_name(sheet_name: str) -> str:
    """Quotes a sheet title for use in A1 notation ("Acme Co" -> "'Acme Co'")."""
    return "'" + sheet_name.replace("'", "''") + "'"


def translate_http_error(error: HttpError, spreadsheet_id: str, client_email: Optional[str] = None) -> SheetsError:
    """Maps a Sheets API HttpError onto the errors shown to Slack users."""
    status = getattr(error, "status_code", None) or getattr(error.resp, "status", None)
    try:
        status = int(status)
    except (TypeError, ValueError):
        status = None

    if status == 403:
        who = client_email or "the service account email"
        return SheetAccessError(
            f"No permission to access the spreadsheet. Share it with {who} using the [Share] button."
        )
    if status == 404:
        return SheetNotFoundError(f"Spreadsheet {spreadsheet_id} was not found. Check the spreadsheet id.")
    return SheetsError(f"Google Sheets error: {error}")


class GoogleSheetsStore:
    """Tabular store backed by one Google Spreadsheet per store id."""

    def __init__(self, service_account_key: Optional[Union[str, Dict[str, Any]]] = None, service=None):
        self._service_account_key = service_account_key
        self._service = service
        self._client_email = None
        # the discovery client shares one httplib2.Http, which is not thread-safe
        self._api_lock = asyncio.Lock()
        if service_account_key and service is None:
            self._client_email = load_service_account_info(service_account_key).get("client_email")

    @property
    def service(self):
        if self._service is None:
            creds = get_credentials(self._service_account_key)
            self._service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        return self._service

    async def _run(self, spreadsheet_id: str, fn: Callable[[], Any]) -> Any:
        """Runs a blocking API call in a worker thread, one call at a time, and translates HTTP errors."""
        try:
            async with self._api_lock:
                return await asyncio.to_thread(fn)
        except HttpError as e:
            logger.error(f"Sheets API error for {spreadsheet_id}: {e}")
            raise translate_http_error(e, spreadsheet_id, self._client_email) from e

    def _sheet_properties(self, spreadsheet_id: str) -> List[Dict[str, Any]]:
        result = (
            self.service.spreadsheets()
            .get(spreadsheetId=spreadsheet_id, fields="sheets.properties(sheetId,title)")
            .execute()
        )
        return [sheet["properties"] for sheet in result.get("sheets", [])]

    async def list_tables(self, spreadsheet_id: str) -> List[str]:
        properties = await self._run(spreadsheet_id, lambda: self._sheet_properties(spreadsheet_id))
        return [p["title"] for p in properties]

    async def create_table(self, spreadsheet_id: str, name: str, header_row: List[Any]) -> None:
        def _create():
            self.service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": name}}}]},
            ).execute()
            self.service.spreadsheets().values().update(
                spreadsheetId=spreadsheet_id,
                range=f"{quote_sheet_name(name)}!A1",
                valueInputOption="USER_ENTERED",
                body={"values": [header_row]},
            ).execute()

        await self._run(spreadsheet_id, _create)
        logger.info(f"Created sheet '{name}' with header row")

    async def append_row(self, spreadsheet_id: str, table: str, row: List[Any]) -> None:
        await self._run(
            spreadsheet_id,
            lambda: self.service.spreadsheets()
            .values()
            .append(
                spreadsheetId=spreadsheet_id,
                range=f"{quote_sheet_name(table)}!A:A",
                valueInputOption="USER_ENTERED",
                body={"values": [row]},
            )
            .execute(),
        )

    async def read_all_rows(self, spreadsheet_id: str, table: str) -> List[List[Any]]:
        result = await self._run(
            spreadsheet_id,
            lambda: self.service.spreadsheets()
            .values()
            .get(
                spreadsheetId=spreadsheet_id,
                range=f"{quote_sheet_name(table)}!A:Z",
                valueRenderOption="UNFORMATTED_VALUE",
            )
            .execute(),
        )
        return result.get("values", [])

    async def delete_row(self, spreadsheet_id: str, table: str, row_index: int) -> None:
        def _delete():
            sheet_id = None
            for properties in self._sheet_properties(spreadsheet_id):
                if properties["title"] == table:
                    sheet_id = properties["sheetId"]
                    break
            if sheet_id is None:
                raise SheetsError(f"Sheet '{table}' no longer exists in spreadsheet {spreadsheet_id}")

            self.service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body={
                    "requests": [
                        {
                            "deleteDimension": {
                                "range": {
                                    "sheetId": sheet_id,
                                    "dimension": "ROWS",
                                    "startIndex": row_index,
                                    "endIndex": row_index + 1,
                                }
                            }
                        }
                    ]
                },
            ).execute()

        await self._run(spreadsheet_id, _delete)
