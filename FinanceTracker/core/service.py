"""Google Sheets remote backend.

Every collection is a worksheet of the configured spreadsheet. The first row holds the
column names with ``id`` first, each following row is one record. Nested values, like
the dashboard cards, are stored as JSON text.

The Google API client is blocking, so each call runs in a worker thread and is retried
on transient failures. HTTP 408, 429 and 5xx responses, timeouts and socket errors are
transient. Any other HTTP error means the request was refused and is not retried.
"""

import asyncio
import datetime
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Set

import httplib2
import pandas as pd
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .auth import AuthExpiredError, AuthManager
from .remote import RemoteBackend
from ..status import status

MAX_RETRIES: int = 3
WAIT_SECONDS: float = 1.0

TRANSIENT_HTTP_STATUSES = {408, 429}

COLUMNS: Dict[str, List[str]] = {
    'transactions': [
        'id', 'amount', 'type', 'category', 'subcategory', 'description', 'date', 'time', 'wallet_id',
        'created_at',
    ],
    'wallets': ['id', 'name', 'color', 'icon', 'balance', 'created_at'],
    'custom_categories': ['id', 'name', 'type', 'created_at'],
    'dashboard_settings': ['id', 'cards', 'updated_at', 'created_at'],
}

JSON_COLUMNS = {'cards'}

# Cached Sheets API client to avoid repeated discovery/auth costs
_cached_service: Any = None


def clear_service() -> None:
    """
    Clears the cached Sheets API client.
    """
    global _cached_service

    try:
        if _cached_service:
            _cached_service.close()
    except Exception as ex:
        logging.debug(f'Failed closing cached Sheets service client: {ex}')

    _cached_service = None


def get_service(auth_manager: AuthManager) -> Any:
    """
    Builds (or returns cached) Google Sheets service client.

    Raises:
        status.BackendUnavailableException: If no valid credentials exist or the client cannot be built.
    """
    global _cached_service
    try:
        creds: Any = auth_manager.get_valid_credentials()
    except (
            AuthExpiredError,
            status.CredsInvalidException,
            status.AuthenticationExceptionException,
    ) as ex:
        raise status.BackendUnavailableException(f'Not signed in to Google: {ex}') from ex

    if _cached_service is not None:
        return _cached_service
    try:
        service: Any = build('sheets', 'v4', credentials=creds, cache_discovery=False)
    except Exception as ex:
        raise status.BackendUnavailableException(f'Could not build the Sheets client: {ex}') from ex
    logging.debug('Google Sheets service client created successfully.')
    _cached_service = service
    return service


def idx_to_col(idx: int) -> str:
    """Convert zero-based column index to spreadsheet letter(s).

    Args:
        idx: The zero-based column index.

    Returns:
        The spreadsheet column letter(s) (e.g., A, B, AA).
    """
    letters = ''
    while idx >= 0:
        letters = chr((idx % 26) + ord('A')) + letters
        idx = idx // 26 - 1
    return letters


def is_transient_status(code: Optional[int]) -> bool:
    """Return True if an HTTP status code is worth retrying."""
    if code is None:
        return True
    return code in TRANSIENT_HTTP_STATUSES or code >= 500


def encode_cell(column: str, value: Any) -> Any:
    if value is None:
        return ''
    if column in JSON_COLUMNS and not isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return value


def decode_cell(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logging.warning(f'Column "{column}" does not hold valid JSON: {value!r}')
            return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return value if isinstance(value, str) else str(value)


def rows_to_frame(values: List[List[Any]]) -> pd.DataFrame:
    """Build a DataFrame from a worksheet's values, the first row being the header."""
    if not values:
        return pd.DataFrame()
    header = [str(cell) for cell in values[0]]
    width = len(header)
    data_rows = [list(row[:width]) + [''] * (width - len(row)) for row in values[1:]]
    df = pd.DataFrame(data_rows, columns=header, dtype=object)
    return df.fillna('')


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert worksheet rows to record dicts. Empty cells are left out."""
    records = []
    for row in df.to_dict(orient='records'):
        if not row.get('id'):
            continue
        record = {}
        for column, value in row.items():
            if value == '' or value is None:
                continue
            record[column] = decode_cell(column, value)
        records.append(record)
    return records


class SheetsBackend(RemoteBackend):
    """Remote backend storing each collection in a worksheet.

    Args:
        spreadsheet_id (str): Id of the target spreadsheet.
        auth_manager (AuthManager): Supplies credentials, used when ``service`` is not given.
        max_attempts (int): Attempts per call before a transient failure is reported.
        wait_seconds (float): Pause between attempts.
        service: A prebuilt Sheets API resource.
    """

    def __init__(
            self,
            spreadsheet_id: str,
            auth_manager: Optional[AuthManager] = None,
            max_attempts: int = MAX_RETRIES,
            wait_seconds: float = WAIT_SECONDS,
            service: Any = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.auth_manager = auth_manager
        self.max_attempts = max(1, max_attempts)
        self.wait_seconds = wait_seconds
        self._service = service
        self._sheet_ids: Dict[str, int] = {}
        self._last_stamp: Optional[datetime.datetime] = None
        # Ids of inserts with at least one append attempt
        self._appending: Set[str] = set()

    def service(self) -> Any:
        if not self.spreadsheet_id:
            raise status.SpreadsheetIdNotConfiguredException
        if self._service is not None:
            return self._service
        if self.auth_manager is None:
            raise status.BackendUnavailableException('No Google credentials are available.')
        return get_service(self.auth_manager)

    def _with_retries(self, func: Callable[..., Any], *args: Any) -> Any:
        """Call ``func`` until it succeeds, a permanent error occurs or attempts run out.

        Raises:
            status.PermanentRemoteException: The backend refused the request.
            status.TransientRemoteException: Every attempt failed with a transient error.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args)
            except HttpError as ex:
                code = ex.resp.status if ex.resp is not None else None
                if not is_transient_status(code):
                    raise status.PermanentRemoteException(f'Sheets API refused the request (HTTP {code}): {ex}') from ex
                last_error = ex
            except (OSError, httplib2.HttpLib2Error) as ex:
                # Socket timeouts and SSL errors are OSErrors
                last_error = ex

            logging.debug(f'Sheets call failed (attempt {attempt}/{self.max_attempts}): {last_error}')
            if attempt < self.max_attempts:
                time.sleep(self.wait_seconds)

        raise status.TransientRemoteException(
            f'Sheets call failed after {self.max_attempts} attempts: {last_error}'
        ) from last_error

    def _stamp(self) -> str:
        """Return a creation time later than any previously issued by this backend."""
        stamp = datetime.datetime.now(datetime.timezone.utc)
        if self._last_stamp is not None and stamp <= self._last_stamp:
            stamp = self._last_stamp + datetime.timedelta(microseconds=1)
        self._last_stamp = stamp
        return stamp.isoformat()

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._with_retries, func, *args)

    def _sheet_id(self, service: Any, collection: str) -> int:
        """Return the worksheet id of a collection, creating the worksheet when missing."""
        if collection in self._sheet_ids:
            return self._sheet_ids[collection]

        result: Dict[str, Any] = service.spreadsheets().get(
            spreadsheetId=self.spreadsheet_id,
            fields='sheets(properties(sheetId,title))'
        ).execute()
        for sheet in result.get('sheets', []):
            props = sheet.get('properties', {})
            self._sheet_ids[props.get('title', '')] = props.get('sheetId')

        if collection in self._sheet_ids:
            return self._sheet_ids[collection]

        logging.info(f'Creating worksheet "{collection}" in spreadsheet "{self.spreadsheet_id}".')
        response: Dict[str, Any] = service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={'requests': [{'addSheet': {'properties': {'title': collection}}}]}
        ).execute()
        sheet_id = response['replies'][0]['addSheet']['properties']['sheetId']
        self._sheet_ids[collection] = sheet_id

        service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f'{collection}!A1',
            valueInputOption='RAW',
            body={'values': [self._columns(collection)]}
        ).execute()
        return sheet_id

    @staticmethod
    def _columns(collection: str) -> List[str]:
        if collection not in COLUMNS:
            raise status.PermanentRemoteException(f'Unknown collection "{collection}".')
        return COLUMNS[collection]

    def _read_frame(self, service: Any, collection: str) -> pd.DataFrame:
        self._sheet_id(service, collection)
        last_col = idx_to_col(len(self._columns(collection)) - 1)
        result: Dict[str, Any] = service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f'{collection}!A1:{last_col}',
            valueRenderOption='UNFORMATTED_VALUE',
        ).execute()
        return rows_to_frame(result.get('values', []))

    def _row_indexes(self, df: pd.DataFrame, field: str, value: Any) -> List[int]:
        """Return zero-based sheet row indexes (header is row 0) of rows matching ``field``."""
        if df.empty or field not in df.columns:
            return []
        matches = df.index[df[field].astype(str) == str(value)]
        return [int(i) + 1 for i in matches]

    def _list_sync(self, collection: str, order_by: str, descending: bool) -> List[Dict[str, Any]]:
        service = self.service()
        df = self._read_frame(service, collection)
        if df.empty:
            return []
        if order_by in df.columns:
            df = df.sort_values(by=order_by, ascending=not descending, kind='stable', key=lambda s: s.astype(str))
        records = frame_to_records(df)
        logging.debug(f'Fetched {len(records)} rows from worksheet "{collection}".')
        return records

    def _insert_sync(self, collection: str, stored: Dict[str, Any]) -> Dict[str, Any]:
        """Append ``stored`` unless an earlier attempt already did.

        An append whose response was lost may still have reached the sheet, so a retry
        first looks the id up.
        """
        service = self.service()
        self._sheet_id(service, collection)
        columns = self._columns(collection)

        if stored['id'] in self._appending:
            df = self._read_frame(service, collection)
            if self._row_indexes(df, 'id', stored['id']):
                logging.debug(f'Row "{stored["id"]}" was appended by an earlier attempt.')
                return stored
        self._appending.add(stored['id'])

        values = [encode_cell(column, stored.get(column)) for column in columns]

        service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=f'{collection}!A1',
            valueInputOption='RAW',
            insertDataOption='INSERT_ROWS',
            body={'values': [values]}
        ).execute()
        logging.debug(f'Appended row "{stored["id"]}" to worksheet "{collection}".')
        return stored

    def _update_sync(self, collection: str, row_id: str, patch: Dict[str, Any]) -> None:
        service = self.service()
        df = self._read_frame(service, collection)
        indexes = self._row_indexes(df, 'id', row_id)
        if not indexes:
            logging.debug(f'Update of missing row "{row_id}" in worksheet "{collection}" ignored.')
            return

        columns = self._columns(collection)
        index = indexes[0]
        current = frame_to_records(df.iloc[[index - 1]])[0]
        current.update({k: v for k, v in patch.items() if k != 'id'})
        values = [encode_cell(column, current.get(column)) for column in columns]
        row_number = index + 1
        last_col = idx_to_col(len(columns) - 1)

        service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f'{collection}!A{row_number}:{last_col}{row_number}',
            valueInputOption='RAW',
            body={'values': [values]}
        ).execute()
        logging.debug(f'Updated row "{row_id}" in worksheet "{collection}".')

    def _delete_rows(self, service: Any, collection: str, indexes: List[int]) -> None:
        if not indexes:
            return
        sheet_id = self._sheet_id(service, collection)
        # Delete from the bottom so earlier indexes stay valid
        requests = [
            {
                'deleteDimension': {
                    'range': {
                        'sheetId': sheet_id,
                        'dimension': 'ROWS',
                        'startIndex': index,
                        'endIndex': index + 1,
                    }
                }
            }
            for index in sorted(indexes, reverse=True)
        ]
        service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={'requests': requests}
        ).execute()
        logging.debug(f'Deleted {len(indexes)} row(s) from worksheet "{collection}".')

    def _delete_sync(self, collection: str, field: str, value: Any) -> None:
        service = self.service()
        df = self._read_frame(service, collection)
        self._delete_rows(service, collection, self._row_indexes(df, field, value))

    def _clear_sync(self, collection: str) -> None:
        service = self.service()
        self._sheet_id(service, collection)
        last_col = idx_to_col(len(self._columns(collection)) - 1)
        service.spreadsheets().values().clear(
            spreadsheetId=self.spreadsheet_id,
            range=f'{collection}!A2:{last_col}',
            body={}
        ).execute()
        logging.debug(f'Cleared worksheet "{collection}".')

    async def list(self, collection, order_by='created_at', descending=False):
        return await self._run(self._list_sync, collection, order_by, descending)

    async def insert(self, collection, row):
        stored = {k: v for k, v in row.items() if k != 'id'}
        stored['id'] = str(uuid.uuid4())
        stored['created_at'] = self._stamp()
        try:
            return await self._run(self._insert_sync, collection, stored)
        finally:
            self._appending.discard(stored['id'])

    async def update(self, collection, row_id, patch):
        await self._run(self._update_sync, collection, row_id, patch)

    async def delete(self, collection, row_id):
        await self._run(self._delete_sync, collection, 'id', row_id)

    async def delete_where(self, collection, field, value):
        await self._run(self._delete_sync, collection, field, value)

    async def clear(self, collection):
        await self._run(self._clear_sync, collection)
