"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is kept as a storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the workflows handle this with careful ordering)
- Limited query capabilities (we filter in Python)

One worksheet per collection, one record per row, first row is the
header. Rows are matched to columns by header name, so reordering
columns in the sheet does not break anything.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import ValueInputOption, rowcol_to_a1
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finsaas.config import GoogleSheetsSettings, get_settings
from finsaas.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finsaas.services.session import SessionInvalidError, SessionProvider
from finsaas.services.storage.codec import (
    columns_for,
    matches,
    record_to_row,
    row_to_record,
    sort_records,
    to_cell,
)
from finsaas.services.storage.interface import (
    AuditStorageInterface,
    Collection,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Retry transient failures only; a missing row will still be missing next time
write_retry = retry(
    retry=(
        retry_if_exception_type(StorageError)
        & retry_if_not_exception_type(NotFoundError)
    ),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def sheet_title(collection: Collection) -> str:
    return collection.value.capitalize()


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        if title not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=1000,
                    cols=len(columns),
                )
                sheet.append_row(columns)
            self._worksheets[title] = sheet
        return self._worksheets[title]

    def get_collection_sheet(self, collection: Collection) -> gspread.Worksheet:
        return self.get_worksheet(sheet_title(collection), columns_for(collection))

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of the Persistence Gateway.

    Every row carries its owner's user_id; reads only return the current
    user's rows.
    """

    def __init__(
        self,
        session: SessionProvider,
        client: Optional[GoogleSheetsClient] = None,
    ):
        super().__init__(session)
        self._client = client or GoogleSheetsClient()

    def _read_sheet(
        self,
        collection: Collection,
    ) -> tuple[gspread.Worksheet, list[str], list[tuple[int, dict[str, str]]]]:
        """
        Read a whole worksheet.

        Returns (sheet, header, [(sheet_row_number, {column: cell})]).
        Row numbers are 1-based sheet rows (row 1 is the header).
        """
        sheet = self._client.get_collection_sheet(collection)
        all_values = sheet.get_all_values()
        if not all_values:
            return sheet, columns_for(collection), []

        header = all_values[0]
        rows = []
        for idx, values in enumerate(all_values[1:], start=2):
            row = dict(zip(header, values))
            if not row.get("id"):  # Skip empty rows
                continue
            rows.append((idx, row))
        return sheet, header, rows

    def _decode(self, collection: Collection, row: dict[str, str]) -> BaseModel:
        try:
            return row_to_record(collection, row)
        except Exception as e:
            raise StorageError(
                f"Malformed {collection.value} row {row.get('id', '?')}: {e}"
            )

    async def _find_row(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> tuple[gspread.Worksheet, list[str], Optional[int], Optional[dict[str, str]]]:
        owner = str(await self._session.current_user_id())
        sheet, header, rows = self._read_sheet(collection)
        for idx, row in rows:
            if row.get("id") == str(record_id) and row.get("user_id") == owner:
                return sheet, header, idx, row
        return sheet, header, None, None

    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[BaseModel]:
        """Read and filter a collection."""
        try:
            owner = str(await self._session.current_user_id())
            _, _, rows = self._read_sheet(collection)
            records = [
                self._decode(collection, row)
                for _, row in rows
                if row.get("user_id") == owner
            ]
            return sort_records(
                collection, [r for r in records if matches(r, filters)]
            )
        except (StorageError, SessionInvalidError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection.value}: {e}")

    async def fetch_one(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[BaseModel]:
        """Retrieve a record by its ID."""
        try:
            _, _, _, row = await self._find_row(collection, record_id)
            return self._decode(collection, row) if row else None
        except (StorageError, SessionInvalidError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {collection.value} record: {e}")

    @write_retry
    async def upsert(
        self,
        collection: Collection,
        record: BaseModel,
    ) -> BaseModel:
        """Append a new row, or overwrite the row with the same ID."""
        try:
            stored = await self._stamp_owner(record)
            sheet, header, idx, _ = await self._find_row(collection, stored.id)
            data = record_to_row(stored)
            values = [to_cell(data.get(column)) for column in header]

            if idx is None:
                sheet.append_row(values, value_input_option="RAW")
            else:
                # Whole row in one RAW write, same as appends
                sheet.update(
                    values=[values],
                    range_name=rowcol_to_a1(idx, 1),
                    value_input_option=ValueInputOption.raw,
                )
            return stored
        except (StorageError, SessionInvalidError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {collection.value} record: {e}")

    async def delete(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        """Delete a row by record ID."""
        try:
            sheet, _, idx, _ = await self._find_row(collection, record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except (StorageError, SessionInvalidError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection.value} record: {e}")

    @write_retry
    async def update_fields(
        self,
        collection: Collection,
        record_id: UUID,
        fields: dict[str, Any],
    ) -> None:
        """Overwrite selected cells of one row."""
        try:
            sheet, header, idx, _ = await self._find_row(collection, record_id)
            if idx is None:
                raise NotFoundError(f"{collection.value} record not found: {record_id}")
            cells = [
                gspread.Cell(idx, header.index(field) + 1, to_cell(value))
                for field, value in fields.items()
            ]
            sheet.update_cells(cells, value_input_option=ValueInputOption.raw)
        except (StorageError, SessionInvalidError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.value} record: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def _matching_events(self, predicate) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0] and predicate(row):
                events.append(self._row_to_event(row))
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            return self._matching_events(
                lambda row: len(row) > 6 and row[6] == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            return self._matching_events(
                lambda row: (
                    len(row) > 5
                    and row[4] == entity_type
                    and row[5] == str(entity_id)
                )
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
