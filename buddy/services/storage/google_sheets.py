"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted storage backend because:
1. The user can view and fix their data directly in Sheets
2. No database setup required
3. Data is shared between devices

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (each record is one row, written in one call)
- Limited query capabilities (we filter in Python)

Each collection gets its own worksheet, created with a header row on first
use. Column names are the camelCase field names of the collection's model.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from buddy.config import get_settings
from buddy.models.audit import AuditEvent, AuditEventType, AuditSeverity
from buddy.models.ledger import COLLECTION_MODELS, Collection
from buddy.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

import structlog

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


def collection_columns(collection: Collection) -> list[str]:
    """Header row of a collection's worksheet."""
    model = COLLECTION_MODELS[collection]
    return [field.alias or name for name, field in model.model_fields.items()]


def _to_cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: Collection) -> gspread.Worksheet:
        return self.get_worksheet(collection.value, collection_columns(collection))

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Records are stored one per row. Blank cells read back as None; the
    ledger service re-validates every record through its model.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, header: list[str], record: dict) -> list[str]:
        return [_to_cell(record.get(column)) for column in header]

    def _ensure_header(self, sheet: gspread.Worksheet, collection: Collection, header: list[str]) -> list[str]:
        """Extend a header row written before columns were added to the model."""
        missing = [c for c in collection_columns(collection) if c not in header]
        if missing:
            header = header + missing
            sheet.update(range_name="A1", values=[header], value_input_option="RAW")
            logger.info("sheet_header_extended", sheet=collection.value, columns=missing)
        return header

    def _row_to_record(self, header: list[str], row: list[str]) -> dict:
        record = {}
        for index, column in enumerate(header):
            value = row[index] if index < len(row) else ""
            record[column] = value if value != "" else None
        return record

    def _read(self, collection: Collection) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._client.get_collection_sheet(collection)
        values = sheet.get_all_values()
        header = self._ensure_header(sheet, collection, values[0] if values else [])
        return sheet, header, values[1:]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def add_record(self, collection: Collection, record: dict) -> dict:
        try:
            sheet = self._client.get_collection_sheet(collection)
            header = self._ensure_header(sheet, collection, sheet.row_values(1))
            sheet.append_row(self._record_to_row(header, record), value_input_option="RAW")
            return record
        except Exception as e:
            raise StorageError(f"Failed to save {collection.value} record: {e}")

    async def get_record(self, collection: Collection, record_id: UUID) -> Optional[dict]:
        try:
            _, header, rows = self._read(collection)
            for row in rows:
                if row and row[0] == str(record_id):
                    return self._row_to_record(header, row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get {collection.value} record: {e}")

    async def update_record(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict,
    ) -> dict:
        try:
            sheet, header, rows = self._read(collection)

            for idx, row in enumerate(rows, start=2):  # Row 1 is the header
                if row and row[0] == str(record_id):
                    record = self._row_to_record(header, row)
                    record.update(changes)
                    new_row = self._record_to_row(header, record)
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[new_row],
                        value_input_option="RAW",
                    )
                    return record

            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.value} record: {e}")

    async def delete_record(self, collection: Collection, record_id: UUID) -> bool:
        try:
            sheet, _, rows = self._read(collection)
            for idx, row in enumerate(rows, start=2):
                if row and row[0] == str(record_id):
                    sheet.delete_rows(idx)
                    return True
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete {collection.value} record: {e}")

    async def list_records(self, collection: Collection) -> list[dict]:
        try:
            _, header, rows = self._read(collection)
            return [
                self._row_to_record(header, row)
                for row in rows
                if row and row[0]  # Skip empty rows
            ]
        except Exception as e:
            raise StorageError(f"Failed to list {collection.value} records: {e}")

    async def replace_records(self, collection: Collection, records: list[dict]) -> None:
        try:
            sheet = self._client.get_collection_sheet(collection)
            columns = collection_columns(collection)
            sheet.clear()
            sheet.update(
                range_name="A1",
                values=[columns] + [self._record_to_row(columns, r) for r in records],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to replace {collection.value} records: {e}")


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

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("audit_row_skipped", error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
