"""
Google Sheets Ledger Store

DESIGN DECISION: Google Sheets can back the ledger for small deployments:
1. Operators can inspect accounts and transactions directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions across rows (the engine's pending/settle protocol
  covers this)
- No server-side conditional write; conditional writes are serialized
  per document inside this process only
- Limited query capabilities (we filter in Python)

Each collection is one worksheet whose first row holds the column names.
Cells are written as text and typed back on read through the column
schemas below.
"""

import asyncio
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from payledger.config import get_settings
from payledger.config.settings import GoogleSheetsSettings
from payledger.models.ledger import ACCOUNTS, TRANSACTIONS
from payledger.services.storage.interface import (
    Document,
    DuplicateError,
    FieldFilter,
    LedgerStore,
    NotFoundError,
    OrderBy,
    StorageConnectionError,
    StorageError,
    check_expected,
)


# Column schemas: (column name, cell kind)
ACCOUNT_COLUMNS = [
    ("id", "str"),
    ("display_name", "str"),
    ("email", "str"),
    ("balance", "int"),
    ("version", "int"),
    ("created_at", "datetime"),
]

TRANSACTION_COLUMNS = [
    ("id", "str"),
    ("sender_id", "str"),
    ("receiver_id", "str"),
    ("amount", "int"),
    ("description", "str"),
    ("transaction_type", "str"),
    ("timestamp", "datetime"),
    ("status", "str"),
    ("settled_at", "datetime"),
    ("debit_applied", "bool"),
    ("credit_applied", "bool"),
    ("failure_reason", "str"),
    ("idempotency_key", "str"),
]

COLLECTION_COLUMNS = {
    ACCOUNTS: ACCOUNT_COLUMNS,
    TRANSACTIONS: TRANSACTION_COLUMNS,
}

# Documents share this many locks, so the lock table never grows
LOCK_STRIPES = 64


def encode_cell(value: Any) -> str:
    """Convert a document value to the text stored in a cell."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def decode_cell(raw: str, kind: str) -> Any:
    """Convert cell text back to a typed document value."""
    if raw == "":
        return None
    if kind == "int":
        return int(raw)
    if kind == "datetime":
        return datetime.fromisoformat(raw)
    if kind == "bool":
        return raw.strip().upper() == "TRUE"
    return raw


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self._worksheets: dict[str, gspread.Worksheet] = {}

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
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def sheet_name(self, collection: str) -> str:
        if collection == ACCOUNTS:
            return self._settings.accounts_sheet_name
        if collection == TRANSACTIONS:
            return self._settings.transactions_sheet_name
        raise StorageError(f"Unknown collection: {collection}")

    def get_worksheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        spreadsheet = self.get_spreadsheet()
        title = self.sheet_name(collection)
        columns = [name for name, _ in COLLECTION_COLUMNS[collection]]
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsLedgerStore(LedgerStore):
    """
    Google Sheets implementation of the ledger store.

    One document per row. gspread is synchronous, so every call runs in a
    worker thread; that keeps the event loop free and lets the engine's
    store timeouts actually fire.

    A timed-out call only stops the waiting coroutine; its thread still
    finishes the write. Conditional writes therefore lock inside the
    thread, so the next check on that document sees the late write.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, collection: str, doc_id: str) -> threading.Lock:
        return self._locks[hash((collection, doc_id)) % LOCK_STRIPES]

    @staticmethod
    def _columns(collection: str) -> list[tuple[str, str]]:
        try:
            return COLLECTION_COLUMNS[collection]
        except KeyError:
            raise StorageError(f"Unknown collection: {collection}")

    def _doc_to_row(self, collection: str, doc: Mapping[str, Any]) -> list[str]:
        """Convert a document to a spreadsheet row."""
        return [encode_cell(doc.get(name)) for name, _ in self._columns(collection)]

    def _row_to_doc(self, collection: str, row: list[str]) -> Document:
        """Convert a spreadsheet row to a document."""
        # Handle missing trailing columns gracefully
        def safe_get(index: int) -> str:
            try:
                return row[index]
            except IndexError:
                return ""

        doc: Document = {}
        for index, (name, kind) in enumerate(self._columns(collection)):
            value = decode_cell(safe_get(index), kind)
            if value is not None:
                doc[name] = value
        return doc

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self, collection: str) -> list[list[str]]:
        """All data rows of a collection (header excluded)."""
        sheet = self._client.get_worksheet(collection)
        return sheet.get_all_values()[1:]

    def _find_row(self, collection: str, doc_id: str) -> tuple[int, list[str]]:
        """Return (1-based sheet row index, row values) for a document id."""
        for idx, row in enumerate(self._read_rows(collection), start=2):  # Row 1 is header
            if row and row[0] == doc_id:
                return idx, row
        raise NotFoundError(f"{collection}/{doc_id} not found")

    async def _run(self, operation: str, func: Callable, *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to {operation}: {e}")

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        def _get() -> Optional[Document]:
            try:
                _, row = self._find_row(collection, doc_id)
            except NotFoundError:
                return None
            return self._row_to_doc(collection, row)

        return await self._run("get document", _get)

    async def insert(
        self,
        collection: str,
        fields: Mapping[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        # Not retried: a retried append could record the same transaction twice
        conditional = doc_id is not None
        doc_id = doc_id or uuid4().hex
        doc = {**fields, "id": doc_id}

        def _append() -> None:
            sheet = self._client.get_worksheet(collection)
            sheet.append_row(self._doc_to_row(collection, doc), value_input_option="RAW")

        def _insert_if_absent() -> None:
            with self._lock_for(collection, doc_id):
                try:
                    self._find_row(collection, doc_id)
                except NotFoundError:
                    _append()
                    return
                raise DuplicateError(f"{collection}/{doc_id} already exists")

        await self._run("insert document", _insert_if_absent if conditional else _append)
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> None:
        def _update() -> None:
            with self._lock_for(collection, doc_id):
                idx, row = self._find_row(collection, doc_id)
                current = self._row_to_doc(collection, row)
                check_expected(collection, doc_id, current, expected)
                merged = {**current, **{k: v for k, v in fields.items() if k != "id"}}
                # Whole row in one call so a document is never half-written
                self._client.get_worksheet(collection).update(
                    range_name=f"A{idx}",
                    values=[self._doc_to_row(collection, merged)],
                    value_input_option="RAW",
                )

        await self._run("update document", _update)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        def _query() -> list[Document]:
            docs = []
            for row in self._read_rows(collection):
                if not row or not row[0]:  # Skip empty rows
                    continue
                try:
                    doc = self._row_to_doc(collection, row)
                except ValueError:
                    continue  # Skip malformed rows
                if all(f.matches(doc) for f in filters):
                    docs.append(doc)

            if order_by is not None:
                docs = order_by.apply(docs)
            if limit is not None:
                docs = docs[:limit]
            return docs

        return await self._run("query documents", _query)
