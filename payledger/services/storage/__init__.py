"""
Storage Services Package

Provides the abstract ledger store interface and concrete implementations.
Google Sheets is the hosted backend; the in-memory store serves tests and
local runs.
"""

from payledger.services.storage.interface import (
    ConflictError,
    Document,
    DuplicateError,
    FieldFilter,
    LedgerStore,
    NotFoundError,
    OrderBy,
    StorageConnectionError,
    StorageError,
    StorageTimeoutError,
)
from payledger.services.storage.memory import InMemoryLedgerStore
from payledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interface
    "Document",
    "FieldFilter",
    "LedgerStore",
    "OrderBy",
    # Exceptions
    "ConflictError",
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    "StorageTimeoutError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryLedgerStore",
]
