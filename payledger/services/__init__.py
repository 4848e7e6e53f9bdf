"""Services package."""

from payledger.services.auth import (
    AuthenticationError,
    Authenticator,
    MockBiometricAuthenticator,
)
from payledger.services.storage import (
    ConflictError,
    DuplicateError,
    FieldFilter,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStore,
    NotFoundError,
    OrderBy,
    StorageConnectionError,
    StorageError,
    StorageTimeoutError,
)

__all__ = [
    # Auth services
    "AuthenticationError",
    "Authenticator",
    "MockBiometricAuthenticator",
    # Storage services
    "ConflictError",
    "DuplicateError",
    "FieldFilter",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryLedgerStore",
    "LedgerStore",
    "NotFoundError",
    "OrderBy",
    "StorageConnectionError",
    "StorageError",
    "StorageTimeoutError",
]
