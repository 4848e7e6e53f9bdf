"""
Data Models Package

This package contains all Pydantic models used in Payledger.
All data flowing through the ledger must conform to these schemas.
"""

from payledger.models.ledger import (
    ACCOUNTS,
    TRANSACTIONS,
    Account,
    StatisticsPeriod,
    Transaction,
    TransactionStatistics,
    TransactionStatus,
    TransactionType,
    TransferErrorCode,
    TransferRequest,
    TransferResult,
    account_from_document,
    transaction_from_document,
    utc_now,
)
from payledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)

__all__ = [
    # Ledger models
    "ACCOUNTS",
    "TRANSACTIONS",
    "Account",
    "StatisticsPeriod",
    "Transaction",
    "TransactionStatistics",
    "TransactionStatus",
    "TransactionType",
    "TransferErrorCode",
    "TransferRequest",
    "TransferResult",
    "account_from_document",
    "transaction_from_document",
    "utc_now",
    # Event models
    "EventSeverity",
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
]
