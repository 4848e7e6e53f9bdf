"""Transfer engine: validation and three-phase settlement."""

from payledger.transfers.engine import (
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidDescriptionError,
    MonotonicClock,
    SelfTransferError,
    StoreUnavailableError,
    TransferEngine,
    TransferError,
    idempotent_transaction_id,
)

__all__ = [
    "TransferEngine",
    "MonotonicClock",
    "TransferError",
    "InvalidAmountError",
    "InvalidDescriptionError",
    "SelfTransferError",
    "AccountNotFoundError",
    "InsufficientFundsError",
    "StoreUnavailableError",
    "idempotent_transaction_id",
]
