"""
Core Data Models for Payledger

These models define the strict schemas for all data flowing through the ledger.
They are designed to:
1. Keep money as integer minor units (no float drift)
2. Provide clear validation error messages
3. Map cleanly to and from store documents
4. Carry the evidence needed to reconcile a failed settlement

DESIGN DECISION: Amount fields are strict ints. A bool or a float that
happens to be whole is rejected here; coercion happens only at the wire
boundary, where the payload decoder decides what a JSON number means.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    How a funds movement entered the ledger.

    Statistics bucket amounts by this value.
    """
    TRANSFER = "transfer"
    NFC = "nfc"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, Enum):
    """
    Settlement status of a transaction.

    CRITICAL: COMPLETED and FAILED are terminal. A transaction leaves
    PENDING exactly once and is never rewritten afterwards.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class TransferErrorCode(str, Enum):
    """Machine-readable reason attached to a failed TransferResult."""
    # Validation - nothing was written
    INVALID_AMOUNT = "invalid_amount"
    INVALID_DESCRIPTION = "invalid_description"
    SELF_TRANSFER = "self_transfer"
    ACCOUNT_NOT_FOUND = "account_not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_PAYLOAD = "invalid_payload"
    UNAUTHORIZED = "unauthorized"
    STORE_UNAVAILABLE = "store_unavailable"

    # Processing - a transaction record exists
    PROCESSING_FAILED = "processing_failed"
    TRANSFER_IN_PROGRESS = "transfer_in_progress"


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A registered account holding a balance.

    Accounts are created at registration (outside this package) and only
    their balance is ever changed here, by the transfer engine.

    `version` is bumped on every balance write. A balance update is only
    accepted by the store when the version still matches the one read,
    which is what prevents lost updates between concurrent transfers.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Account identifier"
    )
    display_name: Optional[str] = Field(
        default=None,
        max_length=200,
    )
    email: Optional[str] = Field(
        default=None,
        max_length=320,
    )
    balance: int = Field(
        ...,
        ge=0,
        strict=True,
        description="Balance in minor currency units"
    )
    version: int = Field(
        default=0,
        ge=0,
        description="Optimistic concurrency counter"
    )
    created_at: Optional[datetime] = None


class Transaction(BaseModel):
    """
    One recorded funds movement between two accounts.

    The record is the durable trail of a transfer. When settlement fails
    after the debit went through, `debit_applied`/`credit_applied` say so
    (None means the engine could not tell), which is what an out-of-band
    reconciliation needs to put the money back.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Store-assigned transaction id"
    )
    sender_id: str = Field(..., min_length=1)
    receiver_id: str = Field(..., min_length=1)
    amount: int = Field(
        ...,
        gt=0,
        strict=True,
        description="Amount in minor currency units"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    transaction_type: TransactionType = TransactionType.TRANSFER
    timestamp: datetime = Field(
        ...,
        description="Creation time, strictly increasing per engine"
    )
    status: TransactionStatus = TransactionStatus.PENDING

    # Settlement outcome
    settled_at: Optional[datetime] = None
    debit_applied: Optional[bool] = None
    credit_applied: Optional[bool] = None
    failure_reason: Optional[str] = Field(
        default=None,
        max_length=500,
    )

    idempotency_key: Optional[str] = Field(
        default=None,
        max_length=200,
    )

    @model_validator(mode='after')
    def validate_parties(self) -> 'Transaction':
        """A transaction always moves money between two different accounts."""
        if self.sender_id == self.receiver_id:
            raise ValueError("Sender and receiver must be different accounts")
        return self

    @property
    def needs_reconciliation(self) -> bool:
        """Debit applied with no matching credit."""
        return (
            self.status is TransactionStatus.FAILED
            and self.debit_applied is True
            and self.credit_applied is not True
        )


# =============================================================================
# TRANSFER REQUEST / RESULT
# =============================================================================

class TransferRequest(BaseModel):
    """
    Canonical request produced by every payment intent decoder.

    DESIGN DECISION: This is a carrier, not a validator. The transfer
    engine runs the precondition checks so that a bad request turns into
    a structured failure rather than an exception at construction time.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    sender_id: str
    receiver_id: str
    amount: int = Field(..., strict=True)
    description: str
    transaction_type: TransactionType = TransactionType.TRANSFER
    idempotency_key: Optional[str] = None


class TransferResult(BaseModel):
    """
    Outcome handed back to callers of the transfer engine.

    Wire form: {success, transactionId?, error?}
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    transaction_id: Optional[str] = Field(
        default=None,
        alias="transactionId",
    )
    error: Optional[str] = Field(
        default=None,
        description="Human-readable failure reason"
    )
    error_code: Optional[TransferErrorCode] = Field(
        default=None,
        exclude=True,
    )

    @classmethod
    def ok(cls, transaction_id: str) -> 'TransferResult':
        return cls(success=True, transaction_id=transaction_id)

    @classmethod
    def failure(
        cls,
        code: TransferErrorCode,
        message: str,
        transaction_id: Optional[str] = None,
    ) -> 'TransferResult':
        return cls(
            success=False,
            error=message,
            error_code=code,
            transaction_id=transaction_id,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# STATISTICS MODELS
# =============================================================================

class StatisticsPeriod(BaseModel):
    """Inclusive time window for statistics."""

    start_date: datetime
    end_date: datetime

    @field_validator('start_date', 'end_date')
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive datetimes are taken as UTC so they compare with stored timestamps."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode='after')
    def validate_range(self) -> 'StatisticsPeriod':
        if self.end_date < self.start_date:
            raise ValueError("Statistics end date cannot be before start date")
        return self


class TransactionStatistics(BaseModel):
    """
    Income/expense summary for one account over a period.

    NOTE: `categories` adds inbound AND outbound amounts of the same
    transaction type into one bucket. That is the established behaviour
    of this report; it is not a net figure.
    """

    account_id: str
    period: StatisticsPeriod
    total_income: int = Field(default=0, ge=0)
    total_expenses: int = Field(default=0, ge=0)
    total_transactions: int = Field(default=0, ge=0)
    categories: dict[TransactionType, int] = Field(default_factory=dict)

    @property
    def net(self) -> int:
        return self.total_income - self.total_expenses


# =============================================================================
# STORE DOCUMENT MAPPING
# =============================================================================

def account_from_document(doc: dict[str, Any]) -> Account:
    """Build an Account from a store document (which carries its id)."""
    return Account.model_validate(doc)


def transaction_from_document(doc: dict[str, Any]) -> Transaction:
    """Build a Transaction from a store document (which carries its id)."""
    return Transaction.model_validate(doc)
