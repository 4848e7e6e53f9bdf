"""
Ledger Event Models

Every step of a settlement emits a structured event:
1. Debugging a failed or stuck transfer
2. Spotting balance contention (conflict retries)
3. Surfacing settlements that need reconciliation

DESIGN DECISION: Events go to the local structured log only. The durable
record of a transfer is the Transaction itself; events explain how it got
there.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class LedgerEventType(str, Enum):
    """Types of events emitted by the ledger."""
    # Transfer lifecycle
    TRANSFER_REQUESTED = "transfer_requested"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSACTION_PENDING = "transaction_pending"
    BALANCE_DEBITED = "balance_debited"
    BALANCE_CREDITED = "balance_credited"
    BALANCE_CONFLICT = "balance_conflict"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_FAILED = "transfer_failed"
    SETTLEMENT_UNRESOLVED = "settlement_unresolved"
    STALE_PENDING_RESOLVED = "stale_pending_resolved"

    # Payment intents
    PAYLOAD_DECODED = "payload_decoded"
    PAYLOAD_REJECTED = "payload_rejected"
    AUTHENTICATION_FAILED = "authentication_failed"

    # Reporting
    STATISTICS_COMPUTED = "statistics_computed"

    # System events
    STORAGE_ERROR = "storage_error"


class EventSeverity(str, Enum):
    """Severity level for ledger events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LedgerEvent(BaseModel):
    """A single ledger event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: LedgerEventType
    severity: EventSeverity = EventSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'payload')"
    )
    entity_id: Optional[str] = None

    # Correlation - all events of one transfer attempt share this
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class LedgerEventBuilder:
    """
    Helper class to build ledger events with common patterns.

    Usage:
        event = LedgerEventBuilder.transaction_pending(tx_id, amount, correlation_id)
        event = LedgerEventBuilder.transfer_failed(tx_id, reason, ...)
    """

    @staticmethod
    def transfer_requested(
        sender_id: str,
        receiver_id: str,
        amount: int,
        transaction_type: str,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSFER_REQUESTED,
            entity_type="account",
            entity_id=sender_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} requested",
            details={
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "amount": amount,
                "transaction_type": transaction_type,
            },
        )

    @staticmethod
    def transfer_rejected(
        sender_id: str,
        error_code: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSFER_REJECTED,
            severity=EventSeverity.WARNING,
            entity_type="account",
            entity_id=sender_id,
            correlation_id=correlation_id,
            description=f"Transfer rejected: {reason}",
            error_code=error_code,
            error_message=reason,
        )

    @staticmethod
    def transaction_pending(
        transaction_id: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_PENDING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Pending transaction recorded",
            details={"amount": amount},
        )

    @staticmethod
    def balance_changed(
        account_id: str,
        transaction_id: str,
        delta: int,
        new_balance: int,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        event_type = (
            LedgerEventType.BALANCE_DEBITED
            if delta < 0
            else LedgerEventType.BALANCE_CREDITED
        )
        return LedgerEvent(
            event_type=event_type,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance {'debited' if delta < 0 else 'credited'} by {abs(delta)}",
            details={
                "transaction_id": transaction_id,
                "delta": delta,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def balance_conflict(
        account_id: str,
        transaction_id: str,
        attempt: int,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.BALANCE_CONFLICT,
            severity=EventSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance changed concurrently, retrying (attempt {attempt})",
            details={
                "transaction_id": transaction_id,
                "attempt": attempt,
            },
        )

    @staticmethod
    def transfer_completed(
        transaction_id: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSFER_COMPLETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} completed",
            details={"amount": amount},
        )

    @staticmethod
    def transfer_failed(
        transaction_id: str,
        reason: str,
        debit_applied: Optional[bool],
        credit_applied: Optional[bool],
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        # Debit without credit means money is parked outside any balance
        needs_reconciliation = debit_applied is True and credit_applied is not True
        return LedgerEvent(
            event_type=LedgerEventType.TRANSFER_FAILED,
            severity=EventSeverity.CRITICAL if needs_reconciliation else EventSeverity.ERROR,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transfer failed during settlement",
            error_code="processing_failed",
            error_message=reason,
            details={
                "debit_applied": debit_applied,
                "credit_applied": credit_applied,
                "needs_reconciliation": needs_reconciliation,
            },
        )

    @staticmethod
    def settlement_unresolved(
        transaction_id: str,
        intended_status: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SETTLEMENT_UNRESOLVED,
            severity=EventSeverity.CRITICAL,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Could not record terminal status '{intended_status}'",
            error_message=error_message,
            details={"intended_status": intended_status},
        )

    @staticmethod
    def stale_pending_resolved(
        transaction_id: str,
        age_seconds: float,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STALE_PENDING_RESOLVED,
            severity=EventSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Abandoned pending transaction marked failed",
            details={"age_seconds": round(age_seconds, 3)},
        )

    @staticmethod
    def payload_decoded(
        source: str,
        receiver_id: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PAYLOAD_DECODED,
            entity_type="payload",
            correlation_id=correlation_id,
            description=f"{source} payment intent decoded",
            details={
                "source": source,
                "receiver_id": receiver_id,
                "amount": amount,
            },
        )

    @staticmethod
    def payload_rejected(
        source: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PAYLOAD_REJECTED,
            severity=EventSeverity.WARNING,
            entity_type="payload",
            correlation_id=correlation_id,
            description=f"{source} payment intent rejected",
            error_code="invalid_payload",
            error_message=reason,
            details={"source": source},
        )

    @staticmethod
    def authentication_failed(
        user_id: str,
        correlation_id: Optional[UUID],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.AUTHENTICATION_FAILED,
            severity=EventSeverity.WARNING,
            entity_type="account",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Sender verification failed",
        )

    @staticmethod
    def statistics_computed(
        account_id: str,
        total_transactions: int,
        period_description: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STATISTICS_COMPUTED,
            severity=EventSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            description=f"Statistics computed {period_description}",
            details={"total_transactions": total_transactions},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STORAGE_ERROR,
            severity=EventSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
