"""
Audit Logger

DESIGN DECISION: Every step of a transfer is logged as a structured event.
This provides:
1. Traceability of each settlement phase
2. Visibility of balance contention and retries
3. A loud signal when a settlement needs reconciliation

The logger:
- Writes to the local structured log only (the Transaction record is
  the durable trail)
- Never raises into the money path
- Supports correlation IDs to trace one transfer across components
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from payledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
)


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central ledger event logger.
    
    Routes each event to the structlog method matching its severity.
    """
    
    def __init__(self, logger_name: str = "payledger"):
        self._logger = structlog.get_logger(logger_name)
    
    async def log(self, event: LedgerEvent) -> bool:
        """
        Log a ledger event.
        
        Returns False if the event could not be written.
        """
        log_dict = event.to_log_dict()
        
        try:
            if event.severity == EventSeverity.CRITICAL:
                self._logger.critical("ledger_event", **log_dict)
            elif event.severity == EventSeverity.ERROR:
                self._logger.error("ledger_event", **log_dict)
            elif event.severity == EventSeverity.WARNING:
                self._logger.warning("ledger_event", **log_dict)
            elif event.severity == EventSeverity.DEBUG:
                self._logger.debug("ledger_event", **log_dict)
            else:
                self._logger.info("ledger_event", **log_dict)
        except Exception:
            # A broken log handler must not abort a settlement
            return False
        
        return True
    
    async def log_transfer_requested(
        self,
        sender_id: str,
        receiver_id: str,
        amount: int,
        transaction_type: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log an incoming transfer request."""
        await self.log(LedgerEventBuilder.transfer_requested(
            sender_id=sender_id,
            receiver_id=receiver_id,
            amount=amount,
            transaction_type=transaction_type,
            correlation_id=correlation_id,
        ))
    
    async def log_transfer_rejected(
        self,
        sender_id: str,
        error_code: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a transfer rejected before any write."""
        await self.log(LedgerEventBuilder.transfer_rejected(
            sender_id=sender_id,
            error_code=error_code,
            reason=reason,
            correlation_id=correlation_id,
        ))
    
    async def log_transaction_pending(
        self,
        transaction_id: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.transaction_pending(
            transaction_id=transaction_id,
            amount=amount,
            correlation_id=correlation_id,
        ))
    
    async def log_balance_changed(
        self,
        account_id: str,
        transaction_id: str,
        delta: int,
        new_balance: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.balance_changed(
            account_id=account_id,
            transaction_id=transaction_id,
            delta=delta,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))
    
    async def log_balance_conflict(
        self,
        account_id: str,
        transaction_id: str,
        attempt: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.balance_conflict(
            account_id=account_id,
            transaction_id=transaction_id,
            attempt=attempt,
            correlation_id=correlation_id,
        ))
    
    async def log_transfer_completed(
        self,
        transaction_id: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.transfer_completed(
            transaction_id=transaction_id,
            amount=amount,
            correlation_id=correlation_id,
        ))
    
    async def log_transfer_failed(
        self,
        transaction_id: str,
        reason: str,
        debit_applied: Optional[bool],
        credit_applied: Optional[bool],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a settlement that ended in FAILED."""
        await self.log(LedgerEventBuilder.transfer_failed(
            transaction_id=transaction_id,
            reason=reason,
            debit_applied=debit_applied,
            credit_applied=credit_applied,
            correlation_id=correlation_id,
        ))
    
    async def log_settlement_unresolved(
        self,
        transaction_id: str,
        intended_status: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.settlement_unresolved(
            transaction_id=transaction_id,
            intended_status=intended_status,
            error_message=error_message,
            correlation_id=correlation_id,
        ))
    
    async def log_stale_pending_resolved(
        self,
        transaction_id: str,
        age_seconds: float,
    ) -> None:
        await self.log(LedgerEventBuilder.stale_pending_resolved(
            transaction_id=transaction_id,
            age_seconds=age_seconds,
        ))
    
    async def log_payload_decoded(
        self,
        source: str,
        receiver_id: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.payload_decoded(
            source=source,
            receiver_id=receiver_id,
            amount=amount,
            correlation_id=correlation_id,
        ))
    
    async def log_payload_rejected(
        self,
        source: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.payload_rejected(
            source=source,
            reason=reason,
            correlation_id=correlation_id,
        ))
    
    async def log_authentication_failed(
        self,
        user_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(LedgerEventBuilder.authentication_failed(
            user_id=user_id,
            correlation_id=correlation_id,
        ))
    
    async def log_statistics_computed(
        self,
        account_id: str,
        total_transactions: int,
        period_description: str,
    ) -> None:
        await self.log(LedgerEventBuilder.statistics_computed(
            account_id=account_id,
            total_transactions=total_transactions,
            period_description=period_description,
        ))
    
    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a store failure."""
        await self.log(LedgerEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.
    
    Use this at the start of a payment (decode, verify, transfer)
    and pass it through all subsequent operations.
    """
    return uuid4()
