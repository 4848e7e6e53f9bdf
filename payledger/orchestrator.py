"""
Main Orchestrator for Payledger

This module ties together all the components and defines the
end-to-end payment flows:
1. Manual transfer (form → validate → verify sender → transfer)
2. QR payment (scanned text → decode → verify sender → transfer)
3. NFC payment (tag records → decode → verify sender → transfer)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the transfer engine unless it decoded cleanly
- Nothing reaches the transfer engine unless the sender is verified
- Every step is audited under one correlation id

Every flow answers with a TransferResult; callers never have to catch.
"""

from typing import Any, Optional, Sequence, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from payledger.audit import AuditLogger, create_correlation_id
from payledger.config import get_settings
from payledger.intents import (
    DecodeError,
    ManualTransferDecoder,
    ManualTransferForm,
    NdefRecord,
    NFCPayloadDecoder,
    PaymentDecoder,
    PaymentPayload,
    QRPayloadDecoder,
)
from payledger.models.ledger import TransferErrorCode, TransferResult
from payledger.queries import LedgerReader, StatisticsAggregator
from payledger.services.auth import (
    AuthenticationError,
    Authenticator,
    MockBiometricAuthenticator,
)
from payledger.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStore,
    StorageError,
)
from payledger.transfers import TransferEngine


logger = structlog.get_logger("payledger.orchestrator")


class PaymentFlow:
    """
    Orchestrates the payment flows.

    Flow:
    1. Decode → source-specific decoder produces a TransferRequest
    2. Verify → the authenticator confirms the sender (when configured)
    3. Transfer → the engine validates and settles

    A failure in steps 1-2 never touches the ledger.
    """

    def __init__(
        self,
        engine: TransferEngine,
        authenticator: Optional[Authenticator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._authenticator = authenticator
        self._audit_logger = audit_logger or AuditLogger()

        self._manual_decoder = ManualTransferDecoder()
        self._qr_decoder = QRPayloadDecoder()
        self._nfc_decoder = NFCPayloadDecoder()

    async def pay_manual(
        self,
        form: ManualTransferForm,
        correlation_id: Optional[UUID] = None,
    ) -> TransferResult:
        """Send money from the transfer form."""
        return await self._pay(
            self._manual_decoder,
            form,
            sender_id=form.sender_id,
            idempotency_key=form.idempotency_key,
            correlation_id=correlation_id,
        )

    async def pay_with_qr(
        self,
        sender_id: str,
        qr_text: str,
        idempotency_key: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> TransferResult:
        """Pay the receiver encoded in a scanned QR code."""
        return await self._pay(
            self._qr_decoder,
            qr_text,
            sender_id=sender_id,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
        )

    async def pay_with_nfc(
        self,
        sender_id: str,
        ndef_records: Union[str, Sequence[NdefRecord]],
        idempotency_key: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> TransferResult:
        """Pay the receiver read from an NFC tag."""
        return await self._pay(
            self._nfc_decoder,
            ndef_records,
            sender_id=sender_id,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
        )

    @staticmethod
    def request_payment(
        receiver_id: str,
        amount: int,
        description: str,
    ) -> PaymentPayload:
        """
        Build the payload an account shows (QR) or writes (NFC) to get paid.

        Raises:
            ValidationError: If the amount or description is invalid
        """
        return PaymentPayload.for_receiver(
            receiver_id=receiver_id,
            amount=amount,
            description=description,
        )

    async def _pay(
        self,
        decoder: PaymentDecoder,
        raw: Any,
        sender_id: Optional[str],
        idempotency_key: Optional[str],
        correlation_id: Optional[UUID],
    ) -> TransferResult:
        correlation_id = correlation_id or create_correlation_id()

        # Step 1: Decode
        try:
            request = decoder.decode(raw, sender_id=sender_id)
        except DecodeError as e:
            await self._audit_logger.log_payload_rejected(
                source=decoder.source,
                reason=e.reason,
                correlation_id=correlation_id,
            )
            return TransferResult.failure(TransferErrorCode.INVALID_PAYLOAD, e.reason)

        await self._audit_logger.log_payload_decoded(
            source=decoder.source,
            receiver_id=request.receiver_id,
            amount=request.amount,
            correlation_id=correlation_id,
        )

        if idempotency_key:
            request = request.model_copy(update={"idempotency_key": idempotency_key})

        # Step 2: Verify sender
        if self._authenticator is not None:
            try:
                verified = await self._authenticator.verify(request.sender_id)
            except AuthenticationError as e:
                logger.warning(
                    "sender_verification_error",
                    sender_id=request.sender_id,
                    error=str(e),
                )
                verified = False
            if not verified:
                await self._audit_logger.log_authentication_failed(
                    user_id=request.sender_id,
                    correlation_id=correlation_id,
                )
                return TransferResult.failure(
                    TransferErrorCode.UNAUTHORIZED,
                    "Sender could not be verified",
                )

        # Step 3: Transfer
        return await self._engine.transfer(request, correlation_id=correlation_id)


def create_ledger_store(use_storage: bool = True) -> LedgerStore:
    """
    Build the configured ledger store.

    Falls back to the in-memory store when Google Sheets is not selected
    or not configured.
    """
    if use_storage and get_settings().app.storage_backend == "google_sheets":
        try:
            return GoogleSheetsLedgerStore(GoogleSheetsClient())
        except (ValidationError, StorageError) as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
    return InMemoryLedgerStore()


def create_app_components(
    use_storage: bool = True,
) -> tuple[PaymentFlow, StatisticsAggregator, LedgerReader, LedgerStore]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured storage backend.
                    Set to False for an in-memory ledger.

    Returns:
        (payment_flow, statistics_aggregator, ledger_reader, store)
    """
    store = create_ledger_store(use_storage)
    audit_logger = AuditLogger()
    ledger_settings = get_settings().ledger

    engine = TransferEngine(
        store,
        settings=ledger_settings,
        audit_logger=audit_logger,
    )
    payment_flow = PaymentFlow(
        engine,
        authenticator=MockBiometricAuthenticator(),
        audit_logger=audit_logger,
    )
    statistics_aggregator = StatisticsAggregator(
        store,
        settings=ledger_settings,
        audit_logger=audit_logger,
    )
    ledger_reader = LedgerReader(store)

    return payment_flow, statistics_aggregator, ledger_reader, store
