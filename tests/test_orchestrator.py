"""
Tests for the end-to-end payment flows.

Uses the in-memory store and the mock biometric authenticator; no
external services are contacted.
"""

import asyncio
import json

from helpers import balances, transactions
from payledger.intents import ManualTransferForm, NdefRecord
from payledger.models.ledger import TransferErrorCode
from payledger.orchestrator import PaymentFlow, create_app_components
from payledger.queries import LedgerReader, StatisticsAggregator
from payledger.services.auth import (
    AuthenticationError,
    Authenticator,
    MockBiometricAuthenticator,
)
from payledger.services.storage import InMemoryLedgerStore
from payledger.transfers import TransferEngine


QR_TEXT = json.dumps({
    "type": "payment",
    "senderId": "",
    "receiverId": "B",
    "amount": 25,
    "description": "coffee",
    "timestamp": 1718452800000,
})


class UnreachableAuthenticator(Authenticator):
    async def verify(self, user_id):
        raise AuthenticationError("verification service unreachable")


def build_flow(store, settings, authenticator=None):
    engine = TransferEngine(store, settings=settings)
    return PaymentFlow(engine, authenticator=authenticator or MockBiometricAuthenticator())


class TestPaymentFlow:
    """Tests for decode → verify → transfer."""

    def test_qr_payment(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings)

        result = asyncio.run(flow.pay_with_qr("A", QR_TEXT))

        assert result.success is True
        assert balances(store) == {"A": 975, "B": 525}
        [doc] = transactions(store)
        assert doc["transaction_type"] == "transfer"
        assert doc["sender_id"] == "A"

    def test_nfc_payment(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings)

        result = asyncio.run(flow.pay_with_nfc("A", [NdefRecord.text(QR_TEXT)]))

        assert result.success is True
        [doc] = transactions(store)
        assert doc["transaction_type"] == "nfc"

    def test_manual_payment(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings)
        form = ManualTransferForm(sender_id="A", receiver_id="B", amount=300, description="rent")

        result = asyncio.run(flow.pay_manual(form))

        assert result.success is True
        assert balances(store) == {"A": 700, "B": 800}

    def test_requested_payment_can_be_paid(self, make_store, ledger_settings):
        """The payload a receiver generates is accepted when scanned."""
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings)
        qr_text = PaymentFlow.request_payment("B", 120, "lunch").to_json()

        result = asyncio.run(flow.pay_with_qr("A", qr_text))

        assert result.success is True
        assert balances(store) == {"A": 880, "B": 620}

    def test_invalid_payload_never_reaches_ledger(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings)

        result = asyncio.run(flow.pay_with_qr("A", '{"type": "invoice"}'))

        assert result.success is False
        assert result.error_code == TransferErrorCode.INVALID_PAYLOAD
        assert result.error == "Not a payment code"
        assert transactions(store) == []

    def test_unverified_sender_rejected(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings, MockBiometricAuthenticator(allowed_user_ids={"B"}))

        result = asyncio.run(flow.pay_with_qr("A", QR_TEXT))

        assert result.error_code == TransferErrorCode.UNAUTHORIZED
        assert result.error == "Sender could not be verified"
        assert transactions(store) == []
        assert balances(store) == {"A": 1000, "B": 500}

    def test_unreachable_authenticator_rejects(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings, UnreachableAuthenticator())

        result = asyncio.run(flow.pay_with_nfc("A", QR_TEXT))

        assert result.error_code == TransferErrorCode.UNAUTHORIZED
        assert transactions(store) == []

    def test_idempotent_resubmit(self, make_store, ledger_settings):
        """Test that a retried scan with the same key pays once."""
        store = make_store(A=1000, B=500)
        flow = build_flow(store, ledger_settings)

        async def scan_twice():
            first = await flow.pay_with_qr("A", QR_TEXT, idempotency_key="scan-1")
            second = await flow.pay_with_qr("A", QR_TEXT, idempotency_key="scan-1")
            return first, second

        first, second = asyncio.run(scan_twice())

        assert first.transaction_id == second.transaction_id
        assert len(transactions(store)) == 1
        assert balances(store) == {"A": 975, "B": 525}

    def test_engine_failure_passes_through(self, make_store, ledger_settings):
        store = make_store(A=10, B=500)
        flow = build_flow(store, ledger_settings)

        result = asyncio.run(flow.pay_with_qr("A", QR_TEXT))

        assert result.to_wire() == {"success": False, "error": "Insufficient funds"}


class TestAppComponents:

    def test_in_memory_components(self):
        flow, aggregator, reader, store = create_app_components(use_storage=False)

        assert isinstance(flow, PaymentFlow)
        assert isinstance(aggregator, StatisticsAggregator)
        assert isinstance(reader, LedgerReader)
        assert isinstance(store, InMemoryLedgerStore)
