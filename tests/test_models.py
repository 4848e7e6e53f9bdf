"""
Tests for Payledger

Test strategy:
1. Unit tests for individual components (models, events, settings)
2. Flow tests against the in-memory store (see the other test modules)
3. No real API calls in tests (fake Sheets client, mock authenticator)
"""

import pytest
from datetime import datetime, timezone
from uuid import uuid4

from payledger.config.settings import AppSettings, LedgerSettings
from payledger.models.ledger import (
    Account,
    StatisticsPeriod,
    Transaction,
    TransactionStatistics,
    TransactionStatus,
    TransactionType,
    TransferErrorCode,
    TransferResult,
)
from payledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_transaction(**overrides):
    data = {
        "id": "tx-1",
        "sender_id": "A",
        "receiver_id": "B",
        "amount": 300,
        "description": "rent",
        "timestamp": NOW,
    }
    data.update(overrides)
    return Transaction(**data)


class TestLedgerModels:
    """Tests for account and transaction models."""

    def test_account_creation(self):
        """Test Account model creation."""
        account = Account(id="A", display_name="  Alice  ", balance=1000)
        assert account.balance == 1000
        assert account.version == 0
        assert account.display_name == "Alice"

    def test_account_rejects_negative_balance(self):
        """Test that negative balances are rejected."""
        with pytest.raises(ValueError):
            Account(id="A", balance=-1)

    def test_account_rejects_float_balance(self):
        """Test that money is never a float."""
        with pytest.raises(ValueError):
            Account(id="A", balance=10.0)

    def test_transaction_defaults(self):
        tx = make_transaction()
        assert tx.status == TransactionStatus.PENDING
        assert tx.transaction_type == TransactionType.TRANSFER
        assert tx.debit_applied is None

    def test_transaction_rejects_same_parties(self):
        """Test that a transaction cannot move money to its own sender."""
        with pytest.raises(ValueError):
            make_transaction(receiver_id="A")

    def test_transaction_rejects_zero_amount(self):
        with pytest.raises(ValueError):
            make_transaction(amount=0)

    def test_needs_reconciliation(self):
        """Debit without credit on a failed transaction needs reconciling."""
        stranded = make_transaction(
            status=TransactionStatus.FAILED, debit_applied=True, credit_applied=None
        )
        clean_failure = make_transaction(
            status=TransactionStatus.FAILED, debit_applied=False, credit_applied=False
        )
        completed = make_transaction(
            status=TransactionStatus.COMPLETED, debit_applied=True, credit_applied=True
        )
        assert stranded.needs_reconciliation is True
        assert clean_failure.needs_reconciliation is False
        assert completed.needs_reconciliation is False

    def test_terminal_statuses(self):
        assert TransactionStatus.PENDING.is_terminal is False
        assert TransactionStatus.COMPLETED.is_terminal is True
        assert TransactionStatus.FAILED.is_terminal is True


class TestTransferResult:
    """Tests for the caller-facing result."""

    def test_ok_wire(self):
        result = TransferResult.ok("tx-1")
        assert result.to_wire() == {"success": True, "transactionId": "tx-1"}

    def test_failure_wire_hides_code(self):
        """Test that the error code stays out of the wire format."""
        result = TransferResult.failure(
            TransferErrorCode.INSUFFICIENT_FUNDS, "Insufficient funds"
        )
        assert result.error_code == TransferErrorCode.INSUFFICIENT_FUNDS
        assert result.to_wire() == {"success": False, "error": "Insufficient funds"}

    def test_accepts_wire_alias(self):
        result = TransferResult.model_validate({"success": True, "transactionId": "tx-9"})
        assert result.transaction_id == "tx-9"


class TestStatisticsModels:

    def test_period_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            StatisticsPeriod(start_date=NOW, end_date=datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_period_assumes_utc(self):
        period = StatisticsPeriod(start_date=datetime(2024, 1, 1), end_date=NOW)
        assert period.start_date.tzinfo == timezone.utc

    def test_net(self):
        stats = TransactionStatistics(
            account_id="A",
            period=StatisticsPeriod(start_date=NOW, end_date=NOW),
            total_income=300,
            total_expenses=50,
            total_transactions=2,
        )
        assert stats.net == 250


class TestLedgerEvents:
    """Tests for ledger event models."""

    def test_event_creation(self):
        """Test LedgerEvent model creation."""
        event = LedgerEvent(
            event_type=LedgerEventType.TRANSFER_REQUESTED,
            description="Transfer requested",
        )
        assert event.event_type == LedgerEventType.TRANSFER_REQUESTED
        assert event.severity == EventSeverity.INFO

    def test_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = LedgerEventBuilder.balance_changed(
            account_id="A",
            transaction_id="tx-1",
            delta=-300,
            new_balance=700,
            correlation_id=correlation_id,
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "balance_debited"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["details"]["new_balance"] == 700

    def test_credit_event_type(self):
        event = LedgerEventBuilder.balance_changed("B", "tx-1", 300, 800, None)
        assert event.event_type == LedgerEventType.BALANCE_CREDITED

    def test_stranded_debit_is_critical(self):
        """Test that a failed transfer needing reconciliation is CRITICAL."""
        event = LedgerEventBuilder.transfer_failed(
            transaction_id="tx-1",
            reason="store error: timeout",
            debit_applied=True,
            credit_applied=None,
            correlation_id=uuid4(),
        )
        assert event.severity == EventSeverity.CRITICAL
        assert event.details["needs_reconciliation"] is True

    def test_clean_failure_is_error(self):
        event = LedgerEventBuilder.transfer_failed("tx-1", "conflict", False, False, None)
        assert event.severity == EventSeverity.ERROR
        assert event.details["needs_reconciliation"] is False

    def test_rejection_carries_code(self):
        event = LedgerEventBuilder.transfer_rejected(
            sender_id="A",
            error_code="insufficient_funds",
            reason="Insufficient funds",
            correlation_id=None,
        )
        assert event.severity == EventSeverity.WARNING
        assert event.error_code == "insufficient_funds"


class TestSettings:
    """Tests for configuration models."""

    def test_ledger_defaults(self):
        settings = LedgerSettings()
        assert settings.store_timeout_seconds == 5.0
        assert settings.balance_update_max_attempts == 5
        assert settings.recent_statistics_days == 7

    def test_ledger_env_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORE_TIMEOUT_SECONDS", "0.25")
        assert LedgerSettings().store_timeout_seconds == 0.25

    def test_backoff_bounds_checked(self):
        with pytest.raises(ValueError):
            LedgerSettings(retry_wait_min_seconds=1.0, retry_wait_max_seconds=0.1)

    def test_storage_backend_choices(self):
        assert AppSettings().storage_backend == "memory"
        with pytest.raises(ValueError):
            AppSettings(storage_backend="postgres")
