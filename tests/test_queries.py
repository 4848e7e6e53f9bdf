"""
Tests for statistics and ledger reads.

Transactions are seeded straight into the in-memory store so each test
controls timestamps and statuses exactly.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from payledger.models.ledger import TRANSACTIONS, TransactionType
from payledger.queries import (
    LedgerReader,
    StatisticsAggregator,
    StatisticsUnavailableError,
    describe_period,
)
from payledger.services.storage import InMemoryLedgerStore, StorageConnectionError


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

_ids = count(1)


def seed(store, sender, receiver, amount, when, status="completed",
         transaction_type="transfer", **extra):
    tx_id = f"tx-{next(_ids)}"
    store.put(TRANSACTIONS, tx_id, {
        "sender_id": sender,
        "receiver_id": receiver,
        "amount": amount,
        "description": "test",
        "transaction_type": transaction_type,
        "timestamp": when,
        "status": status,
        **extra,
    })
    return tx_id


class BrokenQueryStore(InMemoryLedgerStore):
    async def query(self, collection, filters=(), order_by=None, limit=None):
        raise StorageConnectionError("store offline")


class TestStatisticsAggregator:
    """Tests for income/expense statistics."""

    def test_recent_week_scenario(self, make_store, ledger_settings):
        """Incoming 300 transfer and outgoing 50 NFC in the last 7 days."""
        store = make_store(A=1000, B=500)
        seed(store, "B", "A", 300, NOW - timedelta(days=1))
        seed(store, "A", "B", 50, NOW - timedelta(days=2), transaction_type="nfc")
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        stats = asyncio.run(aggregator.recent("A", now=NOW))

        assert stats.total_income == 300
        assert stats.total_expenses == 50
        assert stats.total_transactions == 2
        assert stats.categories == {
            TransactionType.TRANSFER: 300,
            TransactionType.NFC: 50,
        }
        assert stats.net == 250

    def test_only_completed_counted(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        seed(store, "B", "A", 300, NOW - timedelta(hours=1))
        seed(store, "B", "A", 999, NOW - timedelta(hours=1), status="pending")
        seed(store, "A", "B", 777, NOW - timedelta(hours=1), status="failed")
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        stats = asyncio.run(aggregator.recent("A", now=NOW))

        assert stats.total_income == 300
        assert stats.total_expenses == 0
        assert stats.total_transactions == 1

    def test_category_merges_income_and_expense(self, make_store, ledger_settings):
        """A category total adds money in and money out of that type."""
        store = make_store(A=1000, B=500)
        seed(store, "B", "A", 20, NOW - timedelta(hours=2), transaction_type="nfc")
        seed(store, "A", "B", 50, NOW - timedelta(hours=1), transaction_type="nfc")
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        stats = asyncio.run(aggregator.recent("A", now=NOW))

        assert stats.categories == {TransactionType.NFC: 70}
        assert stats.total_income == 20
        assert stats.total_expenses == 50

    def test_bounds_are_inclusive(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        start = NOW - timedelta(days=3)
        seed(store, "B", "A", 10, start)
        seed(store, "B", "A", 20, NOW)
        seed(store, "B", "A", 40, start - timedelta(microseconds=1))
        seed(store, "B", "A", 80, NOW + timedelta(microseconds=1))
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        stats = asyncio.run(aggregator.aggregate("A", start, NOW))

        assert stats.total_income == 30
        assert stats.total_transactions == 2

    def test_repeat_is_identical(self, make_store, ledger_settings):
        """Test that statistics are a pure function of the ledger."""
        store = make_store(A=1000, B=500)
        seed(store, "B", "A", 300, NOW - timedelta(days=1))
        seed(store, "A", "B", 50, NOW - timedelta(days=2))
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        async def twice():
            first = await aggregator.aggregate("A", NOW - timedelta(days=7), NOW)
            second = await aggregator.aggregate("A", NOW - timedelta(days=7), NOW)
            return first, second

        first, second = asyncio.run(twice())
        assert first == second

    def test_monthly_covers_calendar_month(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        december = datetime(2023, 12, 15, tzinfo=timezone.utc)
        seed(store, "B", "A", 1, datetime(2023, 12, 1, tzinfo=timezone.utc))
        seed(store, "B", "A", 2, datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc))
        seed(store, "B", "A", 4, datetime(2024, 1, 1, tzinfo=timezone.utc))
        seed(store, "B", "A", 8, datetime(2023, 11, 30, 23, 59, tzinfo=timezone.utc))
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        stats = asyncio.run(aggregator.monthly("A", now=december))

        assert stats.total_income == 3
        assert stats.period.start_date == datetime(2023, 12, 1, tzinfo=timezone.utc)

    def test_naive_dates_treated_as_utc(self, make_store, ledger_settings):
        store = make_store(A=1000, B=500)
        seed(store, "B", "A", 300, NOW - timedelta(days=1))
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        stats = asyncio.run(aggregator.aggregate(
            "A",
            datetime(2024, 6, 1),
            datetime(2024, 6, 30),
        ))

        assert stats.total_income == 300

    def test_inverted_period_rejected(self, make_store, ledger_settings):
        aggregator = StatisticsAggregator(make_store(A=0), settings=ledger_settings)
        with pytest.raises(ValueError):
            asyncio.run(aggregator.aggregate("A", NOW, NOW - timedelta(days=1)))

    def test_store_failure_is_not_zero(self, make_store, ledger_settings):
        """Test that an unreadable ledger raises instead of reporting zeros."""
        store = make_store(BrokenQueryStore, A=1000)
        aggregator = StatisticsAggregator(store, settings=ledger_settings)

        with pytest.raises(StatisticsUnavailableError):
            asyncio.run(aggregator.recent("A", now=NOW))


class TestDescribePeriod:

    def test_single_day(self):
        assert describe_period(NOW, NOW) == "on 15 Jun 2024"

    def test_same_month(self):
        start = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert describe_period(start, NOW) == "in June 2024"

    def test_across_years(self):
        start = datetime(2023, 12, 20, tzinfo=timezone.utc)
        assert describe_period(start, NOW) == "from 20 Dec 2023 to 15 Jun 2024"


class TestLedgerReader:
    """Tests for read-only ledger access."""

    def test_history_newest_first_with_limit(self, make_store):
        store = make_store(A=1000, B=500, C=0)
        oldest = seed(store, "A", "B", 1, NOW - timedelta(days=3))
        received = seed(store, "C", "A", 2, NOW - timedelta(days=2))
        newest = seed(store, "A", "C", 3, NOW - timedelta(days=1))
        seed(store, "B", "C", 4, NOW)
        reader = LedgerReader(store)

        everything = asyncio.run(reader.list_for_account("A"))
        latest_two = asyncio.run(reader.list_for_account("A", limit=2))

        assert [tx.id for tx in everything] == [newest, received, oldest]
        assert [tx.id for tx in latest_two] == [newest, received]

    def test_lookups(self, make_store):
        store = make_store(A=1000, B=500)
        tx_id = seed(store, "A", "B", 5, NOW)
        reader = LedgerReader(store)

        account = asyncio.run(reader.get_account("A"))
        tx = asyncio.run(reader.get_transaction(tx_id))

        assert account.balance == 1000
        assert tx.amount == 5
        assert asyncio.run(reader.get_account("nobody")) is None
        assert asyncio.run(reader.get_transaction("missing")) is None

    def test_find_unreconciled(self, make_store):
        """Only failed transactions with a debit and no credit need reconciling."""
        store = make_store(A=1000, B=500)
        stranded = seed(
            store, "A", "B", 300, NOW, status="failed",
            debit_applied=True, credit_applied=None,
        )
        seed(store, "A", "B", 10, NOW, status="failed", debit_applied=False, credit_applied=False)
        seed(store, "A", "B", 20, NOW, debit_applied=True, credit_applied=True)
        reader = LedgerReader(store)

        unreconciled = asyncio.run(reader.find_unreconciled())

        assert [tx.id for tx in unreconciled] == [stranded]
        assert unreconciled[0].needs_reconciliation is True
