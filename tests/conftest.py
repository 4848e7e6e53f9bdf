"""Shared fixtures: an in-memory ledger and fast retry settings."""

import pytest

from payledger.config.settings import LedgerSettings
from payledger.models.ledger import ACCOUNTS
from payledger.services.storage import InMemoryLedgerStore


@pytest.fixture
def ledger_settings():
    """Settings with no retry backoff so tests don't sleep."""
    return LedgerSettings(
        store_timeout_seconds=1.0,
        retry_wait_min_seconds=0.0,
        retry_wait_max_seconds=0.0,
    )


@pytest.fixture
def make_store():
    """Build a store seeded with `account_id=balance` accounts."""
    def _make(store_cls=InMemoryLedgerStore, latency=None, **balances):
        store = store_cls(latency=latency)
        for account_id, balance in balances.items():
            store.put(ACCOUNTS, account_id, {"balance": balance, "version": 0})
        return store
    return _make

