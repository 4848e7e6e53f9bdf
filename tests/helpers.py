"""Plain helpers for inspecting the in-memory ledger in tests."""

from payledger.models.ledger import ACCOUNTS, TRANSACTIONS
from payledger.services.storage import InMemoryLedgerStore


def balances(store: InMemoryLedgerStore) -> dict[str, int]:
    return {doc["id"]: doc["balance"] for doc in store.snapshot(ACCOUNTS)}


def transactions(store: InMemoryLedgerStore) -> list[dict]:
    return store.snapshot(TRANSACTIONS)
