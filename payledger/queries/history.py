"""
Ledger Reads

Read-only views over accounts and transactions: single lookups, an
account's history, and the failed settlements that need reconciliation.

A caller that lost track of a transfer (timeout, crash) should look the
transaction up here before submitting it again.
"""

from typing import Optional

from payledger.models.ledger import (
    ACCOUNTS,
    TRANSACTIONS,
    Account,
    Transaction,
    TransactionStatus,
    account_from_document,
    transaction_from_document,
)
from payledger.services.storage import FieldFilter, LedgerStore, OrderBy


class LedgerReader:
    """Read access to the ledger. Never writes."""

    def __init__(self, store: LedgerStore):
        self._store = store

    async def get_account(self, account_id: str) -> Optional[Account]:
        doc = await self._store.get(ACCOUNTS, account_id)
        return account_from_document(doc) if doc is not None else None

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        doc = await self._store.get(TRANSACTIONS, transaction_id)
        return transaction_from_document(doc) if doc is not None else None

    async def list_for_account(
        self,
        account_id: str,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        Sent and received transactions of an account, newest first.

        `limit` caps each side's query and then the merged list.
        """
        newest_first = OrderBy(field="timestamp", descending=True)
        sent = await self._store.query(
            TRANSACTIONS,
            filters=[FieldFilter(field="sender_id", value=account_id)],
            order_by=newest_first,
            limit=limit,
        )
        received = await self._store.query(
            TRANSACTIONS,
            filters=[FieldFilter(field="receiver_id", value=account_id)],
            order_by=newest_first,
            limit=limit,
        )

        merged = [transaction_from_document(doc) for doc in sent + received]
        merged.sort(key=lambda tx: tx.timestamp, reverse=True)
        if limit is not None:
            merged = merged[:limit]
        return merged

    async def find_unreconciled(self) -> list[Transaction]:
        """Failed transactions whose debit landed without its credit."""
        docs = await self._store.query(
            TRANSACTIONS,
            filters=[
                FieldFilter(field="status", value=TransactionStatus.FAILED.value),
                FieldFilter(field="debit_applied", value=True),
            ],
            order_by=OrderBy(field="timestamp"),
        )
        return [
            tx for tx in (transaction_from_document(doc) for doc in docs)
            if tx.needs_reconciliation
        ]
