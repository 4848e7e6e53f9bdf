"""
Statistics Aggregator

DESIGN DECISION: Statistics are a pure read over COMPLETED transactions.
Nothing is cached or stored; the same inputs over the same ledger always
produce the same figures.

At no point does this module write to the ledger.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError

from payledger.audit import AuditLogger
from payledger.config import get_settings
from payledger.config.settings import LedgerSettings
from payledger.models.ledger import (
    TRANSACTIONS,
    StatisticsPeriod,
    Transaction,
    TransactionStatistics,
    TransactionStatus,
    TransactionType,
    transaction_from_document,
    utc_now,
)
from payledger.services.storage import FieldFilter, LedgerStore, StorageError


class StatisticsUnavailableError(Exception):
    """Statistics could not be computed because the ledger could not be read."""
    pass


def describe_period(start: datetime, end: datetime) -> str:
    """Format a statistics period for log descriptions."""
    start_day, end_day = start.date(), end.date()
    if start_day == end_day:
        return f"on {start_day.strftime('%d %b %Y')}"
    elif start_day.month == end_day.month and start_day.year == end_day.year:
        return f"in {start_day.strftime('%B %Y')}"
    elif start_day.year == end_day.year:
        return f"from {start_day.strftime('%d %b')} to {end_day.strftime('%d %b %Y')}"
    return f"from {start_day.strftime('%d %b %Y')} to {end_day.strftime('%d %b %Y')}"


class StatisticsAggregator:
    """
    Income/expense summaries for one account.

    GUARANTEES:
    - Only COMPLETED transactions are counted
    - Period bounds are inclusive at both ends
    - A read failure raises instead of reporting zeros
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()

    async def aggregate(
        self,
        account_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> TransactionStatistics:
        """
        Summarize an account's completed transactions in [start, end].

        Incoming amounts count as income and outgoing ones as expenses.
        Both are also added to `categories` under their transaction type,
        so a category total mixes money in and money out.

        Raises:
            StatisticsUnavailableError: If the ledger cannot be read
        """
        period = StatisticsPeriod(start_date=start_date, end_date=end_date)

        try:
            received = await self._completed(account_id, "receiver_id", period)
            sent = await self._completed(account_id, "sender_id", period)
        except (StorageError, ValidationError, asyncio.TimeoutError) as e:
            await self._audit.log_storage_error("statistics query", str(e))
            raise StatisticsUnavailableError(
                f"Could not read transactions for {account_id}: {e}"
            ) from e

        total_income = 0
        total_expenses = 0
        categories: dict[TransactionType, int] = {}

        for tx in received:
            total_income += tx.amount
            categories[tx.transaction_type] = categories.get(tx.transaction_type, 0) + tx.amount

        for tx in sent:
            total_expenses += tx.amount
            categories[tx.transaction_type] = categories.get(tx.transaction_type, 0) + tx.amount

        stats = TransactionStatistics(
            account_id=account_id,
            period=period,
            total_income=total_income,
            total_expenses=total_expenses,
            total_transactions=len(received) + len(sent),
            categories=categories,
        )

        await self._audit.log_statistics_computed(
            account_id=account_id,
            total_transactions=stats.total_transactions,
            period_description=describe_period(period.start_date, period.end_date),
        )
        return stats

    async def recent(
        self,
        account_id: str,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TransactionStatistics:
        """Statistics for the last `days` days (default from settings)."""
        days = days if days is not None else self._settings.recent_statistics_days
        end = now or utc_now()
        return await self.aggregate(account_id, end - timedelta(days=days), end)

    async def monthly(
        self,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> TransactionStatistics:
        """Statistics for the calendar month containing `now`."""
        now = now or utc_now()
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            next_month = start.replace(year=start.year + 1, month=1)
        else:
            next_month = start.replace(month=start.month + 1)
        return await self.aggregate(
            account_id, start, next_month - timedelta(microseconds=1)
        )

    async def _completed(
        self,
        account_id: str,
        side: str,
        period: StatisticsPeriod,
    ) -> list[Transaction]:
        docs = await asyncio.wait_for(
            self._store.query(
                TRANSACTIONS,
                filters=[
                    FieldFilter(field=side, value=account_id),
                    FieldFilter(field="status", value=TransactionStatus.COMPLETED.value),
                    FieldFilter(field="timestamp", op=">=", value=period.start_date),
                    FieldFilter(field="timestamp", op="<=", value=period.end_date),
                ],
            ),
            timeout=self._settings.store_timeout_seconds,
        )
        return [transaction_from_document(doc) for doc in docs]
