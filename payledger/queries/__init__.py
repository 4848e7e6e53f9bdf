"""Read-only queries: statistics and ledger history."""

from payledger.queries.history import LedgerReader
from payledger.queries.statistics import (
    StatisticsAggregator,
    StatisticsUnavailableError,
    describe_period,
)

__all__ = [
    "LedgerReader",
    "StatisticsAggregator",
    "StatisticsUnavailableError",
    "describe_period",
]
