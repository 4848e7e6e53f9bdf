"""Tests for the audit logger."""

import asyncio

from payledger.audit import AuditLogger, create_correlation_id
from payledger.models.events import LedgerEventBuilder


class BrokenLogger:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RuntimeError("log handler down")
        return fail


class TestAuditLogger:

    def test_log_succeeds(self):
        logger = AuditLogger()
        event = LedgerEventBuilder.transaction_pending("tx-1", 300, create_correlation_id())

        assert asyncio.run(logger.log(event)) is True

    def test_broken_handler_does_not_raise(self):
        """A failing log handler must not abort a settlement."""
        logger = AuditLogger()
        logger._logger = BrokenLogger()
        event = LedgerEventBuilder.storage_error("insert transaction", "timeout")

        assert asyncio.run(logger.log(event)) is False

    def test_correlation_ids_unique(self):
        assert create_correlation_id() != create_correlation_id()
