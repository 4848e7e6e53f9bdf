"""
Transfer Engine

Validates and settles a funds movement between two accounts.

DESIGN DECISION: The ledger store has no multi-document transaction, so a
transfer is settled in three phases:

1. RECORD   - insert the Transaction as PENDING (its id correlates everything)
2. MUTATE   - debit the sender, THEN credit the receiver; the credit is
              never attempted unless the debit is known to have succeeded
3. SETTLE   - write COMPLETED, or FAILED together with which balance
              changes were applied

Nothing is reversed automatically. The one partial state this can leave
behind is "debit applied, credit not applied", and the FAILED record says
exactly that so reconciliation can act on it.

CONCURRENCY:
- Every balance write is a compare-and-set on the (balance, version) pair
  that was read. A concurrent change makes the store reject the write and
  the read-modify-write is retried, so no update is ever lost.
- Every store call is bounded by a timeout; a timeout fails that phase.
- The PENDING insert and everything after it run in a shielded task. A
  caller that stops waiting does not stop a recorded transfer from
  reaching a terminal status.
- A transfer with an idempotency key is recorded under an id derived from
  (sender, key), and the insert fails if that id exists. Of two
  overlapping submissions only one gets recorded; the other is answered
  from the existing record.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID, uuid5

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from payledger.audit import AuditLogger, create_correlation_id
from payledger.config import get_settings
from payledger.config.settings import LedgerSettings
from payledger.models.ledger import (
    ACCOUNTS,
    TRANSACTIONS,
    Account,
    Transaction,
    TransactionStatus,
    TransferErrorCode,
    TransferRequest,
    TransferResult,
    account_from_document,
    transaction_from_document,
    utc_now,
)
from payledger.services.storage import (
    ConflictError,
    DuplicateError,
    FieldFilter,
    LedgerStore,
    NotFoundError,
    StorageError,
    StorageTimeoutError,
)


MAX_DESCRIPTION_LENGTH = 500

# Namespace for transaction ids derived from idempotency keys
IDEMPOTENCY_NAMESPACE = UUID("8f1d2c3a-5b6e-4f70-9a81-b2c3d4e5f607")


class TransferError(Exception):
    """Base exception for a transfer that cannot go ahead."""

    code = TransferErrorCode.PROCESSING_FAILED

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidAmountError(TransferError):
    code = TransferErrorCode.INVALID_AMOUNT


class InvalidDescriptionError(TransferError):
    code = TransferErrorCode.INVALID_DESCRIPTION


class SelfTransferError(TransferError):
    code = TransferErrorCode.SELF_TRANSFER


class AccountNotFoundError(TransferError):
    code = TransferErrorCode.ACCOUNT_NOT_FOUND


class InsufficientFundsError(TransferError):
    code = TransferErrorCode.INSUFFICIENT_FUNDS


class StoreUnavailableError(TransferError):
    code = TransferErrorCode.STORE_UNAVAILABLE


class MonotonicClock:
    """UTC clock whose readings strictly increase, for transaction ordering."""

    def __init__(self, now: Callable[[], datetime] = utc_now):
        self._now = now
        self._last: Optional[datetime] = None

    def __call__(self) -> datetime:
        current = self._now()
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


def _retryable_status_write(exc: BaseException) -> bool:
    # Conflict/not-found mean the record changed under us; retrying won't help
    return isinstance(exc, StorageError) and not isinstance(
        exc, (ConflictError, NotFoundError)
    )


def idempotent_transaction_id(sender_id: str, idempotency_key: str) -> str:
    """Transaction id every submission of (sender, key) is recorded under."""
    return uuid5(IDEMPOTENCY_NAMESPACE, f"{sender_id}\n{idempotency_key}").hex


class TransferEngine:
    """
    Executes transfers against a ledger store.

    This is the only component that writes Account.balance and
    Transaction.status.

    GUARANTEES:
    - Validation failures write nothing
    - A transfer that was recorded always ends COMPLETED or FAILED
      (or is picked up by resolve_stale_pending if the store was down)
    - No balance ever goes below zero
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()
        self._clock = clock or MonotonicClock()
        self._tasks: set[asyncio.Task] = set()
        self._settling: set[str] = set()

    @property
    def in_flight(self) -> set[str]:
        """Ids of transactions currently being settled by this engine."""
        return set(self._settling)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def transfer(
        self,
        request: TransferRequest,
        correlation_id: Optional[UUID] = None,
    ) -> TransferResult:
        """
        Move `request.amount` from sender to receiver.

        Returns:
            TransferResult with the transaction id on success, or a
            failure carrying a TransferErrorCode and a readable reason.
            Business failures are never raised.
        """
        correlation_id = correlation_id or create_correlation_id()

        await self._audit.log_transfer_requested(
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
            amount=request.amount,
            transaction_type=request.transaction_type.value,
            correlation_id=correlation_id,
        )

        try:
            self._validate_request(request)

            if request.idempotency_key:
                existing = await self._find_existing(request)
                if existing is not None:
                    return self._result_for_existing(existing)

            await self._check_accounts(request, correlation_id)
        except TransferError as e:
            return await self._reject(request, e, correlation_id)

        # From the insert on, the caller going away must not stop settlement
        settlement = asyncio.create_task(
            self._record_and_settle(request, correlation_id)
        )
        self._tasks.add(settlement)
        settlement.add_done_callback(self._tasks.discard)
        return await asyncio.shield(settlement)

    async def resolve_stale_pending(
        self,
        older_than: Optional[timedelta] = None,
    ) -> list[str]:
        """
        Fail PENDING transactions nobody is settling any more.

        Covers a settlement whose terminal write never reached the store
        (or a process that died mid-transfer). Which balance changes
        happened is unknown, so both flags stay unset and the record is
        left for reconciliation.

        Returns:
            Ids of the transactions marked FAILED
        """
        if older_than is None:
            older_than = timedelta(seconds=self._settings.stale_pending_after_seconds)
        now = utc_now()
        cutoff = now - older_than

        docs = await self._call(
            "list pending transactions",
            self._store.query(
                TRANSACTIONS,
                filters=[
                    FieldFilter(field="status", value=TransactionStatus.PENDING.value),
                    FieldFilter(field="timestamp", op="<=", value=cutoff),
                ],
            ),
        )

        resolved = []
        for doc in docs:
            transaction_id = doc["id"]
            if transaction_id in self._settling:
                continue
            try:
                await self._call(
                    "expire pending transaction",
                    self._store.update(
                        TRANSACTIONS,
                        transaction_id,
                        {
                            "status": TransactionStatus.FAILED.value,
                            "settled_at": now,
                            "failure_reason": "Settlement did not complete; needs reconciliation",
                        },
                        expected={"status": TransactionStatus.PENDING.value},
                    ),
                )
            except ConflictError:
                # Settled in the meantime
                continue
            resolved.append(transaction_id)
            await self._audit.log_stale_pending_resolved(
                transaction_id=transaction_id,
                age_seconds=(now - doc["timestamp"]).total_seconds(),
            )
        return resolved

    async def drain(self) -> None:
        """Wait for every in-flight settlement to reach a terminal status."""
        pending = list(self._tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Validation (nothing is written here)
    # -------------------------------------------------------------------------

    def _validate_request(self, request: TransferRequest) -> None:
        if request.amount <= 0:
            raise InvalidAmountError("Amount must be greater than 0")
        if not request.description:
            raise InvalidDescriptionError("Description is required")
        if len(request.description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidDescriptionError(
                f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
            )
        if request.sender_id == request.receiver_id:
            raise SelfTransferError("Cannot transfer to the same account")

    async def _check_accounts(
        self,
        request: TransferRequest,
        correlation_id: UUID,
    ) -> None:
        """Sender exists and can cover the amount; receiver exists."""
        try:
            sender = await self._load_account(request.sender_id)
            if sender is None:
                raise AccountNotFoundError("Sender account not found")
            # Re-checked at debit time; this read may already be stale
            if sender.balance < request.amount:
                raise InsufficientFundsError("Insufficient funds")

            receiver = await self._load_account(request.receiver_id)
            if receiver is None:
                raise AccountNotFoundError("Receiver account not found")
        except StorageError as e:
            await self._audit.log_storage_error("account lookup", str(e), correlation_id)
            raise StoreUnavailableError("Ledger temporarily unavailable") from e

    async def _find_existing(self, request: TransferRequest) -> Optional[Transaction]:
        """Earlier transaction submitted by this sender under the same key."""
        try:
            docs = await self._call(
                "idempotency lookup",
                self._store.query(
                    TRANSACTIONS,
                    filters=[
                        FieldFilter(field="idempotency_key", value=request.idempotency_key),
                        FieldFilter(field="sender_id", value=request.sender_id),
                    ],
                    limit=1,
                ),
            )
            return transaction_from_document(docs[0]) if docs else None
        except (StorageError, ValidationError) as e:
            raise StoreUnavailableError("Ledger temporarily unavailable") from e

    @staticmethod
    def _result_for_existing(existing: Transaction) -> TransferResult:
        if existing.status is TransactionStatus.COMPLETED:
            return TransferResult.ok(existing.id)
        if existing.status is TransactionStatus.FAILED:
            reason = existing.failure_reason or "unknown reason"
            return TransferResult.failure(
                TransferErrorCode.PROCESSING_FAILED,
                f"Transaction processing failed: {reason}",
                transaction_id=existing.id,
            )
        return TransferResult.failure(
            TransferErrorCode.TRANSFER_IN_PROGRESS,
            "Transfer is already being processed",
            transaction_id=existing.id,
        )

    # -------------------------------------------------------------------------
    # Phase 1 - record
    # -------------------------------------------------------------------------

    async def _create_pending(
        self,
        request: TransferRequest,
        correlation_id: UUID,
    ) -> str:
        fields = {
            "sender_id": request.sender_id,
            "receiver_id": request.receiver_id,
            "amount": request.amount,
            "description": request.description,
            "transaction_type": request.transaction_type.value,
            "timestamp": self._clock(),
            "status": TransactionStatus.PENDING.value,
            "idempotency_key": request.idempotency_key,
        }
        doc_id = None
        if request.idempotency_key:
            doc_id = idempotent_transaction_id(request.sender_id, request.idempotency_key)
        try:
            return await self._call(
                "insert transaction",
                self._store.insert(TRANSACTIONS, fields, doc_id=doc_id),
            )
        except DuplicateError:
            raise
        except StorageError as e:
            await self._audit.log_storage_error("insert transaction", str(e), correlation_id)
            raise StoreUnavailableError("Ledger temporarily unavailable") from e

    async def _reject(
        self,
        request: TransferRequest,
        error: TransferError,
        correlation_id: UUID,
    ) -> TransferResult:
        await self._audit.log_transfer_rejected(
            sender_id=request.sender_id,
            error_code=error.code.value,
            reason=error.message,
            correlation_id=correlation_id,
        )
        return TransferResult.failure(error.code, error.message)

    async def _record_and_settle(
        self,
        request: TransferRequest,
        correlation_id: UUID,
    ) -> TransferResult:
        try:
            transaction_id = await self._create_pending(request, correlation_id)
        except DuplicateError:
            # Lost the race to an overlapping submission with the same key
            return await self._answer_duplicate(request, correlation_id)
        except TransferError as e:
            return await self._reject(request, e, correlation_id)

        self._settling.add(transaction_id)
        try:
            await self._audit.log_transaction_pending(
                transaction_id=transaction_id,
                amount=request.amount,
                correlation_id=correlation_id,
            )
            return await self._settle(transaction_id, request, correlation_id)
        finally:
            self._settling.discard(transaction_id)

    async def _answer_duplicate(
        self,
        request: TransferRequest,
        correlation_id: UUID,
    ) -> TransferResult:
        doc_id = idempotent_transaction_id(request.sender_id, request.idempotency_key)
        try:
            doc = await self._call("read transaction", self._store.get(TRANSACTIONS, doc_id))
            if doc is None:
                raise StorageError(f"{TRANSACTIONS}/{doc_id} vanished after a duplicate insert")
            existing = transaction_from_document(doc)
        except (StorageError, ValidationError) as e:
            await self._audit.log_storage_error("idempotency lookup", str(e), correlation_id)
            return await self._reject(
                request,
                StoreUnavailableError("Ledger temporarily unavailable"),
                correlation_id,
            )
        return self._result_for_existing(existing)

    # -------------------------------------------------------------------------
    # Phases 2 and 3 - mutate and settle
    # -------------------------------------------------------------------------

    async def _settle(
        self,
        transaction_id: str,
        request: TransferRequest,
        correlation_id: UUID,
    ) -> TransferResult:
        # None = outcome unknown (the write may or may not have landed)
        debit_applied: Optional[bool] = False
        credit_applied: Optional[bool] = False
        failure: Optional[str] = None

        try:
            debit_applied = None
            await self._apply_delta(
                request.sender_id, -request.amount, transaction_id, correlation_id
            )
            debit_applied = True

            credit_applied = None
            await self._apply_delta(
                request.receiver_id, request.amount, transaction_id, correlation_id
            )
            credit_applied = True
        except (InsufficientFundsError, AccountNotFoundError, ConflictError, NotFoundError) as e:
            # Rejected before the write: the phase in flight did not apply
            if debit_applied is None:
                debit_applied = False
            if credit_applied is None:
                credit_applied = False
            if isinstance(e, InsufficientFundsError):
                failure = "insufficient funds at settlement"
            elif isinstance(e, AccountNotFoundError):
                failure = e.message.lower()
            elif isinstance(e, NotFoundError):
                failure = "account was removed during settlement"
            else:
                failure = "account balance kept changing concurrently"
        except StorageError as e:
            failure = f"store error: {e}"
            await self._audit.log_storage_error("apply balance change", str(e), correlation_id)
        except Exception as e:
            # Still must reach a terminal status; the record carries the error
            failure = f"unexpected error: {e}"
            await self._audit.log_storage_error("apply balance change", repr(e), correlation_id)

        if failure is None:
            final = await self._finalize(
                transaction_id,
                TransactionStatus.COMPLETED,
                {"debit_applied": True, "credit_applied": True},
                correlation_id,
            )
            if final is TransactionStatus.COMPLETED:
                await self._audit.log_transfer_completed(
                    transaction_id=transaction_id,
                    amount=request.amount,
                    correlation_id=correlation_id,
                )
                return TransferResult.ok(transaction_id)
            failure = "settlement could not be recorded"
            debit_applied, credit_applied = True, True
        else:
            await self._finalize(
                transaction_id,
                TransactionStatus.FAILED,
                {
                    "debit_applied": debit_applied,
                    "credit_applied": credit_applied,
                    "failure_reason": failure[:MAX_DESCRIPTION_LENGTH],
                },
                correlation_id,
            )

        await self._audit.log_transfer_failed(
            transaction_id=transaction_id,
            reason=failure,
            debit_applied=debit_applied,
            credit_applied=credit_applied,
            correlation_id=correlation_id,
        )
        return TransferResult.failure(
            TransferErrorCode.PROCESSING_FAILED,
            f"Transaction processing failed: {failure}",
            transaction_id=transaction_id,
        )

    async def _apply_delta(
        self,
        account_id: str,
        delta: int,
        transaction_id: str,
        correlation_id: UUID,
    ) -> int:
        """
        Add `delta` to an account balance as a conditional write.

        Retries the whole read-modify-write when the store reports the
        account changed between our read and our write.

        Returns:
            The new balance
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ConflictError),
            stop=stop_after_attempt(self._settings.balance_update_max_attempts),
            wait=wait_random_exponential(
                multiplier=self._settings.retry_wait_min_seconds,
                max=self._settings.retry_wait_max_seconds,
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    await self._audit.log_balance_conflict(
                        account_id=account_id,
                        transaction_id=transaction_id,
                        attempt=attempt_number,
                        correlation_id=correlation_id,
                    )

                doc = await self._call("read account", self._store.get(ACCOUNTS, account_id))
                if doc is None:
                    raise AccountNotFoundError(
                        "Sender account not found" if delta < 0 else "Receiver account not found"
                    )
                account = self._parse_account(doc)
                new_balance = account.balance + delta
                if new_balance < 0:
                    raise InsufficientFundsError("Insufficient funds")

                await self._call(
                    "update balance",
                    self._store.update(
                        ACCOUNTS,
                        account_id,
                        {"balance": new_balance, "version": account.version + 1},
                        # Compare against the stored values, not model defaults
                        expected={"balance": doc.get("balance"), "version": doc.get("version")},
                    ),
                )

        await self._audit.log_balance_changed(
            account_id=account_id,
            transaction_id=transaction_id,
            delta=delta,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        return new_balance

    async def _finalize(
        self,
        transaction_id: str,
        status: TransactionStatus,
        fields: dict[str, Any],
        correlation_id: UUID,
    ) -> Optional[TransactionStatus]:
        """
        Move a PENDING transaction to a terminal status, exactly once.

        Returns:
            The status the record ends with (which may differ from `status`
            if something else settled it first), or None if it could not
            be written at all.
        """
        update = {"status": status.value, "settled_at": utc_now(), **fields}
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_retryable_status_write),
                stop=stop_after_attempt(self._settings.status_update_max_attempts),
                wait=wait_random_exponential(
                    multiplier=self._settings.retry_wait_min_seconds,
                    max=self._settings.retry_wait_max_seconds,
                ),
                reraise=True,
            ):
                with attempt:
                    await self._call(
                        "settle transaction",
                        self._store.update(
                            TRANSACTIONS,
                            transaction_id,
                            update,
                            expected={"status": TransactionStatus.PENDING.value},
                        ),
                    )
            return status
        except ConflictError:
            # Already terminal; an earlier attempt may have landed after a timeout
            try:
                doc = await self._call(
                    "read transaction", self._store.get(TRANSACTIONS, transaction_id)
                )
            except StorageError:
                doc = None
            if doc is not None:
                return TransactionStatus(doc["status"])
            return None
        except StorageError as e:
            await self._audit.log_settlement_unresolved(
                transaction_id=transaction_id,
                intended_status=status.value,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None

    # -------------------------------------------------------------------------
    # Store helpers
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Await a store operation, failing it after the configured timeout."""
        timeout = self._settings.store_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise StorageTimeoutError(f"{operation} timed out after {timeout}s")

    async def _load_account(self, account_id: str) -> Optional[Account]:
        if not account_id:
            return None
        doc = await self._call("read account", self._store.get(ACCOUNTS, account_id))
        return self._parse_account(doc) if doc is not None else None

    @staticmethod
    def _parse_account(doc: dict[str, Any]) -> Account:
        try:
            return account_from_document(doc)
        except ValidationError as e:
            raise StorageError(f"Malformed account document {doc.get('id')!r}: {e}")
