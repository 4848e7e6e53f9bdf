"""
Abstract Ledger Store Interface

DESIGN DECISION: The ledger talks to storage through a generic document
interface (get / insert / update / query by collection and id).
This allows us to:
1. Run on Google Sheets, a document database, or in memory for tests
2. Keep the transfer engine decoupled from any storage engine
3. Keep business logic decoupled from storage implementation

CONSTRAINT: No multi-document transaction is part of this contract.
The one concurrency primitive is the `expected` precondition on update,
which makes a single-document write conditional on what was read.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, Field


Document = dict[str, Any]


class FieldFilter(BaseModel):
    """A single field condition in a store query."""

    field: str = Field(..., min_length=1)
    op: str = Field(
        default="==",
        pattern="^(==|!=|<|<=|>|>=)$",
    )
    value: Any = None

    def matches(self, doc: Mapping[str, Any]) -> bool:
        """Evaluate this filter against a document in Python."""
        actual = doc.get(self.field)
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        # Ordering comparisons never match a missing field
        if actual is None or self.value is None:
            return False
        if self.op == "<":
            return actual < self.value
        if self.op == "<=":
            return actual <= self.value
        if self.op == ">":
            return actual > self.value
        return actual >= self.value


class OrderBy(BaseModel):
    """Sort order for a store query."""

    field: str = Field(..., min_length=1)
    descending: bool = False

    def apply(self, docs: list[Document]) -> list[Document]:
        """Sort documents; those missing the field go last either way."""
        present = [d for d in docs if d.get(self.field) is not None]
        missing = [d for d in docs if d.get(self.field) is None]
        present.sort(key=lambda d: d[self.field], reverse=self.descending)
        return present + missing


class LedgerStore(ABC):
    """
    Abstract interface for ledger document storage.

    Any storage implementation (Google Sheets, Firestore, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """
        Retrieve a document by id.

        Returns:
            The document (including its "id" key) if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert(
        self,
        collection: str,
        fields: Mapping[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        """
        Create a new document.

        Args:
            collection: Collection name
            fields: Document fields (an "id" key, if present, is ignored)
            doc_id: Id to create the document under. The insert then only
                    succeeds if no document has that id; the check and the
                    write are one atomic step.

        Returns:
            The document id (store-assigned when doc_id is None)

        Raises:
            DuplicateError: If doc_id is already taken
            StorageError: If insert fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Update some fields of an existing document.

        Args:
            collection: Collection name
            doc_id: Document id
            fields: Fields to overwrite
            expected: Field values the stored document must still have.
                      The check and the write are one atomic step.

        Raises:
            NotFoundError: If the document doesn't exist
            ConflictError: If a precondition in `expected` doesn't hold
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """
        List documents matching every filter.

        Args:
            collection: Collection name
            filters: Field conditions, all of which must hold
            order_by: Optional sort order
            limit: Maximum number of results

        Returns:
            List of matching documents
        """
        pass


def check_expected(
    collection: str,
    doc_id: str,
    current: Mapping[str, Any],
    expected: Optional[Mapping[str, Any]],
) -> None:
    """Raise ConflictError if `current` no longer satisfies `expected`."""
    if not expected:
        return
    for field, value in expected.items():
        if current.get(field) != value:
            raise ConflictError(
                f"{collection}/{doc_id}: expected {field}={value!r}, "
                f"found {current.get(field)!r}"
            )


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConflictError(StorageError):
    """A conditional update found the document changed since it was read."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class StorageTimeoutError(StorageError):
    """Storage did not answer within the allowed time."""
    pass
