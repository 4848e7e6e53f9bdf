"""
In-Memory Ledger Store

Dict-backed implementation of the ledger store, used for tests and local
runs without Google credentials.

Conditional updates and inserts under a caller-chosen id are atomic here
because the check and the write run with no suspension point between
them; asyncio cannot interleave another coroutine in that window.

`latency` makes every operation yield to the event loop (optionally
sleeping) before touching data, which is how concurrent transfers get to
interleave the way they would against a networked store.
"""

import asyncio
import copy
from typing import Any, Mapping, Optional, Sequence
from uuid import uuid4

from payledger.services.storage.interface import (
    Document,
    DuplicateError,
    FieldFilter,
    LedgerStore,
    NotFoundError,
    OrderBy,
    check_expected,
)


class InMemoryLedgerStore(LedgerStore):
    """Ledger store held in process memory."""

    def __init__(self, latency: Optional[float] = None):
        self._collections: dict[str, dict[str, Document]] = {}
        self._latency = latency

    async def _io(self) -> None:
        if self._latency is not None:
            await asyncio.sleep(self._latency)

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def put(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> Document:
        """
        Seed a document under a known id.

        Accounts are registered outside the ledger, so tests and local
        setups create them through here rather than through insert().
        """
        docs = self._collection(collection)
        if doc_id in docs:
            raise DuplicateError(f"{collection}/{doc_id} already exists")
        doc = copy.deepcopy(dict(fields))
        doc["id"] = doc_id
        docs[doc_id] = doc
        return copy.deepcopy(doc)

    def snapshot(self, collection: str) -> list[Document]:
        """Synchronous copy of a whole collection (for inspection)."""
        return [copy.deepcopy(doc) for doc in self._collection(collection).values()]

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        await self._io()
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert(
        self,
        collection: str,
        fields: Mapping[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        await self._io()
        docs = self._collection(collection)
        if doc_id is None:
            doc_id = uuid4().hex
        elif doc_id in docs:
            raise DuplicateError(f"{collection}/{doc_id} already exists")
        doc = copy.deepcopy({k: v for k, v in fields.items() if k != "id"})
        doc["id"] = doc_id
        docs[doc_id] = doc
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> None:
        await self._io()
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        # No await between check and write
        check_expected(collection, doc_id, doc, expected)
        doc.update(copy.deepcopy({k: v for k, v in fields.items() if k != "id"}))

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        await self._io()
        results = [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if all(f.matches(doc) for f in filters)
        ]
        if order_by is not None:
            results = order_by.apply(results)
        if limit is not None:
            results = results[:limit]
        return results
