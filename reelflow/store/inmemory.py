"""In-memory implementation of the document store."""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List

from ..models import new_id
from .base import Document, DocumentStore, DocumentUpdate, WriteResult, matches


class InMemoryDocumentStore(DocumentStore):
    """Store documents in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def get(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def query(self, collection: str, field: str, value: Any) -> list[Document]:
        return [
            copy.deepcopy(doc)
            for doc in self._collections[collection].values()
            if doc.get(field) == value
        ]

    async def list_all(self, collection: str) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._collections[collection].values()]

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        async with self._lock:
            self._collections[collection][doc_id] = {**copy.deepcopy(data), "id": doc_id}

    async def set_many(self, collection: str, docs: List[Document]) -> None:
        async with self._lock:
            for doc in docs:
                self._collections[collection][doc["id"]] = copy.deepcopy(doc)

    async def add(self, collection: str, data: Document) -> str:
        doc_id = data.get("id") or new_id()
        await self.set(collection, doc_id, data)
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expected: Document | None = None,
    ) -> WriteResult | None:
        async with self._lock:
            return self._apply(collection, DocumentUpdate(doc_id, fields, expected))

    async def batch_update(
        self, collection: str, updates: List[DocumentUpdate]
    ) -> list[WriteResult]:
        async with self._lock:
            results = [self._apply(collection, update) for update in updates]
        return [r for r in results if r is not None]

    def _apply(self, collection: str, update: DocumentUpdate) -> WriteResult | None:
        current = self._collections[collection].get(update.doc_id)
        if current is None or not matches(current, update.expected):
            return None
        before = copy.deepcopy(current)
        current.update(copy.deepcopy(update.fields))
        return WriteResult(
            collection=collection,
            doc_id=update.doc_id,
            before=before,
            after=copy.deepcopy(current),
        )
