"""Store wrapper emitting change events for workflow step updates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List

from ..constants import WORKFLOW_STEPS
from ..models import StepChange
from .base import Document, DocumentStore, DocumentUpdate, WriteResult

if TYPE_CHECKING:
    from ..triggers import ChangeSink

logger = logging.getLogger(__name__)


class ObservedStore(DocumentStore):
    """Delegate to ``inner`` and emit a ``StepChange`` per applied step update.

    Reads and creates pass straight through; only updates of the workflow
    step collection are observed, mirroring a document-update trigger.
    """

    def __init__(self, inner: DocumentStore, sink: "ChangeSink") -> None:
        self.inner = inner
        self.sink = sink

    async def get(self, collection: str, doc_id: str) -> Document | None:
        return await self.inner.get(collection, doc_id)

    async def query(self, collection: str, field: str, value: Any) -> list[Document]:
        return await self.inner.query(collection, field, value)

    async def list_all(self, collection: str) -> list[Document]:
        return await self.inner.list_all(collection)

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        await self.inner.set(collection, doc_id, data)

    async def set_many(self, collection: str, docs: List[Document]) -> None:
        await self.inner.set_many(collection, docs)

    async def add(self, collection: str, data: Document) -> str:
        return await self.inner.add(collection, data)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expected: Document | None = None,
    ) -> WriteResult | None:
        result = await self.inner.update(collection, doc_id, fields, expected)
        if result is not None:
            await self._emit([result])
        return result

    async def batch_update(
        self, collection: str, updates: List[DocumentUpdate]
    ) -> list[WriteResult]:
        results = await self.inner.batch_update(collection, updates)
        await self._emit(results)
        return results

    async def _emit(self, results: List[WriteResult]) -> None:
        for result in results:
            if result.collection != WORKFLOW_STEPS:
                continue
            change = StepChange(
                step_id=result.doc_id, before=result.before, after=result.after
            )
            logger.debug(f"Emitting change for step {result.doc_id}")
            await self.sink.emit(change)
