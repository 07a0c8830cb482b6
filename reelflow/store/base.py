"""Document store abstraction used by the compiler, listener and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

Document = Dict[str, Any]


@dataclass(frozen=True)
class DocumentUpdate:
    """A field-level update of one document.

    When ``expected`` is given the update is only applied if every listed
    field currently holds the expected value.
    """

    doc_id: str
    fields: Document
    expected: Optional[Document] = None


@dataclass(frozen=True)
class WriteResult:
    """Snapshot pair of an applied document update."""

    collection: str
    doc_id: str
    before: Document = field(default_factory=dict)
    after: Document = field(default_factory=dict)


def matches(doc: Document, expected: Optional[Document]) -> bool:
    """Return ``True`` when ``doc`` satisfies the ``expected`` field values."""
    if not expected:
        return True
    return all(doc.get(key) == value for key, value in expected.items())


class DocumentStore(Protocol):
    """Protocol for document persistence backends.

    Writes are atomic per document; nothing is transactional across
    documents, including the members of one ``batch_update``.
    """

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Return the document or ``None``."""

    async def query(self, collection: str, field: str, value: Any) -> list[Document]:
        """Return every document whose ``field`` equals ``value``."""

    async def list_all(self, collection: str) -> list[Document]:
        """Return every document of ``collection``."""

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or overwrite a document."""

    async def set_many(self, collection: str, docs: List[Document]) -> None:
        """Create or overwrite several documents keyed by their ``id``."""

    async def add(self, collection: str, data: Document) -> str:
        """Append a document, generating an id when ``data`` has none."""

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        expected: Document | None = None,
    ) -> WriteResult | None:
        """Merge ``fields`` into a document.

        Returns ``None`` when the document is missing or ``expected`` does
        not match.
        """

    async def batch_update(
        self, collection: str, updates: List[DocumentUpdate]
    ) -> list[WriteResult]:
        """Apply several updates; returns the ones that were applied."""
