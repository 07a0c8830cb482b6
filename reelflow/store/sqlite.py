"""SQLite implementation of the document store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, List

from ..models import new_id
from .base import Document, DocumentStore, DocumentUpdate, WriteResult, matches


class SQLiteDocumentStore(DocumentStore):
    """Persist documents as JSON rows in a single SQLite table."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            )
            """
        )

    # ------------------------------------------------------------------
    # Helper methods
    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    def _write_many(self, collection: str, docs: List[Document]) -> None:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                self._conn.executemany(
                    "INSERT OR REPLACE INTO documents (collection, id, data) VALUES (?, ?, ?)",
                    [(collection, doc["id"], json.dumps(doc)) for doc in docs],
                )
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def _apply(self, collection: str, update: DocumentUpdate) -> WriteResult | None:
        # Caller holds self._lock. BEGIN IMMEDIATE keeps the read-check-write
        # atomic against other processes sharing the database file.
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            row = self._conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, update.doc_id),
            ).fetchone()
            if row is None:
                self._conn.execute("COMMIT")
                return None
            before = json.loads(row["data"])
            if not matches(before, update.expected):
                self._conn.execute("COMMIT")
                return None
            after = {**before, **update.fields}
            self._conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
                (json.dumps(after), collection, update.doc_id),
            )
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")
        return WriteResult(
            collection=collection, doc_id=update.doc_id, before=before, after=after
        )

    def _apply_locked(self, collection: str, updates: List[DocumentUpdate]) -> list[WriteResult]:
        with self._lock:
            results = [self._apply(collection, update) for update in updates]
        return [r for r in results if r is not None]

    # ------------------------------------------------------------------
    # Store API
    async def get(self, collection: str, doc_id: str) -> Document | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            collection,
            doc_id,
        )
        return json.loads(row["data"]) if row else None

    async def query(self, collection: str, field: str, value: Any) -> list[Document]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM documents WHERE collection = ? ORDER BY rowid",
            collection,
        )
        docs = [json.loads(r["data"]) for r in rows]
        return [doc for doc in docs if doc.get(field) == value]

    async def list_all(self, collection: str) -> list[Document]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM documents WHERE collection = ? ORDER BY rowid",
            collection,
        )
        return [json.loads(r["data"]) for r in rows]

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        await asyncio.to_thread(self._write_many, collection, [{**data, "id": doc_id}])

    async def set_many(self, collection: str, docs: List[Document]) -> None:
        await asyncio.to_thread(self._write_many, collection, docs)

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
        results = await asyncio.to_thread(
            self._apply_locked, collection, [DocumentUpdate(doc_id, fields, expected)]
        )
        return results[0] if results else None

    async def batch_update(
        self, collection: str, updates: List[DocumentUpdate]
    ) -> list[WriteResult]:
        return await asyncio.to_thread(self._apply_locked, collection, updates)

    def close(self) -> None:
        self._conn.close()
