"""PostgreSQL implementation of the document store."""

from __future__ import annotations

import json
from typing import Any, List

import asyncpg

from ..models import new_id
from .base import Document, DocumentStore, DocumentUpdate, WriteResult, matches


class PostgresDocumentStore(DocumentStore):
    """Persist documents as JSONB rows using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                PRIMARY KEY (collection, id)
            )
            """
        )

    async def _apply(
        self, conn: asyncpg.Connection, collection: str, update: DocumentUpdate
    ) -> WriteResult | None:
        async with conn.transaction():
            row = await conn.fetchrow(
                "SELECT data FROM documents WHERE collection = $1 AND id = $2 FOR UPDATE",
                collection,
                update.doc_id,
            )
            if row is None:
                return None
            before = json.loads(row["data"])
            if not matches(before, update.expected):
                return None
            after = {**before, **update.fields}
            await conn.execute(
                "UPDATE documents SET data = $1::jsonb WHERE collection = $2 AND id = $3",
                json.dumps(after),
                collection,
                update.doc_id,
            )
        return WriteResult(
            collection=collection, doc_id=update.doc_id, before=before, after=after
        )

    # ------------------------------------------------------------------
    async def get(self, collection: str, doc_id: str) -> Document | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT data FROM documents WHERE collection = $1 AND id = $2",
                collection,
                doc_id,
            )
        finally:
            await conn.close()
        return json.loads(row["data"]) if row else None

    async def query(self, collection: str, field: str, value: Any) -> list[Document]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT data FROM documents WHERE collection = $1 AND data @> $2::jsonb ORDER BY created_at",
                collection,
                json.dumps({field: value}),
            )
        finally:
            await conn.close()
        return [json.loads(r["data"]) for r in rows]

    async def list_all(self, collection: str) -> list[Document]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT data FROM documents WHERE collection = $1 ORDER BY created_at",
                collection,
            )
        finally:
            await conn.close()
        return [json.loads(r["data"]) for r in rows]

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        await self.set_many(collection, [{**data, "id": doc_id}])

    async def set_many(self, collection: str, docs: List[Document]) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO documents (collection, id, data) VALUES ($1, $2, $3::jsonb)
                    ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data
                    """,
                    [(collection, doc["id"], json.dumps(doc)) for doc in docs],
                )
        finally:
            await conn.close()

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
        conn = await self._connect()
        try:
            return await self._apply(
                conn, collection, DocumentUpdate(doc_id, fields, expected)
            )
        finally:
            await conn.close()

    async def batch_update(
        self, collection: str, updates: List[DocumentUpdate]
    ) -> list[WriteResult]:
        conn = await self._connect()
        results: list[WriteResult] = []
        try:
            for update in updates:
                result = await self._apply(conn, collection, update)
                if result is not None:
                    results.append(result)
        finally:
            await conn.close()
        return results
