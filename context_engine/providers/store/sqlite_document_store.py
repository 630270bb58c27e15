"""SQLite-backed document store with tenant-scoped vector search.

Layer: Providers (concrete adapter implementing :class:`IDocumentStore`).

Database: ``data/context_engine.db`` with four tables:

* ``chatbots``       -- tenant records and their owning principal
* ``contexts``       -- submitted knowledge items
* ``embeddings``     -- chunk rows with JSON-encoded vectors
* ``vector_indexes`` -- named vector indexes (name, vector path, dimension)

``embeddings.tenant_id`` is denormalized from the parent Context so the
search filter never needs a join.  Vectors are ranked in-process with
numpy; each query scans only the rows matching its filter.

Uses ``aiosqlite`` for async I/O and ``PRAGMA journal_mode=WAL`` for
concurrent read safety.  Every ``sqlite3`` error leaves this module as a
:class:`StorageError` (or :class:`SearchUnavailableError` from
:meth:`vector_search`).
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import numpy as np
import structlog

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.models.context import (
    Chatbot,
    Context,
    ContextMetadata,
    LinkMetadata,
    parse_metadata,
)
from context_engine.models.rag import (
    ChunkMetadata,
    EmbeddingRecord,
    EmbeddingStats,
    SearchResult,
    VectorSearchQuery,
)
from context_engine.utils.errors import (
    DimensionMismatchError,
    SearchUnavailableError,
    StorageError,
)
from context_engine.utils.similarity import cosine_similarity_matrix

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/context_engine.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_CHATBOTS_TABLE = """\
CREATE TABLE IF NOT EXISTS chatbots (
    tenant_id   TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL,
    name        TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL
);
"""

_CREATE_CONTEXTS_TABLE = """\
CREATE TABLE IF NOT EXISTS contexts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    context_id     TEXT    NOT NULL UNIQUE,
    tenant_id      TEXT    NOT NULL,
    title          TEXT    NOT NULL,
    raw_content    TEXT    NOT NULL,
    content_type   TEXT    NOT NULL,
    metadata       TEXT    NOT NULL,
    url            TEXT,
    embedding_ids  TEXT    NOT NULL DEFAULT '[]',
    size_kb        INTEGER NOT NULL DEFAULT 0,
    routes         TEXT    NOT NULL DEFAULT '[]',
    created_at     TEXT    NOT NULL,
    updated_at     TEXT
);
"""

_CREATE_EMBEDDINGS_TABLE = """\
CREATE TABLE IF NOT EXISTS embeddings (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    embedding_id   TEXT    NOT NULL UNIQUE,
    tenant_id      TEXT    NOT NULL,
    context_id     TEXT    NOT NULL,
    content        TEXT    NOT NULL,
    vector         TEXT    NOT NULL,
    content_type   TEXT    NOT NULL,
    chunk_index    INTEGER NOT NULL,
    total_chunks   INTEGER NOT NULL,
    source_tag     TEXT    NOT NULL,
    metadata       TEXT    NOT NULL,
    created_at     TEXT    NOT NULL
);
"""

_CREATE_VECTOR_INDEXES_TABLE = """\
CREATE TABLE IF NOT EXISTS vector_indexes (
    index_name   TEXT PRIMARY KEY,
    vector_path  TEXT    NOT NULL,
    dimension    INTEGER NOT NULL,
    created_at   TEXT    NOT NULL
);
"""

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_contexts_tenant ON contexts(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_contexts_tenant_url ON contexts(tenant_id, url);",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_tenant ON embeddings(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_context ON embeddings(context_id);",
]

# ── DML ───────────────────────────────────────────────────────────────

_INSERT_INDEX = """\
INSERT OR IGNORE INTO vector_indexes (index_name, vector_path, dimension, created_at)
VALUES (?, ?, ?, ?);
"""

_SELECT_INDEX = "SELECT vector_path, dimension FROM vector_indexes WHERE index_name = ?;"

_INSERT_CHATBOT = """\
INSERT INTO chatbots (tenant_id, owner_id, name, created_at)
VALUES (?, ?, ?, ?);
"""

_SELECT_CHATBOT = "SELECT tenant_id, owner_id, name, created_at FROM chatbots WHERE tenant_id = ?;"

_INSERT_CONTEXT = """\
INSERT INTO contexts (context_id, tenant_id, title, raw_content, content_type, metadata,
                      url, embedding_ids, size_kb, routes, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_CONTEXT_COLUMNS = """\
context_id, tenant_id, title, raw_content, metadata, embedding_ids,
size_kb, routes, created_at, updated_at"""

_SELECT_CONTEXT = f"""\
SELECT {_CONTEXT_COLUMNS}
FROM contexts WHERE context_id = ? AND tenant_id = ?;
"""

_SELECT_CONTEXT_BY_URL = f"""\
SELECT {_CONTEXT_COLUMNS}
FROM contexts WHERE tenant_id = ? AND content_type = 'LINK' AND url = ?
ORDER BY id LIMIT 1;
"""

_SELECT_TENANT_CONTEXTS = f"""\
SELECT {_CONTEXT_COLUMNS}
FROM contexts WHERE tenant_id = ? ORDER BY created_at, id;
"""

_SELECT_STALE_EMPTY_CONTEXTS = f"""\
SELECT {_CONTEXT_COLUMNS}
FROM contexts WHERE embedding_ids = '[]' AND created_at < ? ORDER BY id;
"""

_SELECT_CONTEXT_TENANT = "SELECT tenant_id FROM contexts WHERE context_id = ?;"

_DELETE_CONTEXT = "DELETE FROM contexts WHERE context_id = ? AND tenant_id = ?;"

_INSERT_EMBEDDING = """\
INSERT INTO embeddings (embedding_id, tenant_id, context_id, content, vector, content_type,
                        chunk_index, total_chunks, source_tag, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_TENANT_VECTORS = "SELECT vector FROM embeddings WHERE tenant_id = ? ORDER BY id;"

_DELETE_CONTEXT_EMBEDDINGS = "DELETE FROM embeddings WHERE context_id = ? AND tenant_id = ?;"

_DELETE_EMBEDDING = "DELETE FROM embeddings WHERE embedding_id = ?;"

_SELECT_EMBEDDING_REFS = """\
SELECT embedding_id, tenant_id, context_id FROM embeddings
ORDER BY id LIMIT ? OFFSET ?;
"""

_SELECT_ANY_VECTOR = "SELECT vector FROM embeddings ORDER BY id LIMIT 1;"

_SELECT_TENANT_TOTALS = """\
SELECT COUNT(*), COUNT(DISTINCT context_id), MIN(created_at), MAX(created_at)
FROM embeddings WHERE tenant_id = ?;
"""

_SELECT_TENANT_TYPE_COUNTS = """\
SELECT content_type, COUNT(*) FROM embeddings
WHERE tenant_id = ? GROUP BY content_type;
"""


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed width so stored timestamps compare correctly as strings.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_context(row: aiosqlite.Row) -> Context:
    return Context(
        context_id=row["context_id"],
        tenant_id=row["tenant_id"],
        title=row["title"],
        raw_content=row["raw_content"],
        metadata=parse_metadata(json.loads(row["metadata"])),
        embedding_ids=json.loads(row["embedding_ids"]),
        size_kb=row["size_kb"],
        routes=json.loads(row["routes"]),
        created_at=_from_iso(row["created_at"]),
        updated_at=_from_iso(row["updated_at"]),
    )


class SQLiteDocumentStore(IDocumentStore):
    """SQLite persistence for chatbots, contexts, and embeddings.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created
        by :meth:`initialize`.
    index_name:
        Name of the vector index registered at :meth:`initialize`.
        Queries naming any other index fail with
        :class:`SearchUnavailableError`.
    dimension:
        Vector length the index is registered with.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        index_name: str = "vector_index",
        dimension: int = 768,
    ) -> None:
        self._db_path = Path(db_path)
        self._index_name = index_name
        self._dimension = dimension

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"SQLite error: {exc}",
                provider_name=self.get_provider_name(),
                path=str(self._db_path),
            ) from exc

    async def initialize(self) -> None:
        """Create all tables, indices, and the configured vector index."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_CHATBOTS_TABLE)
            await db.execute(_CREATE_CONTEXTS_TABLE)
            await db.execute(_CREATE_EMBEDDINGS_TABLE)
            await db.execute(_CREATE_VECTOR_INDEXES_TABLE)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
            await db.execute(
                _INSERT_INDEX,
                (self._index_name, "vector", self._dimension, _to_iso(datetime.now(timezone.utc))),
            )
            await db.commit()
        logger.info(
            "document_store_initialized",
            path=str(self._db_path),
            index_name=self._index_name,
            dimension=self._dimension,
        )

    def get_provider_name(self) -> str:
        return "sqlite"

    async def is_available(self) -> bool:
        try:
            async with self._connect() as db:
                await db.execute("SELECT 1;")
            return True
        except StorageError:
            return False

    # ── Chatbots ───────────────────────────────────────────────────────

    async def create_chatbot(self, chatbot: Chatbot) -> Chatbot:
        async with self._connect() as db:
            await db.execute(
                _INSERT_CHATBOT,
                (chatbot.tenant_id, chatbot.owner_id, chatbot.name, _to_iso(chatbot.created_at)),
            )
            await db.commit()
        logger.info("chatbot_registered", tenant_id=chatbot.tenant_id)
        return chatbot

    async def get_chatbot(self, tenant_id: str) -> Chatbot | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CHATBOT, (tenant_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return Chatbot(
            tenant_id=row["tenant_id"],
            owner_id=row["owner_id"],
            name=row["name"],
            created_at=_from_iso(row["created_at"]),
        )

    # ── Contexts ───────────────────────────────────────────────────────

    async def create_context(self, context: Context) -> Context:
        async with self._connect() as db:
            await db.execute(_INSERT_CONTEXT, (
                context.context_id,
                context.tenant_id,
                context.title,
                context.raw_content,
                context.content_type.value,
                context.metadata.model_dump_json(),
                context.source_url,
                json.dumps(context.embedding_ids),
                context.size_kb,
                json.dumps(context.routes),
                _to_iso(context.created_at),
                _to_iso(context.updated_at),
            ))
            await db.commit()
        return context

    async def get_context(self, context_id: str, tenant_id: str) -> Context | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CONTEXT, (context_id, tenant_id))
            row = await cursor.fetchone()
        return _row_to_context(row) if row else None

    async def find_context_by_url(self, tenant_id: str, url: str) -> Context | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CONTEXT_BY_URL, (tenant_id, url))
            row = await cursor.fetchone()
        return _row_to_context(row) if row else None

    async def list_contexts(self, tenant_id: str) -> list[Context]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_TENANT_CONTEXTS, (tenant_id,))
            rows = await cursor.fetchall()
        return [_row_to_context(row) for row in rows]

    async def update_context(
        self,
        context_id: str,
        tenant_id: str,
        *,
        title: str | None = None,
        raw_content: str | None = None,
        metadata: ContextMetadata | None = None,
        embedding_ids: list[str] | None = None,
        size_kb: int | None = None,
    ) -> Context | None:
        assignments: list[str] = ["updated_at = ?"]
        params: list[Any] = [_to_iso(datetime.now(timezone.utc))]

        if title is not None:
            assignments.append("title = ?")
            params.append(title)
        if raw_content is not None:
            assignments.append("raw_content = ?")
            params.append(raw_content)
        if metadata is not None:
            assignments.extend(["metadata = ?", "content_type = ?", "url = ?"])
            params.extend([
                metadata.model_dump_json(),
                metadata.type,
                metadata.url if isinstance(metadata, LinkMetadata) else None,
            ])
        if embedding_ids is not None:
            assignments.append("embedding_ids = ?")
            params.append(json.dumps(embedding_ids))
        if size_kb is not None:
            assignments.append("size_kb = ?")
            params.append(size_kb)

        # Column names above are fixed literals; only values are bound.
        sql = f"UPDATE contexts SET {', '.join(assignments)} WHERE context_id = ? AND tenant_id = ?;"
        params.extend([context_id, tenant_id])

        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            if cursor.rowcount == 0:
                return None
            cursor = await db.execute(_SELECT_CONTEXT, (context_id, tenant_id))
            row = await cursor.fetchone()
        return _row_to_context(row) if row else None

    async def delete_context(self, context_id: str, tenant_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_CONTEXT, (context_id, tenant_id))
            await db.commit()
            return cursor.rowcount > 0

    async def list_stale_empty_contexts(self, older_than: datetime) -> list[Context]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_STALE_EMPTY_CONTEXTS, (_to_iso(older_than),))
            rows = await cursor.fetchall()
        return [_row_to_context(row) for row in rows]

    async def get_context_tenant(self, context_id: str) -> str | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CONTEXT_TENANT, (context_id,))
            row = await cursor.fetchone()
        return row["tenant_id"] if row else None

    # ── Embeddings ─────────────────────────────────────────────────────

    async def add_embedding(self, record: EmbeddingRecord) -> EmbeddingRecord:
        async with self._connect() as db:
            await db.execute(_INSERT_EMBEDDING, (
                record.embedding_id,
                record.tenant_id,
                record.context_id,
                record.content,
                json.dumps(record.vector),
                record.metadata.content_type,
                record.chunk_index,
                record.total_chunks,
                record.source_tag,
                record.metadata.model_dump_json(),
                _to_iso(record.created_at),
            ))
            await db.commit()
        return record

    async def get_tenant_vectors(self, tenant_id: str) -> list[list[float]]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_TENANT_VECTORS, (tenant_id,))
            rows = await cursor.fetchall()
        return [json.loads(row["vector"]) for row in rows]

    async def delete_embeddings_by_context(self, context_id: str, tenant_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_CONTEXT_EMBEDDINGS, (context_id, tenant_id))
            await db.commit()
            return cursor.rowcount

    async def list_embedding_refs(
        self, offset: int = 0, limit: int = 1000
    ) -> list[tuple[str, str, str]]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_EMBEDDING_REFS, (limit, offset))
            rows = await cursor.fetchall()
        return [(row["embedding_id"], row["tenant_id"], row["context_id"]) for row in rows]

    async def delete_embedding(self, embedding_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_EMBEDDING, (embedding_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def get_vector_dimension(self) -> int | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_ANY_VECTOR)
            row = await cursor.fetchone()
        return len(json.loads(row["vector"])) if row else None

    # ── Search / stats ─────────────────────────────────────────────────

    async def vector_search(self, query: VectorSearchQuery) -> list[SearchResult]:
        """Rank the filtered embeddings against ``query.query_vector``.

        The candidate pool is the ``num_candidates`` best rows, of which
        the first ``limit`` are returned.  Scores are normalized to
        ``(1 + cosine) / 2``.  Equal scores keep insertion order.
        """
        sql = (
            "SELECT embedding_id, tenant_id, content, vector, metadata "
            "FROM embeddings WHERE tenant_id = ?"
        )
        params: list[Any] = [query.tenant_id]
        if query.content_type is not None:
            sql += " AND content_type = ?"
            params.append(query.content_type)
        if query.context_id is not None:
            sql += " AND context_id = ?"
            params.append(query.context_id)
        sql += " ORDER BY id;"

        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_INDEX, (query.index_name,))
                index_row = await cursor.fetchone()
                if index_row is None:
                    raise SearchUnavailableError(
                        message=f"Vector index '{query.index_name}' does not exist",
                        provider_name=self.get_provider_name(),
                        tenant_id=query.tenant_id,
                        index_name=query.index_name,
                    )
                if index_row["vector_path"] != query.vector_path:
                    raise SearchUnavailableError(
                        message=(
                            f"Vector index '{query.index_name}' is defined on "
                            f"'{index_row['vector_path']}', not '{query.vector_path}'"
                        ),
                        provider_name=self.get_provider_name(),
                        tenant_id=query.tenant_id,
                        index_name=query.index_name,
                    )
                if index_row["dimension"] != len(query.query_vector):
                    raise DimensionMismatchError(
                        message=(
                            f"Query vector has {len(query.query_vector)} dimensions, "
                            f"index '{query.index_name}' expects {index_row['dimension']}"
                        ),
                        provider_name=self.get_provider_name(),
                        expected=index_row["dimension"],
                        actual=len(query.query_vector),
                    )
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
        except StorageError as exc:
            raise SearchUnavailableError(
                message=f"Vector search failed: {exc.message}",
                provider_name=self.get_provider_name(),
                tenant_id=query.tenant_id,
                index_name=query.index_name,
            ) from exc

        if not rows:
            return []

        matrix = np.asarray([json.loads(row["vector"]) for row in rows], dtype=np.float64)
        cosine = cosine_similarity_matrix(query.query_vector, matrix)

        # Stable sort on the negated score keeps insertion order for ties.
        order = np.argsort(-cosine, kind="stable")[: query.num_candidates]
        results: list[SearchResult] = []
        for idx in order[: query.limit]:
            row = rows[int(idx)]
            score = float(np.clip((1.0 + cosine[idx]) / 2.0, 0.0, 1.0))
            results.append(SearchResult(
                embedding_id=row["embedding_id"],
                tenant_id=row["tenant_id"],
                content=row["content"],
                score=score,
                metadata=ChunkMetadata.model_validate_json(row["metadata"]),
            ))
        return results

    async def get_stats(self, tenant_id: str) -> EmbeddingStats:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_TENANT_TOTALS, (tenant_id,))
            total, contexts, oldest, newest = await cursor.fetchone()
            cursor = await db.execute(_SELECT_TENANT_TYPE_COUNTS, (tenant_id,))
            type_rows = await cursor.fetchall()
        return EmbeddingStats(
            tenant_id=tenant_id,
            total_embeddings=total,
            total_contexts=contexts,
            by_content_type={row[0]: row[1] for row in type_rows},
            oldest_embedding=_from_iso(oldest),
            newest_embedding=_from_iso(newest),
        )
