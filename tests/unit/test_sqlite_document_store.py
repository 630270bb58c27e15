"""Unit tests for SQLiteDocumentStore -- contexts, embeddings, search, stats."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from context_engine.models.context import (
    Chatbot,
    Context,
    FileMetadata,
    LinkMetadata,
    QuestionMetadata,
    TextMetadata,
)
from context_engine.models.rag import ChunkMetadata, EmbeddingRecord, VectorSearchQuery
from context_engine.providers.store.sqlite_document_store import SQLiteDocumentStore
from context_engine.utils.errors import DimensionMismatchError, SearchUnavailableError
from context_engine.utils.ids import new_id

DIM = 4


@pytest.fixture
async def small_store(tmp_path: Path) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(db_path=tmp_path / "store.db", dimension=DIM)
    await store.initialize()
    return store


def _context(tenant_id: str, metadata=None, **overrides) -> Context:
    values = {
        "context_id": new_id(),
        "tenant_id": tenant_id,
        "title": "Opening hours",
        "raw_content": "We open at nine.",
        "metadata": metadata or TextMetadata(),
    }
    values.update(overrides)
    return Context(**values)


def _record(context: Context, vector: list[float], content: str = "chunk", index: int = 0) -> EmbeddingRecord:
    return EmbeddingRecord(
        embedding_id=new_id(),
        tenant_id=context.tenant_id,
        context_id=context.context_id,
        content=content,
        vector=vector,
        chunk_index=index,
        total_chunks=index + 1,
        metadata=ChunkMetadata(
            context_id=context.context_id,
            content_type=context.content_type.value,
            title=context.title,
            chunk_index=index,
            total_chunks=index + 1,
        ),
    )


def _query(tenant_id: str, vector: list[float], limit: int = 5, **overrides) -> VectorSearchQuery:
    values = {
        "index_name": "vector_index",
        "query_vector": vector,
        "num_candidates": limit * 10,
        "limit": limit,
        "tenant_id": tenant_id,
    }
    values.update(overrides)
    return VectorSearchQuery(**values)


class TestInitialize:
    async def test_initialize_is_idempotent(self, small_store: SQLiteDocumentStore) -> None:
        await small_store.initialize()
        assert await small_store.is_available() is True

    async def test_creates_parent_directories(self, tmp_path: Path) -> None:
        store = SQLiteDocumentStore(db_path=tmp_path / "nested" / "dir" / "x.db", dimension=DIM)
        await store.initialize()
        assert (tmp_path / "nested" / "dir" / "x.db").exists()

    def test_provider_name(self, small_store: SQLiteDocumentStore) -> None:
        assert small_store.get_provider_name() == "sqlite"


class TestChatbots:
    async def test_round_trip(self, small_store: SQLiteDocumentStore) -> None:
        bot = Chatbot(tenant_id=new_id(), owner_id="user-9", name="Helpdesk")
        await small_store.create_chatbot(bot)
        loaded = await small_store.get_chatbot(bot.tenant_id)
        assert loaded is not None
        assert loaded.owner_id == "user-9"
        assert loaded.name == "Helpdesk"

    async def test_missing_chatbot(self, small_store: SQLiteDocumentStore) -> None:
        assert await small_store.get_chatbot(new_id()) is None


class TestContexts:
    async def test_create_and_get_preserves_metadata_variant(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        ctx = _context(
            tenant,
            QuestionMetadata(question="Do you ship abroad?", answer="Yes, worldwide."),
            routes=["/faq"],
        )
        await small_store.create_context(ctx)
        loaded = await small_store.get_context(ctx.context_id, tenant)
        assert loaded is not None
        assert isinstance(loaded.metadata, QuestionMetadata)
        assert loaded.metadata.answer == "Yes, worldwide."
        assert loaded.routes == ["/faq"]
        assert loaded.created_at == ctx.created_at

    async def test_get_is_tenant_scoped(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        await small_store.create_context(ctx)
        assert await small_store.get_context(ctx.context_id, new_id()) is None

    async def test_find_by_url_only_matches_same_tenant(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        ctx = _context(tenant, LinkMetadata(url="https://example.com/pricing"))
        await small_store.create_context(ctx)

        found = await small_store.find_context_by_url(tenant, "https://example.com/pricing")
        assert found is not None and found.context_id == ctx.context_id
        assert await small_store.find_context_by_url(new_id(), "https://example.com/pricing") is None
        assert await small_store.find_context_by_url(tenant, "https://example.com/other") is None

    async def test_list_contexts_in_creation_order(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        now = datetime.now(timezone.utc)
        first = _context(tenant, title="first", created_at=now - timedelta(minutes=2))
        second = _context(tenant, title="second", created_at=now)
        await small_store.create_context(second)
        await small_store.create_context(first)
        await small_store.create_context(_context(new_id(), title="foreign"))

        titles = [c.title for c in await small_store.list_contexts(tenant)]
        assert titles == ["first", "second"]

    async def test_update_changes_only_given_fields(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        ctx = _context(tenant)
        await small_store.create_context(ctx)

        updated = await small_store.update_context(
            ctx.context_id, tenant, title="Holiday hours", embedding_ids=["a", "b"], size_kb=3
        )
        assert updated is not None
        assert updated.title == "Holiday hours"
        assert updated.raw_content == "We open at nine."
        assert updated.embedding_ids == ["a", "b"]
        assert updated.size_kb == 3
        assert updated.updated_at is not None

    async def test_update_metadata_rewrites_url_column(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        ctx = _context(tenant, LinkMetadata(url="https://old.example.com"))
        await small_store.create_context(ctx)
        await small_store.update_context(
            ctx.context_id, tenant, metadata=LinkMetadata(url="https://new.example.com")
        )
        assert await small_store.find_context_by_url(tenant, "https://old.example.com") is None
        assert await small_store.find_context_by_url(tenant, "https://new.example.com") is not None

    async def test_update_of_foreign_context_returns_none(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        await small_store.create_context(ctx)
        assert await small_store.update_context(ctx.context_id, new_id(), title="x") is None

    async def test_delete_context(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        ctx = _context(tenant)
        await small_store.create_context(ctx)
        assert await small_store.delete_context(ctx.context_id, new_id()) is False
        assert await small_store.delete_context(ctx.context_id, tenant) is True
        assert await small_store.get_context(ctx.context_id, tenant) is None
        assert await small_store.delete_context(ctx.context_id, tenant) is False

    async def test_get_context_tenant(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        ctx = _context(tenant)
        await small_store.create_context(ctx)
        assert await small_store.get_context_tenant(ctx.context_id) == tenant
        assert await small_store.get_context_tenant(new_id()) is None

    async def test_stale_empty_contexts(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        old = datetime.now(timezone.utc) - timedelta(hours=3)
        stale = _context(tenant, created_at=old)
        populated = _context(tenant, created_at=old, embedding_ids=["e1"])
        fresh = _context(tenant)
        for ctx in (stale, populated, fresh):
            await small_store.create_context(ctx)

        cutoff = datetime.now(timezone.utc) - timedelta(hours=1)
        found = await small_store.list_stale_empty_contexts(cutoff)
        assert [c.context_id for c in found] == [stale.context_id]


class TestEmbeddings:
    async def test_tenant_vectors_are_isolated(self, small_store: SQLiteDocumentStore) -> None:
        mine = _context(new_id())
        theirs = _context(new_id())
        await small_store.add_embedding(_record(mine, [1.0, 0.0, 0.0, 0.0]))
        await small_store.add_embedding(_record(theirs, [0.0, 1.0, 0.0, 0.0]))
        assert await small_store.get_tenant_vectors(mine.tenant_id) == [[1.0, 0.0, 0.0, 0.0]]

    async def test_delete_by_context_counts_rows(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        sibling = _context(ctx.tenant_id)
        await small_store.add_embedding(_record(ctx, [1.0, 0.0, 0.0, 0.0], index=0))
        await small_store.add_embedding(_record(ctx, [0.0, 1.0, 0.0, 0.0], index=1))
        await small_store.add_embedding(_record(sibling, [0.0, 0.0, 1.0, 0.0]))

        assert await small_store.delete_embeddings_by_context(ctx.context_id, new_id()) == 0
        assert await small_store.delete_embeddings_by_context(ctx.context_id, ctx.tenant_id) == 2
        assert len(await small_store.get_tenant_vectors(ctx.tenant_id)) == 1

    async def test_embedding_refs_page_in_insert_order(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        records = [_record(ctx, [1.0, 0.0, 0.0, float(i)]) for i in range(5)]
        for record in records:
            await small_store.add_embedding(record)

        first = await small_store.list_embedding_refs(offset=0, limit=3)
        second = await small_store.list_embedding_refs(offset=3, limit=3)
        assert [ref[0] for ref in first + second] == [r.embedding_id for r in records]
        assert first[0] == (records[0].embedding_id, ctx.tenant_id, ctx.context_id)

    async def test_delete_embedding(self, small_store: SQLiteDocumentStore) -> None:
        record = _record(_context(new_id()), [1.0, 0.0, 0.0, 0.0])
        await small_store.add_embedding(record)
        assert await small_store.delete_embedding(record.embedding_id) is True
        assert await small_store.delete_embedding(record.embedding_id) is False

    async def test_vector_dimension(self, small_store: SQLiteDocumentStore) -> None:
        assert await small_store.get_vector_dimension() is None
        await small_store.add_embedding(_record(_context(new_id()), [1.0, 2.0, 3.0, 4.0]))
        assert await small_store.get_vector_dimension() == 4


class TestVectorSearch:
    async def test_results_are_ranked_and_tenant_filtered(self, small_store: SQLiteDocumentStore) -> None:
        mine = _context(new_id())
        theirs = _context(new_id())
        await small_store.add_embedding(_record(mine, [0.0, 1.0, 0.0, 0.0], "far"))
        await small_store.add_embedding(_record(mine, [1.0, 0.1, 0.0, 0.0], "near"))
        await small_store.add_embedding(_record(theirs, [1.0, 0.0, 0.0, 0.0], "foreign"))

        results = await small_store.vector_search(_query(mine.tenant_id, [1.0, 0.0, 0.0, 0.0]))
        assert [r.content for r in results] == ["near", "far"]
        assert all(r.tenant_id == mine.tenant_id for r in results)
        assert results[0].score > results[1].score
        assert results[1].score == pytest.approx(0.5)

    async def test_scores_are_normalized(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        await small_store.add_embedding(_record(ctx, [1.0, 0.0, 0.0, 0.0], "same"))
        await small_store.add_embedding(_record(ctx, [-1.0, 0.0, 0.0, 0.0], "opposite"))
        results = await small_store.vector_search(_query(ctx.tenant_id, [1.0, 0.0, 0.0, 0.0]))
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.0)

    async def test_limit_truncates(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        for i in range(6):
            await small_store.add_embedding(_record(ctx, [1.0, float(i), 0.0, 0.0], f"c{i}"))
        results = await small_store.vector_search(_query(ctx.tenant_id, [1.0, 0.0, 0.0, 0.0], limit=2))
        assert [r.content for r in results] == ["c0", "c1"]

    async def test_ties_keep_insertion_order(self, small_store: SQLiteDocumentStore) -> None:
        ctx = _context(new_id())
        for name in ("alpha", "beta", "gamma"):
            await small_store.add_embedding(_record(ctx, [0.0, 0.0, 1.0, 0.0], name))
        results = await small_store.vector_search(_query(ctx.tenant_id, [0.0, 0.0, 1.0, 0.0]))
        assert [r.content for r in results] == ["alpha", "beta", "gamma"]

    async def test_content_type_and_context_filters(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        text_ctx = _context(tenant)
        file_ctx = _context(tenant, FileMetadata(file_name="menu.pdf"))
        await small_store.add_embedding(_record(text_ctx, [1.0, 0.0, 0.0, 0.0], "text"))
        await small_store.add_embedding(_record(file_ctx, [1.0, 0.0, 0.0, 0.0], "file"))

        by_type = await small_store.vector_search(
            _query(tenant, [1.0, 0.0, 0.0, 0.0], content_type="FILE")
        )
        assert [r.content for r in by_type] == ["file"]
        by_context = await small_store.vector_search(
            _query(tenant, [1.0, 0.0, 0.0, 0.0], context_id=text_ctx.context_id)
        )
        assert [r.content for r in by_context] == ["text"]

    async def test_empty_tenant_returns_empty_list(self, small_store: SQLiteDocumentStore) -> None:
        assert await small_store.vector_search(_query(new_id(), [1.0, 0.0, 0.0, 0.0])) == []

    async def test_unknown_index_is_unavailable(self, small_store: SQLiteDocumentStore) -> None:
        with pytest.raises(SearchUnavailableError):
            await small_store.vector_search(
                _query(new_id(), [1.0, 0.0, 0.0, 0.0], index_name="missing_index")
            )

    async def test_wrong_vector_path_is_unavailable(self, small_store: SQLiteDocumentStore) -> None:
        with pytest.raises(SearchUnavailableError):
            await small_store.vector_search(
                _query(new_id(), [1.0, 0.0, 0.0, 0.0], vector_path="embedding")
            )

    async def test_query_dimension_must_match_index(self, small_store: SQLiteDocumentStore) -> None:
        with pytest.raises(DimensionMismatchError):
            await small_store.vector_search(_query(new_id(), [1.0, 0.0]))

    async def test_unreachable_database_is_unavailable(self, tmp_path: Path) -> None:
        store = SQLiteDocumentStore(db_path=tmp_path / "missing-dir" / "x.db", dimension=DIM)
        with pytest.raises(SearchUnavailableError):
            await store.vector_search(_query(new_id(), [1.0, 0.0, 0.0, 0.0]))


class TestStats:
    async def test_stats_by_content_type(self, small_store: SQLiteDocumentStore) -> None:
        tenant = new_id()
        text_ctx = _context(tenant)
        link_ctx = _context(tenant, LinkMetadata(url="https://example.com"))
        await small_store.add_embedding(_record(text_ctx, [1.0, 0.0, 0.0, 0.0]))
        await small_store.add_embedding(_record(link_ctx, [0.0, 1.0, 0.0, 0.0], index=0))
        await small_store.add_embedding(_record(link_ctx, [0.0, 0.0, 1.0, 0.0], index=1))
        await small_store.add_embedding(_record(_context(new_id()), [1.0, 1.0, 0.0, 0.0]))

        stats = await small_store.get_stats(tenant)
        assert stats.total_embeddings == 3
        assert stats.total_contexts == 2
        assert stats.by_content_type == {"TEXT": 1, "LINK": 2}
        assert stats.oldest_embedding is not None
        assert stats.oldest_embedding <= stats.newest_embedding

    async def test_stats_for_empty_tenant(self, small_store: SQLiteDocumentStore) -> None:
        stats = await small_store.get_stats(new_id())
        assert stats.total_embeddings == 0
        assert stats.by_content_type == {}
        assert stats.oldest_embedding is None
