"""Context ingestion pipeline: validate -> create -> chunk -> embed -> dedup -> store.

:class:`ContextIngestionService` turns one tenant submission (a text,
an extracted file, a crawled page, or an FAQ pair) into a
:class:`~context_engine.models.context.Context` row plus the
:class:`~context_engine.models.rag.EmbeddingRecord` rows derived from it.

Ordering of :meth:`ContextIngestionService.ingest`:

    1. reject blank content                       (EmptyContentError)
    2. reject a LINK whose URL the tenant has     (DuplicateSourceError)
    3. validate tenant id / title / metadata      (ValidationError)
    4. create the Context so chunks can carry its id
    5. chunk the enriched text
    6. embed every chunk in one batched call      (retried with backoff)
    7. per chunk, in order: dedup against the tenant's store, then persist
    8. every chunk a duplicate -> delete the Context (AllContentDuplicateError)
    9. write the ordered embedding ids back onto the Context

Steps 1-3 never write.  A failure between steps 4 and 9 other than the
all-duplicate case leaves the Context behind with an incomplete
``embedding_ids`` list; :class:`~context_engine.services.maintenance.OrphanSweeper`
reconciles those.

This service performs no ownership checks.  External callers go through
:class:`~context_engine.services.ownership.SecureContextService`.
"""

from __future__ import annotations

import time
from pathlib import PurePath
from typing import Any
from urllib.parse import urlparse

import structlog
from pydantic import ValidationError as PydanticValidationError

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.interfaces.embedding_provider import IEmbeddingProvider
from context_engine.models.context import (
    ContentType,
    Context,
    ContextMetadata,
    FileMetadata,
    LinkMetadata,
    QuestionMetadata,
    parse_metadata,
)
from context_engine.models.rag import ChunkMetadata, EmbeddingRecord, IngestionResult
from context_engine.services.chunker import TextChunker
from context_engine.services.dedup import DeduplicationGate
from context_engine.utils.errors import (
    AllContentDuplicateError,
    DuplicateSourceError,
    EmbeddingProviderError,
    EmptyContentError,
    NotFoundError,
    ValidationError,
)
from context_engine.utils.ids import new_id
from context_engine.utils.logging import bind_tenant_context, clear_tenant_context
from context_engine.utils.retry import RetryPolicy

logger = structlog.get_logger(logger_name=__name__)

_SOURCE_TAG = "context-ingestion"

# Descriptor words added to the keyword header of each content type.
_TYPE_KEYWORDS: dict[ContentType, str] = {
    ContentType.FILE: "document file",
    ContentType.LINK: "web page site",
    ContentType.TEXT: "text information",
    ContentType.QUESTION: "frequently asked question FAQ",
}


# ------------------------------------------------------------------
# Text preparation helpers
# ------------------------------------------------------------------


def build_vectorizable_text(title: str, content: str, metadata: ContextMetadata) -> str:
    """Return the text that is chunked and embedded for a submission.

    A ``Keywords:`` header (file name stem, title, type descriptor) and a
    ``# title`` line go first so they weigh on the first chunk's vector.
    QUESTION bodies lead with the question/answer pair.  FILE and LINK
    end with their source line.  ``Context.raw_content`` keeps the
    untouched submission.
    """
    content_type = ContentType(metadata.type)
    parts: list[str] = []

    keywords: list[str] = []
    if isinstance(metadata, FileMetadata):
        keywords.append(PurePath(metadata.file_name).stem)
    if title:
        keywords.append(title)
    keywords.append(_TYPE_KEYWORDS[content_type])
    parts.append(f"Keywords: {', '.join(keywords)}")

    if title:
        parts.append(f"# {title}")

    if isinstance(metadata, QuestionMetadata):
        parts.append(f"Question: {metadata.question}")
        parts.append(f"Answer: {metadata.answer}")
    if content:
        parts.append(content)

    if isinstance(metadata, FileMetadata):
        parts.append(f"File: {metadata.file_name}")
    elif isinstance(metadata, LinkMetadata):
        parts.append(f"URL: {metadata.url}")

    return "\n\n".join(parts)


def fallback_title(title: str, metadata: ContextMetadata) -> str:
    """Return *title*, or a per-type substitute when it is blank."""
    if title and title.strip():
        return title
    if isinstance(metadata, FileMetadata):
        return metadata.file_name or "Unnamed file"
    if isinstance(metadata, LinkMetadata):
        return urlparse(metadata.url).hostname or "Unnamed link"
    if isinstance(metadata, QuestionMetadata):
        return metadata.question or "Unnamed question"
    return "Unnamed text"


def _size_kb(content: str) -> int:
    return round(len(content.encode("utf-8")) / 1024)


def _chunk_metadata(
    context_id: str,
    title: str,
    metadata: ContextMetadata,
    chunk_index: int,
    total_chunks: int,
) -> ChunkMetadata:
    file_name = None
    url = None
    if isinstance(metadata, FileMetadata):
        file_name = metadata.file_name or title or "Unnamed file"
    elif isinstance(metadata, LinkMetadata):
        url = metadata.url
    return ChunkMetadata(
        context_id=context_id,
        content_type=metadata.type,
        title=fallback_title(title, metadata),
        file_name=file_name,
        url=url,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        source=_SOURCE_TAG,
    )


def coerce_metadata(metadata: ContextMetadata | dict[str, Any]) -> ContextMetadata:
    """Accept a metadata variant or its plain-dict form."""
    if isinstance(metadata, dict):
        try:
            return parse_metadata(metadata)
        except PydanticValidationError as exc:
            raise ValidationError(
                message=f"Invalid metadata: {exc.errors()[0]['msg']}",
                field="metadata",
            ) from exc
    if not hasattr(metadata, "type"):
        raise ValidationError(message="metadata must be a typed metadata variant", field="metadata")
    return metadata


class ContextIngestionService:
    """Creates, re-embeds, and deletes Contexts and their embeddings.

    Parameters
    ----------
    store:
        Persistence for Contexts and embeddings.
    embedding_provider:
        Produces chunk vectors.
    chunker:
        Splits enriched text into chunks.
    dedup_gate:
        Tenant-wide semantic duplicate check run before each chunk write.
    retry_policy:
        Backoff applied to every embedding call.
    """

    def __init__(
        self,
        store: IDocumentStore,
        embedding_provider: IEmbeddingProvider,
        chunker: TextChunker | None = None,
        dedup_gate: DeduplicationGate | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._embedding_provider = embedding_provider
        self._chunker = chunker or TextChunker()
        self._dedup_gate = dedup_gate or DeduplicationGate(store)
        self._retry = retry_policy or RetryPolicy()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        tenant_id: str,
        title: str,
        content: str,
        metadata: ContextMetadata | dict[str, Any],
        routes: list[str] | None = None,
        delimiter: str | None = None,
    ) -> IngestionResult:
        """Ingest one submission for *tenant_id*.

        With *delimiter*, the content is a catalog: each record between
        delimiters becomes exactly one chunk, embedded without the keyword
        header.

        Returns
        -------
        IngestionResult
            The new Context's id, with created/skipped chunk counts.

        Raises
        ------
        EmptyContentError, DuplicateSourceError, ValidationError
            Before anything is written.
        AllContentDuplicateError
            Every chunk was a duplicate; the Context has been removed.
        EmbeddingProviderError
            The embedding call failed after retries.
        """
        started = time.monotonic()

        # 1. Blank content
        if content is None or (isinstance(content, str) and not content.strip()):
            raise EmptyContentError(tenant_id=tenant_id, field="content")

        metadata = coerce_metadata(metadata)

        # 2. Duplicate LINK source
        if isinstance(metadata, LinkMetadata):
            existing = await self._store.find_context_by_url(tenant_id, metadata.url)
            if existing is not None:
                raise DuplicateSourceError(
                    message=f"{metadata.url} is already in the knowledge base",
                    tenant_id=tenant_id,
                    context_id=existing.context_id,
                    url=metadata.url,
                )

        # 3. Shape of the submission
        self._validate_submission(tenant_id, title, content)
        self._validate_delimiter(tenant_id, content, delimiter)

        # 4. Context first, so every chunk can carry its id
        context = Context(
            context_id=new_id(),
            tenant_id=tenant_id,
            title=title,
            raw_content=content,
            metadata=metadata,
            size_kb=_size_kb(content),
            routes=list(routes or []),
        )
        await self._store.create_context(context)

        bind_tenant_context(tenant_id, context_id=context.context_id)
        try:
            # 5-6. Chunk and embed
            chunks = self._split(title, content, metadata, delimiter)
            vectors = await self._embed_chunks(chunks)

            # 7. Sequential dedup + persist; each check sees earlier writes.
            embedding_ids: list[str] = []
            skipped = 0
            for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
                if await self._dedup_gate.is_duplicate(vector, tenant_id):
                    skipped += 1
                    continue
                record = self._build_record(context, chunk, vector, index, len(chunks))
                await self._store.add_embedding(record)
                embedding_ids.append(record.embedding_id)

            # 8. Rollback when nothing new was stored
            if not embedding_ids and skipped > 0:
                await self._store.delete_context(context.context_id, tenant_id)
                logger.warning(
                    "context_rolled_back",
                    tenant_id=tenant_id,
                    context_id=context.context_id,
                    chunks_skipped=skipped,
                )
                raise AllContentDuplicateError(
                    tenant_id=tenant_id,
                    context_id=context.context_id,
                    chunks_skipped=skipped,
                )

            # 9. Backfill the embedding ids
            await self._store.update_context(
                context.context_id, tenant_id, embedding_ids=embedding_ids
            )
        finally:
            clear_tenant_context()

        elapsed = round(time.monotonic() - started, 3)
        logger.info(
            "context_ingested",
            tenant_id=tenant_id,
            context_id=context.context_id,
            content_type=metadata.type,
            chunks=len(chunks),
            embeddings_created=len(embedding_ids),
            embeddings_skipped=skipped,
            ingestion_time=elapsed,
        )
        return IngestionResult(
            context_id=context.context_id,
            embeddings_created=len(embedding_ids),
            embeddings_skipped=skipped,
            embedding_ids=embedding_ids,
            ingestion_time=elapsed,
        )

    async def update_context(
        self,
        tenant_id: str,
        context_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        metadata: ContextMetadata | dict[str, Any] | None = None,
        delimiter: str | None = None,
    ) -> IngestionResult:
        """Edit a Context; ``None`` arguments keep their current value.

        When neither content nor metadata changes, only the title is
        rewritten and the existing embeddings are kept.  Otherwise all
        embeddings of the Context are replaced, without a dedup pass.
        *delimiter* re-chunks the new content as catalog records, as in
        :meth:`ingest`.

        Raises
        ------
        NotFoundError
            The Context does not exist for this tenant.
        EmptyContentError
            *content* is blank.
        DuplicateSourceError
            The new LINK URL belongs to another Context of the tenant.
        """
        started = time.monotonic()
        if content is not None and not content.strip():
            raise EmptyContentError(tenant_id=tenant_id, context_id=context_id, field="content")
        if title is not None and not isinstance(title, str):
            raise ValidationError(message="title must be a string", field="title")

        current = await self._store.get_context(context_id, tenant_id)
        if current is None:
            raise NotFoundError(tenant_id=tenant_id, context_id=context_id)

        new_title = current.title if title is None else title
        new_content = current.raw_content if content is None else content
        new_metadata = current.metadata if metadata is None else coerce_metadata(metadata)
        self._validate_delimiter(tenant_id, new_content, delimiter)

        if isinstance(new_metadata, LinkMetadata) and not (
            isinstance(current.metadata, LinkMetadata) and current.metadata.url == new_metadata.url
        ):
            existing = await self._store.find_context_by_url(tenant_id, new_metadata.url)
            if existing is not None and existing.context_id != context_id:
                raise DuplicateSourceError(
                    message=f"{new_metadata.url} is already in the knowledge base",
                    tenant_id=tenant_id,
                    context_id=existing.context_id,
                    url=new_metadata.url,
                )

        if (
            delimiter is None
            and new_content == current.raw_content
            and new_metadata == current.metadata
        ):
            await self._store.update_context(context_id, tenant_id, title=new_title)
            logger.info(
                "context_updated",
                tenant_id=tenant_id,
                context_id=context_id,
                reembedded=False,
            )
            return IngestionResult(
                context_id=context_id,
                embedding_ids=list(current.embedding_ids),
                ingestion_time=round(time.monotonic() - started, 3),
            )

        bind_tenant_context(tenant_id, context_id=context_id)
        try:
            # Embed before deleting so a provider outage leaves the old chunks intact.
            chunks = self._split(new_title, new_content, new_metadata, delimiter)
            vectors = await self._embed_chunks(chunks)

            removed = await self._store.delete_embeddings_by_context(context_id, tenant_id)
            updated = current.model_copy(update={"title": new_title, "metadata": new_metadata})
            embedding_ids: list[str] = []
            for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
                record = self._build_record(updated, chunk, vector, index, len(chunks))
                await self._store.add_embedding(record)
                embedding_ids.append(record.embedding_id)

            await self._store.update_context(
                context_id,
                tenant_id,
                title=new_title,
                raw_content=new_content,
                metadata=new_metadata,
                embedding_ids=embedding_ids,
                size_kb=_size_kb(new_content),
            )
        finally:
            clear_tenant_context()

        elapsed = round(time.monotonic() - started, 3)
        logger.info(
            "context_updated",
            tenant_id=tenant_id,
            context_id=context_id,
            reembedded=True,
            embeddings_removed=removed,
            embeddings_created=len(embedding_ids),
        )
        return IngestionResult(
            context_id=context_id,
            embeddings_created=len(embedding_ids),
            embedding_ids=embedding_ids,
            ingestion_time=elapsed,
        )

    async def delete_context(self, tenant_id: str, context_id: str) -> int:
        """Delete a Context and all of its embeddings; return the embedding count.

        Raises
        ------
        NotFoundError
            The Context does not exist or belongs to another tenant.
        """
        current = await self._store.get_context(context_id, tenant_id)
        if current is None:
            raise NotFoundError(tenant_id=tenant_id, context_id=context_id)

        removed = await self._store.delete_embeddings_by_context(context_id, tenant_id)
        await self._store.delete_context(context_id, tenant_id)
        logger.info(
            "context_deleted",
            tenant_id=tenant_id,
            context_id=context_id,
            embeddings_removed=removed,
        )
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_submission(tenant_id: Any, title: Any, content: Any) -> None:
        if not isinstance(tenant_id, str) or not tenant_id.strip():
            raise ValidationError(message="tenant_id is required", field="tenant_id")
        if not isinstance(title, str):
            raise ValidationError(
                message="title must be a string", tenant_id=tenant_id, field="title"
            )
        if not isinstance(content, str):
            raise ValidationError(
                message="content must be a string", tenant_id=tenant_id, field="content"
            )

    @staticmethod
    def _validate_delimiter(tenant_id: str, content: str, delimiter: str | None) -> None:
        if delimiter is None:
            return
        if not isinstance(delimiter, str) or not delimiter:
            raise ValidationError(
                message="delimiter must be a non-empty string", tenant_id=tenant_id, field="delimiter"
            )
        if not any(record.strip() for record in content.split(delimiter)):
            raise EmptyContentError(tenant_id=tenant_id, field="content", delimiter=delimiter)

    def _split(
        self, title: str, content: str, metadata: ContextMetadata, delimiter: str | None
    ) -> list[str]:
        if delimiter is not None:
            return self._chunker.chunk_by_delimiter(content, delimiter)
        return self._chunker.chunk(build_vectorizable_text(title, content, metadata))

    async def _embed_chunks(self, chunks: list[str]) -> list[list[float]]:
        if not chunks:
            return []
        vectors = await self._retry.run(
            lambda: self._embedding_provider.embed(chunks),
            f"embed {len(chunks)} chunks",
        )
        if len(vectors) != len(chunks):
            raise EmbeddingProviderError(
                message=f"Expected {len(chunks)} vectors, received {len(vectors)}",
                provider_name=self._embedding_provider.get_provider_name(),
            )
        return vectors

    @staticmethod
    def _build_record(
        context: Context,
        chunk: str,
        vector: list[float],
        index: int,
        total: int,
    ) -> EmbeddingRecord:
        return EmbeddingRecord(
            embedding_id=new_id(),
            tenant_id=context.tenant_id,
            context_id=context.context_id,
            content=chunk,
            vector=vector,
            chunk_index=index,
            total_chunks=total,
            source_tag=_SOURCE_TAG,
            metadata=_chunk_metadata(context.context_id, context.title, context.metadata, index, total),
        )
