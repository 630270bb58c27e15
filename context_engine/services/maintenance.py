"""Orphan reconciliation for embeddings and Contexts.

Ingestion creates the Context before its embeddings exist, so a crash
mid-ingestion can leave either side dangling.  :class:`OrphanSweeper`
repairs both:

* embeddings whose Context no longer exists, or whose ``tenant_id``
  differs from the Context's tenant, are deleted;
* Contexts that still have no embedding ids after the grace period are
  deleted (along with any stray embeddings pointing at them).

Embeddings are paged in batches of ``batch_size`` (default 1000).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.models.rag import SweepReport
from context_engine.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class OrphanSweeper:
    """Finds and deletes orphaned embeddings and abandoned Contexts.

    Parameters
    ----------
    store:
        Document store to reconcile.
    grace_period:
        Minimum age of an embedding-less Context before it is treated as
        abandoned rather than mid-ingestion.
    """

    def __init__(
        self,
        store: IDocumentStore,
        grace_period: timedelta = timedelta(hours=1),
    ) -> None:
        self._store = store
        self._grace_period = grace_period

    async def sweep(self, batch_size: int = 1000, dry_run: bool = False) -> SweepReport:
        """Run one reconciliation pass and return what it found.

        With ``dry_run=True`` nothing is deleted; ``deleted`` and
        ``contexts_removed`` stay 0.  A failed delete is counted in
        ``errors`` and the pass continues.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        total = 0
        orphaned_ids: list[str] = []
        tenant_cache: dict[str, str | None] = {}
        offset = 0

        while True:
            refs = await self._store.list_embedding_refs(offset=offset, limit=batch_size)
            if not refs:
                break
            total += len(refs)
            for embedding_id, tenant_id, context_id in refs:
                if context_id not in tenant_cache:
                    tenant_cache[context_id] = await self._store.get_context_tenant(context_id)
                if tenant_cache[context_id] != tenant_id:
                    orphaned_ids.append(embedding_id)
            offset += len(refs)
            logger.debug("orphan_sweep_batch", offset=offset, orphaned=len(orphaned_ids))

        deleted = 0
        errors = 0
        if not dry_run:
            for embedding_id in orphaned_ids:
                try:
                    if await self._store.delete_embedding(embedding_id):
                        deleted += 1
                except StorageError as exc:
                    errors += 1
                    logger.error("orphan_embedding_delete_failed", embedding_id=embedding_id, error=str(exc))

        contexts_removed = 0
        cutoff = datetime.now(timezone.utc) - self._grace_period
        stale = await self._store.list_stale_empty_contexts(cutoff)
        if not dry_run:
            for context in stale:
                try:
                    await self._store.delete_embeddings_by_context(context.context_id, context.tenant_id)
                    if await self._store.delete_context(context.context_id, context.tenant_id):
                        contexts_removed += 1
                except StorageError as exc:
                    errors += 1
                    logger.error(
                        "stale_context_delete_failed",
                        tenant_id=context.tenant_id,
                        context_id=context.context_id,
                        error=str(exc),
                    )

        report = SweepReport(
            total_embeddings=total,
            orphaned=len(orphaned_ids),
            deleted=deleted,
            contexts_removed=contexts_removed,
            errors=errors,
        )
        logger.info(
            "orphan_sweep_complete",
            dry_run=dry_run,
            stale_contexts=len(stale),
            **report.model_dump(),
        )
        return report
