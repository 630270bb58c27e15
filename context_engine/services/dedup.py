"""Semantic deduplication against a tenant's stored embeddings.

A candidate chunk vector is a duplicate when its cosine similarity to
*any* vector already stored for the same tenant reaches the threshold
(default 0.85).  The comparison set is the tenant's whole store, across
all of its Contexts, so boilerplate shared by two uploads is embedded
once.  Tenants never see each other's vectors.

The check is a linear scan, O(tenant corpus) per chunk, sized for
tenants with hundreds to low thousands of chunks.

A failed store read is treated as "not a duplicate" (fail open): a
storage hiccup must not block legitimate content from being saved.
"""

from __future__ import annotations

import aiosqlite
import numpy as np
import structlog

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.utils.errors import StorageError
from context_engine.utils.similarity import cosine_similarity_matrix

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_DEDUP_THRESHOLD = 0.85


class DeduplicationGate:
    """Decides whether a chunk vector is already present for a tenant.

    Parameters
    ----------
    store:
        Document store holding the tenant's embeddings.
    threshold:
        Minimum cosine similarity that counts as a duplicate.
    """

    def __init__(self, store: IDocumentStore, threshold: float = DEFAULT_DEDUP_THRESHOLD) -> None:
        self._store = store
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    async def is_duplicate(
        self,
        candidate: list[float],
        tenant_id: str,
        threshold: float | None = None,
    ) -> bool:
        """Return ``True`` if *candidate* matches any stored vector of *tenant_id*.

        Raises
        ------
        DimensionMismatchError
            If the candidate and the stored vectors differ in length.
        """
        limit = self._threshold if threshold is None else threshold

        try:
            stored = await self._store.get_tenant_vectors(tenant_id)
        except (StorageError, aiosqlite.Error) as exc:
            logger.warning(
                "dedup_read_failed_fail_open",
                tenant_id=tenant_id,
                error=str(exc),
            )
            return False

        if not stored:
            return False

        scores = cosine_similarity_matrix(candidate, np.asarray(stored, dtype=np.float64))
        hits = np.flatnonzero(scores >= limit)
        if hits.size == 0:
            return False

        logger.debug(
            "dedup_match",
            tenant_id=tenant_id,
            match_index=int(hits[0]),
            score=round(float(scores[hits[0]]), 4),
            threshold=limit,
        )
        return True
