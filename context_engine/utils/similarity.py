"""Cosine similarity between embedding vectors.

Pure numeric helpers with no I/O.  Used by the deduplication gate at
write time and by the SQLite store when it ranks search candidates.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from context_engine.utils.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of *a* and *b*, in ``[-1, 1]``.

    Raises
    ------
    DimensionMismatchError
        If the vectors have different lengths.

    A zero-magnitude vector yields ``0.0`` ("no similarity") instead of
    dividing by zero.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Cannot compare vectors of length {len(a)} and {len(b)}",
            expected=len(a),
            actual=len(b),
        )

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # Float error can push identical vectors a hair past 1.0.
    return max(-1.0, min(1.0, score))


def cosine_similarity_matrix(query: Sequence[float], vectors: np.ndarray) -> np.ndarray:
    """Score *query* against every row of *vectors* at once.

    Rows with zero magnitude score ``0.0``.  ``vectors`` must be a 2-D array
    whose second dimension equals ``len(query)``.
    """
    q = np.asarray(query, dtype=np.float64)
    if vectors.size == 0:
        return np.zeros(0, dtype=np.float64)
    if vectors.ndim != 2 or vectors.shape[1] != q.shape[0]:
        raise DimensionMismatchError(
            f"Query has {q.shape[0]} dimensions but stored vectors have "
            f"{vectors.shape[-1]}",
            expected=int(vectors.shape[-1]),
            actual=int(q.shape[0]),
        )

    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(vectors, axis=1)
    denom = row_norms * q_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, vectors @ q / denom, 0.0)
    return np.clip(scores, -1.0, 1.0)
