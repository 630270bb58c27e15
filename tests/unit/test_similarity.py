"""Unit tests for the cosine similarity helpers."""

from __future__ import annotations

import numpy as np
import pytest

from context_engine.utils.errors import DimensionMismatchError
from context_engine.utils.similarity import cosine_similarity, cosine_similarity_matrix


class TestCosineSimilarity:
    def test_identical_vectors_score_one(self) -> None:
        v = [0.3, -1.2, 4.0, 0.01]
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_opposite_vectors_score_minus_one(self) -> None:
        v = [0.3, -1.2, 4.0, 0.01]
        assert cosine_similarity(v, [-x for x in v]) == pytest.approx(-1.0)

    def test_symmetric(self) -> None:
        a = [1.0, 2.0, 3.0]
        b = [-2.0, 0.5, 7.0]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_orthogonal_vectors_score_zero(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 5.0]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_length_mismatch_raises(self) -> None:
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])
        assert exc_info.value.details == {"expected": 2, "actual": 3}

    def test_dimension_mismatch_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])

    def test_result_is_clamped(self) -> None:
        v = [1e-3, 1e-3, 1e-3]
        score = cosine_similarity(v, v)
        assert -1.0 <= score <= 1.0


class TestCosineSimilarityMatrix:
    def test_scores_each_row(self) -> None:
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])
        scores = cosine_similarity_matrix([1.0, 0.0], matrix)
        assert scores.tolist() == pytest.approx([1.0, 0.0, -1.0])

    def test_zero_rows_score_zero(self) -> None:
        matrix = np.array([[0.0, 0.0], [2.0, 2.0]])
        scores = cosine_similarity_matrix([1.0, 1.0], matrix)
        assert scores.tolist() == pytest.approx([0.0, 1.0])

    def test_empty_matrix(self) -> None:
        assert cosine_similarity_matrix([1.0, 2.0], np.zeros((0, 2))).size == 0

    def test_width_mismatch_raises(self) -> None:
        with pytest.raises(DimensionMismatchError):
            cosine_similarity_matrix([1.0, 2.0, 3.0], np.ones((2, 2)))
