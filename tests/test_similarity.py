from __future__ import annotations

import math

import pytest

from knowledge.similarity import cosine_similarity


def test_vector_is_identical_to_itself() -> None:
    vector = [0.3, -1.2, 4.5, 0.01]
    assert math.isclose(cosine_similarity(vector, vector), 1.0, rel_tol=1e-9)


def test_zero_vector_scores_zero() -> None:
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0


def test_orthogonal_and_opposite_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert math.isclose(cosine_similarity([1.0, 2.0], [-1.0, -2.0]), -1.0, rel_tol=1e-9)


def test_length_mismatch_raises() -> None:
    with pytest.raises(ValueError, match="mismatch"):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])
