import json

import numpy as np
import pytest

from cinemind_core.errors import InvalidDislikeWeight
from cinemind_user.embeddings import parse_embedding, stringify_embedding
from cinemind_user.taste.taste_builder import build_taste_vector, clamp_dislike_weight
from cinemind_user.taste.vector_math import average, cosine_similarity


LIKED = [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
DISLIKED = [[0.0, 1.0, 1.0]]


@pytest.mark.parametrize("w", [0.0, 0.3, 0.5, 1.0])
def test_no_likes_returns_none(w):
    assert build_taste_vector([], DISLIKED, w) is None


def test_only_unparseable_likes_returns_none():
    assert build_taste_vector(["not json", None, "[]"], [], 0.5) is None


def test_zero_weight_ignores_dislikes():
    out = build_taste_vector(LIKED, DISLIKED, 0.0)
    expected = average([np.asarray(v, dtype=np.float32) for v in LIKED])
    assert cosine_similarity(out, expected) == pytest.approx(1.0, abs=1e-5)
    assert float(np.linalg.norm(out)) == pytest.approx(1.0, abs=1e-5)


def test_no_dislikes_returns_unit_liked_average():
    out = build_taste_vector(LIKED, [], 0.8)
    assert out.tolist() == pytest.approx([0.70711, 0.70711, 0.0], abs=1e-5)


def test_weighted_difference_of_unit_means():
    out = build_taste_vector(LIKED, DISLIKED, 0.5)
    # unit([0.7071, 0.7071, 0] - 0.5 * [0, 0.7071, 0.7071])
    assert out.tolist() == pytest.approx([0.81650, 0.40825, -0.40825], abs=1e-5)


def test_varied_likes_are_not_swamped_by_dislikes():
    # mean of two orthogonal likes is short; it is scaled up before subtracting
    taste = build_taste_vector([[1.0, 0.0], [0.0, 1.0]], [[1.0, 0.0]], 1.0)
    assert cosine_similarity(taste, [0.0, 1.0]) > cosine_similarity(taste, [-1.0, 0.1])


def test_dislike_influence_grows_with_weight():
    disliked_vec = DISLIKED[0]
    sims = [
        cosine_similarity(build_taste_vector(LIKED, DISLIKED, w), disliked_vec)
        for w in (0.0, 0.25, 0.5, 0.75, 1.0)
    ]
    assert sims == sorted(sims, reverse=True)
    assert sims[0] > sims[-1]


def test_out_of_range_weight_is_clamped():
    assert build_taste_vector(LIKED, DISLIKED, 7.0).tolist() == pytest.approx(
        build_taste_vector(LIKED, DISLIKED, 1.0).tolist()
    )
    assert build_taste_vector(LIKED, DISLIKED, -2.0).tolist() == pytest.approx(
        build_taste_vector(LIKED, DISLIKED, 0.0).tolist()
    )


def test_collapsed_vector_falls_back_to_likes():
    # identical likes and dislikes with weight 1 cancel out
    out = build_taste_vector([[1.0, 0.0]], [[1.0, 0.0]], 1.0)
    assert out.tolist() == pytest.approx([1.0, 0.0])


def test_disliked_dimension_mismatch_uses_likes_only():
    out = build_taste_vector([[1.0, 0.0]], [[0.0, 1.0, 0.0]], 1.0)
    assert out.tolist() == pytest.approx([1.0, 0.0])


def test_accepts_json_storage_form():
    out = build_taste_vector([json.dumps([1.0, 0.0])], [], 0.5)
    assert out.tolist() == pytest.approx([1.0, 0.0])


@pytest.mark.parametrize("bad", ["abc", None, float("nan"), [0.5]])
def test_malformed_weight_raises(bad):
    with pytest.raises(InvalidDislikeWeight):
        clamp_dislike_weight(bad)


def test_clamp_accepts_numeric_strings():
    assert clamp_dislike_weight("0.25") == 0.25


def test_parse_embedding_variants():
    assert parse_embedding("[1, 2.5]").tolist() == [1.0, 2.5]
    assert parse_embedding((1, 2)).tolist() == [1.0, 2.0]
    assert parse_embedding(np.array([3.0])).tolist() == [3.0]
    assert parse_embedding("{bad") is None
    assert parse_embedding([]) is None
    assert parse_embedding([[1.0], [2.0]]) is None
    assert parse_embedding([1.0, float("inf")]) is None
    assert parse_embedding(["a", "b"]) is None


def test_stringify_embedding():
    s = stringify_embedding(np.array([0.5, 1.0], dtype=np.float32))
    assert json.loads(s) == [0.5, 1.0]
