import pytest

from cinemind_core.types import CandidateItem, NormalizationParams
from cinemind_ranking.match_score import MatchScoreAnnotator
from cinemind_ranking.normalization import cache_key_for

LIKED = [[1.0, 0.0]]


def _search_results():
    return [
        {"id": 10, "title": "Close Match"},
        {"tmdb_id": 11, "title": "Orthogonal"},
        {"id": 12, "title": "Not In Catalog"},
    ]


def _embeddings(ids):
    known = {10: [1.0, 0.0], 11: "[0.0, 1.0]"}
    return {i: known[i] for i in ids if i in known}


def test_no_likes_returns_items_unchanged(cache):
    items = _search_results()
    out = MatchScoreAnnotator(cache).annotate(items, [], [[0.0, 1.0]], 0.5)
    assert out == items
    assert all("similarity" not in it for it in out)


def test_annotates_with_raw_scores_when_no_range_cached(cache):
    items = _search_results()
    out = MatchScoreAnnotator(cache).annotate(
        items, LIKED, [], 0.5, get_item_embeddings=_embeddings
    )
    assert out[0]["raw_similarity"] == pytest.approx(1.0)
    assert out[0]["similarity"] == pytest.approx(1.0)
    assert out[1]["raw_similarity"] == pytest.approx(0.0)
    assert "similarity" not in out[2]
    # inputs untouched
    assert "similarity" not in items[0]


def test_uses_cached_range(cache):
    cache.set_params(
        cache_key_for(0.5), NormalizationParams(min_similarity=0.0, max_similarity=1.0)
    )
    out = MatchScoreAnnotator(cache).annotate(
        _search_results(), LIKED, [], 0.5, get_item_embeddings=_embeddings
    )
    assert out[0]["normalized_similarity"] == pytest.approx(1.0)
    assert out[1]["normalized_similarity"] == pytest.approx(0.5)


def test_computes_range_from_reference_catalog(cache):
    reference = [
        CandidateItem(item_id=1, embedding=[1.0, 0.0]),
        CandidateItem(item_id=2, embedding=[-1.0, 0.0]),
    ]
    out = MatchScoreAnnotator(cache).annotate(
        [{"id": 5, "embedding": [0.0, 1.0]}], LIKED, [], 0.5, reference=reference
    )
    # raw 0.0 inside [-1, 1] -> 0.75
    assert out[0]["similarity"] == pytest.approx(0.75)
    assert cache.get_params(cache_key_for(0.5)) is not None


def test_item_with_wrong_dimension_is_left_unscored(cache):
    out = MatchScoreAnnotator(cache).annotate(
        [{"id": 1, "embedding": [1.0, 0.0, 0.0]}], LIKED, [], 0.5
    )
    assert out == [{"id": 1, "embedding": [1.0, 0.0, 0.0]}]


def test_score_one(cache):
    ann = MatchScoreAnnotator(cache)
    score = ann.score_one(CandidateItem(item_id=1, embedding=[1.0, 1.0]), LIKED, [], 0.5)
    assert score.raw_similarity == pytest.approx(0.7071, abs=1e-4)
    assert score.similarity == score.raw_similarity

    assert ann.score_one(CandidateItem(item_id=1, embedding=None), LIKED, [], 0.5) is None
    assert ann.score_one(CandidateItem(item_id=1, embedding=[1.0, 1.0]), [], [], 0.5) is None
