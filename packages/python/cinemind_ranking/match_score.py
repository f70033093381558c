from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from cinemind_core.errors import CineMindError
from cinemind_core.types import CandidateItem, Embedding, MediaId, NormalizationParams
from cinemind_ranking.normalization import (
    NormalizationCache,
    ScoreNormalizer,
    cache_key_for,
    compute_normalization_params,
)
from cinemind_user.embeddings import parse_embedding
from cinemind_user.preferences import item_id_of
from cinemind_user.taste.taste_builder import build_taste_vector, clamp_dislike_weight
from cinemind_user.taste.vector_math import cosine_similarity

log = logging.getLogger(__name__)

EmbeddingFetcher = Callable[[Sequence[MediaId]], Mapping[MediaId, Any]]


@dataclass(frozen=True)
class MatchScore:
    similarity: float  # normalized when possible, raw otherwise
    normalized_similarity: float
    raw_similarity: float


class MatchScoreAnnotator:
    """
    Adds match scores to lists assembled elsewhere (search results, similar
    titles, detail pages). No filtering, sorting or explanations.
    """

    def __init__(
        self, cache: NormalizationCache, *, normalizer: ScoreNormalizer | None = None
    ) -> None:
        self.cache = cache
        self.normalizer = normalizer or ScoreNormalizer()

    def _params(
        self,
        taste: Embedding,
        dislike_weight: float,
        reference: Sequence[CandidateItem] | None,
    ) -> NormalizationParams | None:
        key = cache_key_for(dislike_weight)
        if reference is None:
            # no catalog handed in: use whatever the ranker left in the cache
            return self.cache.get_params(key)
        return self.cache.get_or_compute(
            key, lambda: compute_normalization_params(taste, reference)
        )

    def _score(
        self, taste: Embedding, vec: Embedding, params: NormalizationParams | None
    ) -> MatchScore:
        raw = cosine_similarity(taste, vec)
        norm = self.normalizer.normalize(raw, params)
        return MatchScore(similarity=norm, normalized_similarity=norm, raw_similarity=raw)

    def annotate(
        self,
        items: Sequence[Mapping[str, Any]],
        liked_embeddings: Sequence[Any],
        disliked_embeddings: Sequence[Any],
        dislike_weight: float,
        *,
        get_item_embeddings: EmbeddingFetcher | None = None,
        reference: Sequence[CandidateItem] | None = None,
    ) -> list[Any]:
        """
        Return the items with `similarity`, `normalized_similarity` and
        `raw_similarity` added. Inputs are never mutated; items without a
        usable embedding come back as-is. No likes -> input returned unchanged.
        """
        w = clamp_dislike_weight(dislike_weight)
        taste = build_taste_vector(liked_embeddings, disliked_embeddings, w)
        if taste is None or not items:
            return list(items)

        params = self._params(taste, w, reference)

        ids = [mid for mid in (item_id_of(it) for it in items) if mid is not None]
        fetched: Mapping[MediaId, Any] = (
            get_item_embeddings(ids) if get_item_embeddings and ids else {}
        )

        out: list[Any] = []
        for it in items:
            mid = item_id_of(it)
            vec = parse_embedding(
                fetched.get(mid) if mid in fetched else it.get("embedding")
            )
            if vec is None:
                out.append(it)
                continue
            try:
                score = self._score(taste, vec, params)
            except CineMindError as e:
                log.warning("Failed to score item %s: %s", mid, e)
                out.append(it)
                continue
            out.append(
                {
                    **it,
                    "similarity": score.similarity,
                    "normalized_similarity": score.normalized_similarity,
                    "raw_similarity": score.raw_similarity,
                }
            )
        return out

    def score_one(
        self,
        candidate: CandidateItem,
        liked_embeddings: Sequence[Any],
        disliked_embeddings: Sequence[Any],
        dislike_weight: float,
        *,
        reference: Sequence[CandidateItem] | None = None,
    ) -> MatchScore | None:
        w = clamp_dislike_weight(dislike_weight)
        taste = build_taste_vector(liked_embeddings, disliked_embeddings, w)
        vec = parse_embedding(candidate.embedding)
        if taste is None or vec is None:
            return None
        try:
            return self._score(taste, vec, self._params(taste, w, reference))
        except CineMindError as e:
            log.warning("Failed to score item %s: %s", candidate.item_id, e)
            return None
