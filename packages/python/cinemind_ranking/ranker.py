from __future__ import annotations

import logging
import time
from typing import Sequence

import anyio.lowlevel
import numpy as np

from cinemind_core.config import EXPLANATION_BUDGET, EXPLANATION_TOP_K
from cinemind_core.errors import CineMindError
from cinemind_core.types import (
    CandidateItem,
    DislikedItem,
    GenreLookup,
    LikedItem,
    RecommendationFilters,
)
from cinemind_ranking.explanations import LikedMatrix, similar_liked_items
from cinemind_ranking.filters import apply_genre_filter, apply_metadata_filters
from cinemind_ranking.normalization import (
    NormalizationCache,
    ScoreNormalizer,
    cache_key_for,
    params_from_scores,
)
from cinemind_ranking.types import RankStats, ScoredItem
from cinemind_user.embeddings import parse_embedding
from cinemind_user.taste.taste_builder import build_taste_vector, clamp_dislike_weight
from cinemind_user.taste.vector_math import cosine_similarity

log = logging.getLogger(__name__)


class RecommendationRanker:
    """
    Score -> sort -> filter -> normalize -> truncate -> explain.

      1) taste vector from likes/dislikes (no likes -> [])
      2) raw cosine per candidate; unusable embeddings are skipped and counted
      3) stable sort by raw similarity, descending
      4) year, rating, then genre filters (genre is the only I/O step)
      5) normalize against the cached [min, max] for this dislike weight
      6) truncate to `limit`
      7) "similar liked items" for the first min(budget, limit) results
    """

    def __init__(
        self,
        cache: NormalizationCache,
        *,
        genre_lookup: GenreLookup | None = None,
        normalizer: ScoreNormalizer | None = None,
        explanation_budget: int = EXPLANATION_BUDGET,
        explanation_top_k: int = EXPLANATION_TOP_K,
        genre_concurrency: int = 15,
    ) -> None:
        self.cache = cache
        self.genre_lookup = genre_lookup
        self.normalizer = normalizer or ScoreNormalizer()
        self.explanation_budget = explanation_budget
        self.explanation_top_k = explanation_top_k
        self.genre_concurrency = genre_concurrency

    async def rank(
        self,
        liked: Sequence[LikedItem],
        disliked: Sequence[DislikedItem],
        dislike_weight: float,
        candidates: Sequence[CandidateItem],
        filters: RecommendationFilters | None = None,
        limit: int = 20,
    ) -> list[ScoredItem]:
        items, _ = await self.rank_with_stats(
            liked, disliked, dislike_weight, candidates, filters, limit
        )
        return items

    async def rank_with_stats(
        self,
        liked: Sequence[LikedItem],
        disliked: Sequence[DislikedItem],
        dislike_weight: float,
        candidates: Sequence[CandidateItem],
        filters: RecommendationFilters | None = None,
        limit: int = 20,
    ) -> tuple[list[ScoredItem], RankStats]:
        t0 = time.perf_counter()
        stats = RankStats(candidates=len(candidates))
        filters = filters or RecommendationFilters()
        w = clamp_dislike_weight(dislike_weight)

        # 1) taste vector
        taste = build_taste_vector(
            [it.embedding for it in liked], [it.embedding for it in disliked], w
        )
        if taste is None or limit <= 0:
            return [], self._finish(stats, t0)

        # 2) raw scores
        scored = self._score_all(taste, candidates, stats)

        # 3) stable sort, ties keep input order
        scored.sort(key=lambda s: -s.raw_similarity)

        # 4) post-hoc filters, cheapest first
        survivors = apply_metadata_filters(scored, filters, stats)
        await anyio.lowlevel.checkpoint()
        survivors = await apply_genre_filter(
            survivors,
            filters,
            stats,
            lookup=self.genre_lookup,
            limit=limit,
            concurrency=self.genre_concurrency,
        )

        # 5) normalize against the whole reference set's range
        key = cache_key_for(w)
        computed = False

        def compute():
            nonlocal computed
            computed = True
            return params_from_scores([s.raw_similarity for s in scored])

        params = self.cache.get_or_compute(key, compute)
        stats.cache_hit = not computed
        normalized = self.normalizer.can_normalize(params)
        stats.normalized = normalized

        # 6) truncate
        top = [
            ScoredItem(
                item=s.item,
                raw_similarity=s.raw_similarity,
                normalized_similarity=self.normalizer.normalize(s.raw_similarity, params),
                normalized=normalized,
                vector=s.vector,
            )
            for s in survivors[:limit]
        ]

        # 7) bounded-cost explanations
        await anyio.lowlevel.checkpoint()
        top = self._explain(top, liked, stats)

        stats.returned = len(top)
        return top, self._finish(stats, t0)

    def _score_all(
        self,
        taste: np.ndarray,
        candidates: Sequence[CandidateItem],
        stats: RankStats,
    ) -> list[ScoredItem]:
        scored: list[ScoredItem] = []
        for c in candidates:
            vec = parse_embedding(c.embedding)
            if vec is None:
                stats.skipped += 1
                log.debug("Skipping candidate %s: no usable embedding", c.item_id)
                continue
            try:
                raw = cosine_similarity(taste, vec)
            except CineMindError as e:
                stats.failed += 1
                stats.failed_ids.append(c.item_id)
                log.warning("Failed to score candidate %s: %s", c.item_id, e)
                continue
            scored.append(
                ScoredItem(
                    item=c, raw_similarity=raw, normalized_similarity=raw, vector=vec
                )
            )
        stats.scored = len(scored)
        return scored

    def _explain(
        self,
        top: list[ScoredItem],
        liked: Sequence[LikedItem],
        stats: RankStats,
    ) -> list[ScoredItem]:
        budget = min(self.explanation_budget, len(top))
        if budget <= 0:
            return top
        liked_matrix = LikedMatrix.from_items(liked)
        out = list(top)
        for i in range(budget):
            s = out[i]
            try:
                similar = similar_liked_items(
                    s.vector, liked_matrix, self.explanation_top_k
                )
            except CineMindError as e:
                log.warning("No explanation for item %s: %s", s.item_id, e)
                continue
            out[i] = s.with_explanation(similar)
            stats.explained += 1
        return out

    @staticmethod
    def _finish(stats: RankStats, t0: float) -> RankStats:
        stats.elapsed_ms = int((time.perf_counter() - t0) * 1000)
        log.info(
            "rank: candidates=%d scored=%d skipped=%d failed=%d "
            "filtered(year=%d rating=%d genre=%d) genre_failures=%d returned=%d "
            "cache_hit=%s elapsed_ms=%d",
            stats.candidates,
            stats.scored,
            stats.skipped,
            stats.failed,
            stats.filtered_year,
            stats.filtered_rating,
            stats.filtered_genre,
            stats.genre_failures,
            stats.returned,
            stats.cache_hit,
            stats.elapsed_ms,
        )
        return stats
