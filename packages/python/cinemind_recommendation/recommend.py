from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from cinemind_core.config import Settings, load_settings
from cinemind_core.types import (
    CandidateItem,
    DislikedItem,
    Embedding,
    GenreLookup,
    LikedItem,
    MediaId,
    RecommendationFilters,
)
from cinemind_logging.rank_logger import RankTelemetryLogger
from cinemind_ranking.match_score import EmbeddingFetcher, MatchScore, MatchScoreAnnotator
from cinemind_ranking.normalization import NormalizationCache, ScoreNormalizer
from cinemind_ranking.ranker import RecommendationRanker
from cinemind_ranking.sorting import sort_items
from cinemind_ranking.types import ScoredItem
from cinemind_tmdb.genre_cache import (
    CachedGenreLookup,
    GenreCache,
    InMemoryGenreCache,
    RedisGenreCache,
)
from cinemind_tmdb.redis_infra import make_redis_client
from cinemind_tmdb.tmdb_client import TMDBGenreClient
from cinemind_user.embeddings import parse_embedding
from cinemind_user.preferences import add_preference_flags
from cinemind_user.taste import taste_builder

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecommendationStatus:
    liked_items: int
    disliked_items: int
    reference_items: int  # with a usable embedding
    all_reference_items: int
    can_generate_recommendations: bool


class RecommendationEngine:
    """
    Host-facing entry point. Owns the one piece of shared mutable state, the
    NormalizationCache; the host must call `on_preferences_changed()` after
    any like/dislike write and `on_catalog_refreshed()` after catalog updates.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        cache: NormalizationCache | None = None,
        genre_lookup: GenreLookup | None = None,
        telemetry: RankTelemetryLogger | None = None,
    ) -> None:
        self.settings = settings or Settings()
        s = self.settings
        self.cache = cache or NormalizationCache(ttl_sec=s.normalization_ttl_sec)
        normalizer = ScoreNormalizer(min_range=s.normalization_min_range)
        self.genre_lookup = genre_lookup
        self.telemetry = telemetry
        self.ranker = RecommendationRanker(
            self.cache,
            genre_lookup=genre_lookup,
            normalizer=normalizer,
            explanation_budget=s.explanation_budget,
            explanation_top_k=s.explanation_top_k,
            genre_concurrency=s.genre_lookup_concurrency,
        )
        self.annotator = MatchScoreAnnotator(self.cache, normalizer=normalizer)
        self._owned_clients: list[Any] = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RecommendationEngine":
        s = settings or load_settings()
        genre_lookup: GenreLookup | None = None
        owned: list[Any] = []
        if s.tmdb_api_key:
            tmdb = TMDBGenreClient(
                s.tmdb_api_key,
                max_connections=s.genre_lookup_concurrency,
                timeout=s.tmdb_timeout_sec,
            )
            owned.append(tmdb)
            cache: GenreCache
            if s.use_redis_genre_cache and s.redis_url:
                cache = RedisGenreCache(
                    client=make_redis_client(s.redis_url),
                    namespace=s.genre_cache_namespace,
                    ttl_sec=s.genre_cache_ttl_sec,
                )
            else:
                cache = InMemoryGenreCache(ttl_sec=s.genre_cache_ttl_sec)
            genre_lookup = CachedGenreLookup(tmdb, cache)
        else:
            log.warning("CINEMIND_TMDB_API_KEY not set; genre filters use catalog genre_ids")

        telemetry = RankTelemetryLogger(
            s.telemetry_url, s.telemetry_api_key, sample=s.telemetry_sample
        )
        engine = cls(settings=s, genre_lookup=genre_lookup, telemetry=telemetry)
        engine._owned_clients = owned
        return engine

    # ---- scoring ----
    def build_taste_vector(
        self,
        liked_embeddings: Sequence[Any],
        disliked_embeddings: Sequence[Any],
        dislike_weight: float | None = None,
    ) -> Embedding | None:
        w = self.settings.default_dislike_weight if dislike_weight is None else dislike_weight
        return taste_builder.build_taste_vector(liked_embeddings, disliked_embeddings, w)

    async def rank_recommendations(
        self,
        liked: Sequence[LikedItem],
        disliked: Sequence[DislikedItem],
        dislike_weight: float | None,
        candidates: Sequence[CandidateItem],
        filters: RecommendationFilters | None = None,
        limit: int | None = None,
    ) -> list[ScoredItem]:
        w = taste_builder.clamp_dislike_weight(
            self.settings.default_dislike_weight if dislike_weight is None else dislike_weight
        )
        n = self.settings.default_limit if limit is None else limit
        items, stats = await self.ranker.rank_with_stats(
            liked, disliked, w, candidates, filters, n
        )
        if self.telemetry is not None:
            await self.telemetry.log_rank_run(
                stats=stats, items=items, dislike_weight=w, limit=n
            )
        return items

    def annotate_with_match_score(
        self,
        items: Sequence[Mapping[str, Any]],
        liked_embeddings: Sequence[Any],
        disliked_embeddings: Sequence[Any],
        dislike_weight: float | None = None,
        *,
        get_item_embeddings: EmbeddingFetcher | None = None,
        reference: Sequence[CandidateItem] | None = None,
        liked_ids: Iterable[MediaId] | None = None,
        disliked_ids: Iterable[MediaId] | None = None,
        sort_by: str | None = None,
    ) -> list[Any]:
        """
        Search/discover path: match scores, then `is_liked`/`is_disliked` flags
        when ids are given, then `sort_items` ordering when `sort_by` is set.
        """
        w = self.settings.default_dislike_weight if dislike_weight is None else dislike_weight
        out = self.annotator.annotate(
            items,
            liked_embeddings,
            disliked_embeddings,
            w,
            get_item_embeddings=get_item_embeddings,
            reference=reference,
        )
        if liked_ids is not None or disliked_ids is not None:
            out = add_preference_flags(out, liked_ids or (), disliked_ids or ())
        if sort_by:
            out = sort_items(out, sort_by)
        return out

    def match_score(
        self,
        candidate: CandidateItem,
        liked_embeddings: Sequence[Any],
        disliked_embeddings: Sequence[Any],
        dislike_weight: float | None = None,
        *,
        reference: Sequence[CandidateItem] | None = None,
    ) -> MatchScore | None:
        w = self.settings.default_dislike_weight if dislike_weight is None else dislike_weight
        return self.annotator.score_one(
            candidate, liked_embeddings, disliked_embeddings, w, reference=reference
        )

    # ---- invalidation hooks ----
    def on_preferences_changed(self) -> None:
        self.cache.invalidate()

    def on_catalog_refreshed(self) -> None:
        self.cache.invalidate()

    # ---- status ----
    @staticmethod
    def status(
        liked: Sequence[LikedItem],
        disliked: Sequence[DislikedItem],
        reference: Sequence[CandidateItem],
    ) -> RecommendationStatus:
        usable = sum(1 for c in reference if parse_embedding(c.embedding) is not None)
        return RecommendationStatus(
            liked_items=len(liked),
            disliked_items=len(disliked),
            reference_items=usable,
            all_reference_items=len(reference),
            can_generate_recommendations=len(liked) > 0 and usable > 0,
        )

    async def aclose(self) -> None:
        for c in self._owned_clients:
            await c.aclose()
        self._owned_clients = []


# ---- plain-function surface ----
def build_taste_vector(
    liked_embeddings: Sequence[Any],
    disliked_embeddings: Sequence[Any],
    dislike_weight: float,
) -> Embedding | None:
    return taste_builder.build_taste_vector(
        liked_embeddings, disliked_embeddings, dislike_weight
    )


async def rank_recommendations(
    liked: Sequence[LikedItem],
    disliked: Sequence[DislikedItem],
    dislike_weight: float,
    candidates: Sequence[CandidateItem],
    filters: RecommendationFilters | None = None,
    limit: int = 20,
    *,
    cache: NormalizationCache,
    genre_lookup: GenreLookup | None = None,
) -> list[ScoredItem]:
    ranker = RecommendationRanker(cache, genre_lookup=genre_lookup)
    return await ranker.rank(liked, disliked, dislike_weight, candidates, filters, limit)


def annotate_with_match_score(
    items: Sequence[Mapping[str, Any]],
    liked_embeddings: Sequence[Any],
    disliked_embeddings: Sequence[Any],
    dislike_weight: float,
    *,
    cache: NormalizationCache,
    get_item_embeddings: EmbeddingFetcher | None = None,
    reference: Sequence[CandidateItem] | None = None,
) -> list[Any]:
    return MatchScoreAnnotator(cache).annotate(
        items,
        liked_embeddings,
        disliked_embeddings,
        dislike_weight,
        get_item_embeddings=get_item_embeddings,
        reference=reference,
    )
