from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from cinemind_core.errors import GenreLookupError
from cinemind_core.types import GenreLookup, RecommendationFilters
from cinemind_ranking.types import RankStats, ScoredItem

log = logging.getLogger(__name__)


def parse_release_date(s: str | None) -> datetime | None:
    if not s or not isinstance(s, str):
        return None
    try:
        # Accept "YYYY-MM-DD" or full ISO. If 'Z' present, normalize to +00:00.
        if s.endswith("Z"):
            return datetime.fromisoformat(s.replace("Z", "+00:00"))
        if len(s) == 10 and s[4] == "-" and s[7] == "-":
            return datetime.fromisoformat(s + "T00:00:00+00:00")
        rd = datetime.fromisoformat(s)
    except ValueError:
        return None
    return rd if rd.tzinfo else rd.replace(tzinfo=timezone.utc)


def release_year(metadata: Mapping[str, Any]) -> int | None:
    rd = parse_release_date(metadata.get("release_date"))
    return rd.year if rd else None


def rating_of(metadata: Mapping[str, Any]) -> float | None:
    v = metadata.get("vote_average")
    try:
        return float(v) if v is not None else None
    except (TypeError, ValueError):
        return None


def passes_year(metadata: Mapping[str, Any], filters: RecommendationFilters) -> bool:
    if not filters.has_year_filter:
        return True
    year = release_year(metadata)
    if year is None:
        return False
    if filters.min_year is not None and year < filters.min_year:
        return False
    if filters.max_year is not None and year > filters.max_year:
        return False
    return True


def passes_rating(metadata: Mapping[str, Any], filters: RecommendationFilters) -> bool:
    if filters.min_rating is None:
        return True
    rating = rating_of(metadata)
    return rating is not None and rating >= filters.min_rating


def apply_metadata_filters(
    items: Sequence[ScoredItem], filters: RecommendationFilters, stats: RankStats
) -> list[ScoredItem]:
    """Year range first, then minimum rating. Order of `items` is preserved."""
    out: list[ScoredItem] = []
    for s in items:
        meta = s.item.metadata
        if not passes_year(meta, filters):
            stats.filtered_year += 1
            continue
        if not passes_rating(meta, filters):
            stats.filtered_rating += 1
            continue
        out.append(s)
    return out


async def _genres_for(
    item: ScoredItem, lookup: GenreLookup | None, sem: asyncio.Semaphore
) -> list[int]:
    if lookup is None:
        # no collaborator wired: fall back to ids carried in the catalog payload
        ids = item.item.metadata.get("genre_ids")
        if ids is None:
            raise GenreLookupError(item.item_id, "no genre_ids in metadata")
        return [int(g) for g in ids]
    async with sem:
        return list(await lookup.fetch_genre_ids(item.item_id))


async def apply_genre_filter(
    items: Sequence[ScoredItem],
    filters: RecommendationFilters,
    stats: RankStats,
    *,
    lookup: GenreLookup | None,
    limit: int | None = None,
    concurrency: int = 15,
) -> list[ScoredItem]:
    """
    Keep items sharing at least one genre with `filters.genre_ids`.

    Lookups run concurrently (bounded by `concurrency`) in sorted-order batches
    and stop once `limit` items have passed, since later ones would be cut
    anyway. A failed lookup drops that item only.
    """
    if not filters.has_genre_filter:
        return list(items)
    wanted = set(filters.genre_ids)
    sem = asyncio.Semaphore(max(1, concurrency))
    kept: list[ScoredItem] = []
    pos = 0
    while pos < len(items):
        if limit is not None and len(kept) >= limit:
            break
        need = (limit - len(kept)) if limit is not None else len(items)
        batch = list(items[pos : pos + max(need, concurrency)])
        pos += len(batch)
        results = await asyncio.gather(
            *(_genres_for(s, lookup, sem) for s in batch), return_exceptions=True
        )
        stats.genre_lookups += len(batch)
        for s, res in zip(batch, results):
            if isinstance(res, asyncio.CancelledError):
                raise res
            if isinstance(res, Exception):
                stats.genre_failures += 1
                stats.failed_ids.append(s.item_id)
                log.warning("Genre lookup failed for item %s: %s", s.item_id, res)
                continue
            if wanted & set(res):
                kept.append(s)
            else:
                stats.filtered_genre += 1
    return kept

