from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from cinemind_core.types import MediaId


def item_id_of(item: Mapping[str, Any]) -> MediaId | None:
    """Items from search/discover payloads carry either `tmdb_id` or `id`."""
    mid = item.get("tmdb_id") or item.get("id")
    try:
        return int(mid) if mid is not None else None
    except (TypeError, ValueError):
        return None


def add_preference_flags(
    items: Sequence[Mapping[str, Any]],
    liked_ids: Iterable[MediaId],
    disliked_ids: Iterable[MediaId],
) -> list[dict[str, Any]]:
    """Return copies of `items` with `is_liked` / `is_disliked` set."""
    liked = set(liked_ids)
    disliked = set(disliked_ids)
    out: list[dict[str, Any]] = []
    for item in items:
        mid = item_id_of(item)
        out.append(
            {
                **item,
                "is_liked": mid in liked,
                "is_disliked": mid in disliked,
            }
        )
    return out
