from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from cinemind_ranking.filters import parse_release_date

Item = Mapping[str, Any]

SORT_OPTIONS = (
    "default",
    "rating-desc",
    "rating-asc",
    "release-desc",
    "release-asc",
    "popularity-desc",
    "popularity-asc",
    "title-asc",
    "title-desc",
    "match-desc",
)


def _num(field: str) -> Callable[[Item], float]:
    def key(it: Item) -> float:
        try:
            return float(it.get(field) or 0.0)
        except (TypeError, ValueError):
            return 0.0

    return key


def _title(it: Item) -> str:
    return str(it.get("title") or "").lower()


def _sort_missing_last(
    items: list[Item], field: str, *, reverse: bool
) -> list[Item]:
    # items without a value always go last, in their original order
    has, missing = [], []
    for it in items:
        (has if it.get(field) is not None else missing).append(it)
    return sorted(has, key=lambda it: it[field], reverse=reverse) + missing


def sort_items(items: Sequence[Item], sort_by: str = "default") -> list[Item]:
    """Return a sorted copy. Unknown options keep the original order."""
    out = list(items)
    if not out:
        return out

    if sort_by == "rating-desc":
        out.sort(key=_num("vote_average"), reverse=True)
    elif sort_by == "rating-asc":
        out.sort(key=_num("vote_average"))
    elif sort_by in ("release-desc", "release-asc"):
        dated = [
            {"_ts": parse_release_date(it.get("release_date")), "_it": it}
            for it in out
        ]
        ordered = _sort_missing_last(dated, "_ts", reverse=sort_by == "release-desc")
        out = [d["_it"] for d in ordered]
    elif sort_by == "popularity-desc":
        out.sort(key=_num("popularity"), reverse=True)
    elif sort_by == "popularity-asc":
        out.sort(key=_num("popularity"))
    elif sort_by == "title-asc":
        out.sort(key=_title)
    elif sort_by == "title-desc":
        out.sort(key=_title, reverse=True)
    elif sort_by == "match-desc":
        out = _sort_missing_last(out, "similarity", reverse=True)
    return out
