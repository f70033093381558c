from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any

import numpy as np

from cinemind_core.types import CandidateItem, MediaId


@dataclass(frozen=True)
class SimilarLikedItem:
    item_id: MediaId
    similarity: float


@dataclass(frozen=True)
class ScoredItem:
    """
    Immutable ranking result wrapping the original candidate.

    `normalized_similarity` is the headline score; it equals `raw_similarity`
    when no normalization range was available (`normalized` is then False).
    """

    item: CandidateItem
    raw_similarity: float
    normalized_similarity: float
    normalized: bool = False
    similar_liked: tuple[SimilarLikedItem, ...] | None = None
    # parsed candidate embedding, kept for explanations; not part of the result
    vector: np.ndarray | None = field(default=None, repr=False, compare=False)

    @property
    def item_id(self) -> MediaId:
        return self.item.item_id

    @property
    def similarity(self) -> float:
        return self.normalized_similarity

    def with_explanation(self, similar: tuple[SimilarLikedItem, ...]) -> "ScoredItem":
        return replace(self, similar_liked=similar)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            **self.item.metadata,
            "item_id": self.item_id,
            "similarity": self.similarity,
            "raw_similarity": self.raw_similarity,
            "normalized_similarity": self.normalized_similarity,
        }
        if self.similar_liked is not None:
            out["similar_liked"] = [asdict(s) for s in self.similar_liked]
        return out


@dataclass
class RankStats:
    candidates: int = 0
    scored: int = 0
    skipped: int = 0  # missing / unparseable embeddings
    failed: int = 0  # scoring errors (e.g. dimension mismatch)
    filtered_year: int = 0
    filtered_rating: int = 0
    filtered_genre: int = 0
    genre_failures: int = 0
    genre_lookups: int = 0
    returned: int = 0
    explained: int = 0
    cache_hit: bool | None = None
    normalized: bool = False
    elapsed_ms: int = 0
    failed_ids: list[MediaId] = field(default_factory=list)
