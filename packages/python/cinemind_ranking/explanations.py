from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from cinemind_core.config import EXPLANATION_TOP_K
from cinemind_core.types import LikedItem, MediaId
from cinemind_ranking.types import SimilarLikedItem
from cinemind_user.embeddings import parse_embedding
from cinemind_user.taste.vector_math import cosine_many

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikedMatrix:
    """Parsed liked embeddings stacked once per ranking call."""

    ids: tuple[MediaId, ...]
    matrix: np.ndarray  # (n_liked, dim)

    @classmethod
    def from_items(cls, liked: Sequence[LikedItem]) -> "LikedMatrix":
        ids: list[MediaId] = []
        rows: list[np.ndarray] = []
        for it in liked:
            v = parse_embedding(it.embedding)
            if v is None:
                continue
            if rows and v.shape != rows[0].shape:
                log.warning("Liked item %s has a mismatched dimension", it.item_id)
                continue
            ids.append(it.item_id)
            rows.append(v)
        matrix = np.vstack(rows) if rows else np.zeros((0, 0), dtype=np.float32)
        return cls(ids=tuple(ids), matrix=matrix)

    def __len__(self) -> int:
        return len(self.ids)


def similar_liked_items(
    candidate_vec: np.ndarray,
    liked: LikedMatrix,
    top_k: int = EXPLANATION_TOP_K,
) -> tuple[SimilarLikedItem, ...]:
    """Top-k liked items by cosine to the candidate; ties keep liked order."""
    if len(liked) == 0 or top_k <= 0:
        return ()
    sims = cosine_many(candidate_vec, liked.matrix)
    order = sorted(range(len(sims)), key=lambda i: -float(sims[i]))[:top_k]
    return tuple(
        SimilarLikedItem(item_id=liked.ids[i], similarity=float(sims[i]))
        for i in order
    )
