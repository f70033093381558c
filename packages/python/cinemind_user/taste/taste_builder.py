from __future__ import annotations

import logging
import math
from typing import Any, Sequence

import numpy as np

from cinemind_core.errors import InvalidDislikeWeight
from cinemind_core.types import Embedding
from cinemind_user.embeddings import parse_embedding
from cinemind_user.taste.vector_math import average, l2, norm, weighted_difference

log = logging.getLogger(__name__)

# below this the refined vector has no usable direction
MIN_TASTE_NORM = 1e-4


def clamp_dislike_weight(value: Any) -> float:
    """Coerce to float and clamp to [0, 1]. Non-numeric or NaN input is a caller bug."""
    if isinstance(value, bool):
        raise InvalidDislikeWeight(f"dislike_weight must be a number, got {value!r}")
    try:
        w = float(value)
    except (TypeError, ValueError):
        raise InvalidDislikeWeight(f"dislike_weight must be a number, got {value!r}")
    if math.isnan(w):
        raise InvalidDislikeWeight("dislike_weight is NaN")
    return max(0.0, min(1.0, w))


def _usable(embeddings: Sequence[Any]) -> list[np.ndarray]:
    out: list[np.ndarray] = []
    for e in embeddings:
        v = parse_embedding(e)
        if v is not None:
            out.append(v)
    return out


def _common_dim(vecs: list[np.ndarray], label: str) -> list[np.ndarray]:
    # keep the majority dimension; stray vectors are data errors, not caller bugs
    if not vecs:
        return vecs
    dims = [v.shape[0] for v in vecs]
    dim = max(set(dims), key=dims.count)
    kept = [v for v in vecs if v.shape[0] == dim]
    if len(kept) != len(vecs):
        log.warning(
            "Dropped %d %s embeddings with unexpected dimension (expected %d)",
            len(vecs) - len(kept),
            label,
            dim,
        )
    return kept


def _unit(v: np.ndarray) -> np.ndarray:
    # near-zero vectors have no direction to keep; leave them as they are
    return l2(v) if norm(v) > MIN_TASTE_NORM else v


def build_taste_vector(
    liked_embeddings: Sequence[Any],
    disliked_embeddings: Sequence[Any],
    dislike_weight: float,
) -> Embedding | None:
    """
    Taste vector = unit(unit(mean(liked)) - dislike_weight * unit(mean(disliked))).

    Both means are scaled to unit length before the subtraction so a varied
    liked set (short mean) is not swamped by a tight disliked set.

    - None when there are no usable liked embeddings (no opinion possible).
    - dislike_weight == 0 returns unit(mean(liked)).
    - Falls back to unit(mean(liked)) if dislikes have another dimension or if
      the difference collapses to (near) zero.
    """
    w = clamp_dislike_weight(dislike_weight)

    liked = _common_dim(_usable(liked_embeddings), "liked")
    if not liked:
        return None
    avg_liked = _unit(average(liked))

    disliked = _common_dim(_usable(disliked_embeddings or []), "disliked")
    if not disliked or w == 0.0:
        return avg_liked

    avg_disliked = _unit(average(disliked))
    if avg_disliked.shape != avg_liked.shape:
        log.warning(
            "Liked and disliked embeddings have different dimensions, using liked vector only"
        )
        return avg_liked

    refined = weighted_difference(avg_liked, avg_disliked, w)
    if norm(refined) < MIN_TASTE_NORM:
        log.warning("Refined taste vector norm too small, using liked vector only")
        return avg_liked
    return l2(refined)
