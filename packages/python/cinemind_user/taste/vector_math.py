from __future__ import annotations

from typing import Sequence

import numpy as np

from cinemind_core.errors import DimensionMismatch, EmptyInput
from cinemind_core.types import Embedding


# ---- small utils ----
def dot(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape != b.shape:
        raise DimensionMismatch(f"dot: {a.shape} vs {b.shape}")
    return float(np.dot(a, b))


def norm(x: np.ndarray) -> float:
    return float(np.linalg.norm(x))


# L2 normalization
def l2(x: np.ndarray) -> np.ndarray:
    n = norm(x)
    return x if n == 0 else x / n


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """
    Cosine of the angle between a and b, in [-1, 1].

    Returns 0.0 for missing/empty input or a zero vector.
    Raises DimensionMismatch when lengths differ.
    """
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.size == 0 or vb.size == 0:
        return 0.0
    if va.shape != vb.shape:
        raise DimensionMismatch(
            f"Embeddings must have the same dimension ({va.size} vs {vb.size})"
        )
    na, nb = norm(va), norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    sim = float(np.dot(va, vb)) / (na * nb)
    # float32 rounding can leave |sim| a hair above 1
    return max(-1.0, min(1.0, sim))


def average(vectors: Sequence[np.ndarray]) -> Embedding:
    if not vectors:
        raise EmptyInput("average() of an empty list")
    dim = len(vectors[0])
    if any(len(v) != dim for v in vectors):
        raise DimensionMismatch("average(): vectors have different dimensions")
    return np.mean(np.asarray(vectors, dtype=np.float32), axis=0).astype(np.float32)


def weighted_difference(
    avg_liked: np.ndarray, avg_disliked: np.ndarray | None, weight: float
) -> Embedding:
    """avg_liked - weight * avg_disliked, or avg_liked when there is nothing to subtract."""
    if avg_disliked is None:
        return avg_liked
    if avg_liked.shape != avg_disliked.shape:
        raise DimensionMismatch(
            f"weighted_difference: {avg_liked.shape} vs {avg_disliked.shape}"
        )
    return (avg_liked - np.float32(weight) * avg_disliked).astype(np.float32)


def cosine_many(taste: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Row-wise cosine between `taste` and each row of `matrix`; zero rows score 0."""
    if matrix.size == 0:
        return np.zeros((0,), dtype=np.float32)
    if matrix.shape[1] != taste.shape[0]:
        raise DimensionMismatch(
            f"cosine_many: taste dim {taste.shape[0]} vs rows {matrix.shape[1]}"
        )
    nt = norm(taste)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * nt
    dots = matrix @ taste
    out = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.clip(out, -1.0, 1.0)
