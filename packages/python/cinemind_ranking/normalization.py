from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from cinemind_core.config import (
    NORMALIZATION_BAND,
    NORMALIZATION_MIN_RANGE,
    NORMALIZATION_TTL_SEC,
)
from cinemind_core.errors import CineMindError
from cinemind_core.types import CandidateItem, Embedding, NormalizationParams
from cinemind_user.embeddings import parse_embedding
from cinemind_user.taste.vector_math import cosine_similarity

log = logging.getLogger(__name__)

Clock = Callable[[], float]


def cache_key_for(dislike_weight: float) -> str:
    """One cache line per scoring configuration (the dislike weight in use)."""
    return f"dislike:{float(dislike_weight):.4f}"


@dataclass(frozen=True)
class _Entry:
    params: NormalizationParams
    stored_at: float


class NormalizationCache:
    """
    Per-key [min, max] similarity ranges over the reference catalog.

    - Lazy expiry: entries older than `ttl_sec` read as absent.
    - `invalidate()` must be called whenever likes/dislikes or the catalog change.
    - `get_or_compute` runs at most one computation per key at a time; a
      computation that straddles an invalidate() is returned but not stored.
    """

    def __init__(
        self, *, ttl_sec: float = NORMALIZATION_TTL_SEC, clock: Clock = time.monotonic
    ) -> None:
        self._ttl = float(ttl_sec)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._generation = 0
        self.hits = 0
        self.misses = 0

    def _fresh(self, key: str) -> NormalizationParams | None:
        # caller holds self._lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry.params

    def get_params(self, key: str) -> NormalizationParams | None:
        with self._lock:
            params = self._fresh(key)
            if params is None:
                self.misses += 1
            else:
                self.hits += 1
            return params

    def set_params(self, key: str, params: NormalizationParams) -> None:
        with self._lock:
            self._entries[key] = _Entry(params=params, stored_at=self._clock())

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            self._generation += 1
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
        log.debug("Normalization cache invalidated (key=%s)", key or "*")

    def get_or_compute(
        self, key: str, compute: Callable[[], NormalizationParams | None]
    ) -> NormalizationParams | None:
        with self._lock:
            params = self._fresh(key)
            if params is not None:
                self.hits += 1
                return params
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            # another thread may have filled it while we waited
            with self._lock:
                params = self._fresh(key)
                if params is not None:
                    self.hits += 1
                    return params
                self.misses += 1
                generation = self._generation

            params = compute()
            if params is None:
                return None

            with self._lock:
                if generation == self._generation:
                    self._entries[key] = _Entry(params=params, stored_at=self._clock())
            return params

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---- computing params ----
def params_from_scores(
    scores: Iterable[float], *, now: float | None = None
) -> NormalizationParams | None:
    vals = list(scores)
    if not vals:
        return None
    return NormalizationParams(
        min_similarity=min(vals),
        max_similarity=max(vals),
        computed_at=time.time() if now is None else now,
    )


def compute_normalization_params(
    taste_vector: Embedding | None, reference: Sequence[CandidateItem]
) -> NormalizationParams | None:
    """Score the whole reference catalog; None if there is nothing to score."""
    if taste_vector is None or not reference:
        return None
    scores: list[float] = []
    for item in reference:
        vec = parse_embedding(item.embedding)
        if vec is None:
            continue
        try:
            scores.append(cosine_similarity(taste_vector, vec))
        except CineMindError as e:
            log.warning("Skipping reference item %s: %s", item.item_id, e)
    return params_from_scores(scores)


# ---- rescaling ----
class ScoreNormalizer:
    """Linear map from the observed [min, max] into a fixed display band. No clamping."""

    def __init__(
        self,
        *,
        band: tuple[float, float] = NORMALIZATION_BAND,
        min_range: float = NORMALIZATION_MIN_RANGE,
    ) -> None:
        self.target_min, self.target_max = band
        self.min_range = min_range

    def can_normalize(self, params: NormalizationParams | None) -> bool:
        return params is not None and params.spread >= self.min_range

    def normalize(self, raw: float, params: NormalizationParams | None) -> float:
        if params is None or raw is None:
            return raw
        spread = params.spread
        if spread < self.min_range:
            return raw
        unit = (raw - params.min_similarity) / spread
        return self.target_min + unit * (self.target_max - self.target_min)


_DEFAULT_NORMALIZER = ScoreNormalizer()


def normalize_score(raw: float, params: NormalizationParams | None) -> float:
    return _DEFAULT_NORMALIZER.normalize(raw, params)
