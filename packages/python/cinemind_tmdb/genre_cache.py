from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Dict, List, Protocol, Sequence

from redis.asyncio import Redis  # injected client type
from redis.exceptions import RedisError

from cinemind_core.types import GenreLookup, MediaId

log = logging.getLogger(__name__)


class GenreCache(Protocol):
    async def get_many(self, item_ids: Sequence[MediaId]) -> Dict[MediaId, List[int]]: ...

    async def set_many(self, values: Dict[MediaId, List[int]]) -> None: ...

    async def clear(self) -> None: ...


class InMemoryGenreCache:
    """Process-local genre cache with lazy TTL expiry."""

    def __init__(
        self, *, ttl_sec: float = 6 * 3600, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = float(ttl_sec)
        self._clock = clock
        self._data: Dict[MediaId, tuple[List[int], float]] = {}
        self._lock = threading.Lock()

    async def get_many(self, item_ids: Sequence[MediaId]) -> Dict[MediaId, List[int]]:
        now = self._clock()
        out: Dict[MediaId, List[int]] = {}
        with self._lock:
            for mid in item_ids:
                hit = self._data.get(mid)
                if hit is None:
                    continue
                genres, stored_at = hit
                if now - stored_at >= self._ttl:
                    del self._data[mid]
                    continue
                out[mid] = list(genres)
        return out

    async def set_many(self, values: Dict[MediaId, List[int]]) -> None:
        now = self._clock()
        with self._lock:
            for mid, genres in values.items():
                self._data[mid] = (list(genres), now)

    async def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RedisGenreCache:
    """
    Redis-backed genre cache. One key per title.
    Key:   {namespace}{media_type}:{item_id}
    Value: JSON list of genre ids.
    """

    def __init__(
        self,
        *,
        client: Redis,
        media_type: str = "movie",
        namespace: str = "cinemind:genres:",
        ttl_sec: int = 6 * 3600,
    ) -> None:
        # client should be created with decode_responses=True
        self._r = client
        self._ns = f"{namespace}{media_type}:"
        self._ttl = int(ttl_sec)

    def _key(self, item_id: MediaId) -> str:
        return f"{self._ns}{item_id}"

    @staticmethod
    def _deserialize(s: str | bytes | None) -> List[int] | None:
        if not s:
            return None
        try:
            data = json.loads(s)
        except ValueError:
            return None
        if not isinstance(data, list):
            return None
        try:
            return [int(g) for g in data]
        except (TypeError, ValueError):
            return None

    async def get_many(self, item_ids: Sequence[MediaId]) -> Dict[MediaId, List[int]]:
        if not item_ids:
            return {}
        pipe = self._r.pipeline()
        for mid in item_ids:
            pipe.get(self._key(mid))
        results = await pipe.execute()
        out: Dict[MediaId, List[int]] = {}
        for mid, raw in zip(item_ids, results):
            value = self._deserialize(raw)
            if value is not None:
                out[mid] = value
        return out

    async def set_many(self, values: Dict[MediaId, List[int]]) -> None:
        if not values:
            return
        pipe = self._r.pipeline()
        for mid, genres in values.items():
            pipe.set(
                self._key(mid),
                json.dumps([int(g) for g in genres], separators=(",", ":")),
                ex=self._ttl,
            )
        await pipe.execute()

    async def clear(self) -> None:
        keys = [k async for k in self._r.scan_iter(match=f"{self._ns}*")]
        if keys:
            await self._r.delete(*keys)


class CachedGenreLookup:
    """
    Wraps a GenreLookup with a GenreCache. Failed lookups are not cached;
    cache errors degrade to a direct lookup.
    """

    def __init__(self, lookup: GenreLookup, cache: GenreCache) -> None:
        self.lookup = lookup
        self.cache = cache
        self.hits = 0
        self.misses = 0

    async def fetch_genre_ids(self, item_id: MediaId) -> List[int]:
        try:
            cached = await self.cache.get_many([item_id])
        except RedisError as e:
            log.warning("Genre cache read failed for %s: %s", item_id, e)
            cached = {}
        if item_id in cached:
            self.hits += 1
            return cached[item_id]

        self.misses += 1
        genres = await self.lookup.fetch_genre_ids(item_id)
        try:
            await self.cache.set_many({item_id: genres})
        except RedisError as e:
            log.warning("Genre cache write failed for %s: %s", item_id, e)
        return genres
