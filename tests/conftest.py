from typing import Any, Dict, List

import pytest

from cinemind_core.errors import GenreLookupError
from cinemind_core.types import CandidateItem, LikedItem
from cinemind_ranking.normalization import NormalizationCache


@pytest.fixture()
def anyio_backend():
    return "asyncio"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenreLookup:
    """In-memory metadata collaborator. Ids in `failing` raise GenreLookupError."""

    def __init__(self, genres: Dict[int, List[int]], failing: set[int] | None = None):
        self.genres = genres
        self.failing = failing or set()
        self.calls: List[int] = []

    async def fetch_genre_ids(self, item_id: int) -> List[int]:
        self.calls.append(item_id)
        if item_id in self.failing or item_id not in self.genres:
            raise GenreLookupError(item_id)
        return list(self.genres[item_id])


class _FakePipeline:
    def __init__(self, store: Dict[str, Any]):
        self._store = store
        self._ops: List[tuple] = []

    def get(self, key):
        self._ops.append(("get", key))
        return self

    def set(self, key, value, ex=None):
        self._ops.append(("set", key, value, ex))
        return self

    async def execute(self):
        out = []
        for op in self._ops:
            if op[0] == "get":
                out.append(self._store.get(op[1]))
            else:
                self._store[op[1]] = op[2]
                self._store[f"__ttl__{op[1]}"] = op[3]
                out.append(True)
        self._ops = []
        return out


class FakeRedis:
    def __init__(self):
        self.store: Dict[str, Any] = {}

    def pipeline(self):
        return _FakePipeline(self.store)

    async def scan_iter(self, match: str = "*"):
        prefix = match.rstrip("*")
        for k in list(self.store):
            if k.startswith(prefix):
                yield k

    async def delete(self, *keys):
        for k in keys:
            self.store.pop(k, None)
        return len(keys)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return NormalizationCache(ttl_sec=3600, clock=clock)


@pytest.fixture()
def liked_one():
    return [LikedItem(item_id=1, embedding=[1.0, 0.0])]


@pytest.fixture()
def two_candidates():
    return [
        CandidateItem(
            item_id=10,
            embedding=[1.0, 0.0],
            metadata={"release_date": "2026-03-01", "vote_average": 6.0},
        ),
        CandidateItem(
            item_id=11,
            embedding=[0.0, 1.0],
            metadata={"release_date": "2025-11-20", "vote_average": 8.5},
        ),
    ]


@pytest.fixture()
def fake_genre_lookup():
    return FakeGenreLookup


@pytest.fixture()
def fake_redis():
    return FakeRedis()
