import asyncio
import logging
from typing import Any, List, Mapping, Optional

import httpx

from cinemind_core.config import TMDB_BASE_URL
from cinemind_core.errors import GenreLookupError
from cinemind_core.types import MediaId

log = logging.getLogger(__name__)


def genre_ids_of(payload: Mapping[str, Any]) -> List[int]:
    """Details carry `genres: [{id, name}]`; list payloads carry `genre_ids`."""
    if payload.get("genre_ids") is not None:
        return [int(g) for g in payload["genre_ids"]]
    return [int(g["id"]) for g in payload.get("genres") or [] if "id" in g]


class TMDBGenreClient:
    """Metadata collaborator for genre filtering: one details call per title."""

    BASE_URL = TMDB_BASE_URL

    def __init__(
        self,
        api_key: str,
        media_type: str = "movie",
        max_connections: int = 15,
        timeout: float = 10.0,
        retries: int = 2,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.media_type = media_type
        self.retries = retries
        limits = httpx.Limits(
            max_connections=max_connections, max_keepalive_connections=max_connections
        )
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=limits,
            headers={"Accept": "application/json"},
        )
        self.semaphore = asyncio.Semaphore(max_connections)

    def details_url(self, item_id: MediaId) -> str:
        return f"{self.BASE_URL}/{self.media_type}/{item_id}?api_key={self.api_key}"

    async def get(self, url: str) -> Optional[dict]:
        async with self.semaphore:
            try:
                response = await self.client.get(url)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                log.warning("TMDB HTTP error %s: %s", e.response.status_code, e.request.url.path)
                if e.response.status_code == 404:
                    raise
            except httpx.RequestError as e:
                log.warning("TMDB request error: %s", e)
            except ValueError as e:
                log.warning("TMDB returned invalid JSON: %s", e)
        return None

    async def get_with_retry(self, url: str, delay: float = 1.0) -> Optional[dict]:
        for attempt in range(self.retries + 1):
            result = await self.get(url)
            if result:
                return result
            if attempt < self.retries:
                await asyncio.sleep(delay * (2**attempt))  # Exponential backoff
        return None

    async def fetch_genre_ids(self, item_id: MediaId) -> List[int]:
        try:
            data = await self.get_with_retry(self.details_url(item_id))
        except httpx.HTTPStatusError as e:
            raise GenreLookupError(item_id, f"TMDB returned {e.response.status_code}") from e
        if not data:
            raise GenreLookupError(item_id)
        return genre_ids_of(data)

    async def aclose(self):
        await self.client.aclose()
