from __future__ import annotations

import logging
import random
import uuid
from dataclasses import asdict
from typing import Any, Iterable

import httpx

from cinemind_ranking.types import RankStats, ScoredItem

log = logging.getLogger(__name__)


class RankTelemetryLogger:
    """
    Best-effort telemetry for ranking runs, written through PostgREST.

    - rank_runs: one row per rank call (RankStats + dislike weight + limit)
    - rank_results: one row per returned item

    Disabled unless url and api key are set. Transport failures are logged
    and never raised into the ranking path.
    """

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        *,
        sample: float = 1.0,
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.sample = float(max(0.0, min(1.0, sample)))
        self.timeout_s = timeout_s
        self._transport = transport
        self._rng = rng or random.Random()

    def _enabled(self) -> bool:
        return bool(self.base_url and self.api_key and self.sample > 0)

    def _sampled(self) -> bool:
        return self.sample >= 1.0 or self._rng.random() < self.sample

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates",
        }

    async def _post(
        self, client: httpx.AsyncClient, path: str, payload: list[dict[str, Any]]
    ) -> bool:
        if not payload:
            return True
        try:
            r = await client.post(
                f"{self.base_url}/rest/v1/{path}",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            log.warning("rank telemetry POST %s error: %s", path, e)
            return False
        if r.status_code not in (200, 201, 204):
            log.warning(
                "rank telemetry POST %s failed %s: %s",
                path,
                r.status_code,
                r.text[:300],
            )
            return False
        return True

    @staticmethod
    def _result_rows(run_id: str, items: Iterable[ScoredItem]) -> list[dict[str, Any]]:
        rows = []
        for rank, s in enumerate(items, start=1):
            rows.append(
                {
                    "run_id": run_id,
                    "rank": rank,
                    "item_id": s.item_id,
                    "raw_similarity": s.raw_similarity,
                    "normalized_similarity": s.normalized_similarity,
                    "explained": s.similar_liked is not None,
                }
            )
        return rows

    async def log_rank_run(
        self,
        *,
        stats: RankStats,
        items: list[ScoredItem],
        dislike_weight: float,
        limit: int,
        run_id: str | None = None,
    ) -> str | None:
        """Returns the run id when something was written, else None."""
        if not self._enabled() or not self._sampled():
            return None
        run_id = run_id or str(uuid.uuid4())
        row = {"run_id": run_id, "dislike_weight": dislike_weight, "limit": limit}
        row.update(asdict(stats))
        async with httpx.AsyncClient(transport=self._transport) as client:
            ok = await self._post(client, "rank_runs", [row])
            if ok:
                await self._post(client, "rank_results", self._result_rows(run_id, items))
        return run_id if ok else None
