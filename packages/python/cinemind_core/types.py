from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, Field, model_validator

MediaId = int
Embedding = NDArray[np.float32]


@dataclass(frozen=True)
class PreferenceItem:
    """A liked or disliked title. `embedding` is raw storage form (JSON string, list or array)."""

    item_id: MediaId
    embedding: Any


LikedItem = PreferenceItem
DislikedItem = PreferenceItem


@dataclass(frozen=True)
class CandidateItem:
    item_id: MediaId
    embedding: Any
    # release_date, vote_average, genres, popularity, title, ...
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizationParams:
    min_similarity: float
    max_similarity: float
    computed_at: float = 0.0  # clock seconds

    def __post_init__(self) -> None:
        if self.min_similarity > self.max_similarity:
            raise ValueError("min_similarity must be <= max_similarity")

    @property
    def spread(self) -> float:
        return self.max_similarity - self.min_similarity


class RecommendationFilters(BaseModel):
    min_year: int | None = Field(default=None, examples=[2024])
    max_year: int | None = Field(default=None, examples=[2026])
    min_rating: float | None = Field(default=None, ge=0, le=10)
    genre_ids: list[int] = Field(default_factory=list, examples=[[28, 878]])

    @model_validator(mode="after")
    def _check_years(self) -> "RecommendationFilters":
        if (
            self.min_year is not None
            and self.max_year is not None
            and self.min_year > self.max_year
        ):
            raise ValueError("min_year must be <= max_year")
        return self

    @property
    def has_year_filter(self) -> bool:
        return self.min_year is not None or self.max_year is not None

    @property
    def has_genre_filter(self) -> bool:
        return bool(self.genre_ids)


class GenreLookup(Protocol):
    """Metadata collaborator used for genre filtering. Raises per item on failure."""

    async def fetch_genre_ids(self, item_id: MediaId) -> list[int]: ...
