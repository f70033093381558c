from dotenv import find_dotenv, load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


TMDB_BASE_URL = "https://api.themoviedb.org/3"

NORMALIZATION_BAND = (0.5, 1.0)  # display band for normalized match scores
NORMALIZATION_MIN_RANGE = 0.001
NORMALIZATION_TTL_SEC = 60 * 60

EXPLANATION_BUDGET = 20  # items that get "similar liked items"
EXPLANATION_TOP_K = 5


class Settings(BaseSettings):
    # scoring
    default_dislike_weight: float = 0.5
    default_limit: int = 20
    normalization_ttl_sec: float = NORMALIZATION_TTL_SEC
    normalization_min_range: float = NORMALIZATION_MIN_RANGE
    explanation_budget: int = EXPLANATION_BUDGET
    explanation_top_k: int = EXPLANATION_TOP_K
    # genre metadata lookups
    genre_lookup_concurrency: int = 15
    genre_cache_ttl_sec: int = 6 * 3600
    tmdb_api_key: str | None = None
    tmdb_timeout_sec: float = 10.0
    # genre cache backend
    use_redis_genre_cache: bool = False
    redis_url: str | None = None
    genre_cache_namespace: str = "cinemind:genres:"
    # telemetry
    telemetry_url: str | None = None
    telemetry_api_key: str | None = None
    telemetry_sample: float = 1.0
    # env config
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CINEMIND_", extra="ignore"
    )


def load_settings() -> Settings:
    load_dotenv(find_dotenv(), override=False)
    return Settings()
