"""Worker configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when configuration is missing or malformed."""


@dataclass(frozen=True)
class Settings:
    google_maps_api_key: str
    psi_api_key: str
    database_url: str
    worker_port: int = 9000
    worker_concurrency: int = 1
    db_pool_max: int = 2
    http_timeout: float = 10.0
    places_region_code: str = "US"
    places_language_code: str = "en"
    nearby_radius_m: int = 1500
    nearby_max_results: int = 20


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_maps_api_key = os.getenv("GOOGLE_MAPS_API_KEY", "")
    psi_api_key = os.getenv("PSI_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    worker_port = _int_env("WORKER_PORT", 9000)
    worker_concurrency = max(1, _int_env("WORKER_CONCURRENCY", 1))
    # One spare connection for the failure write issued after a broken stage.
    db_pool_max = max(1, _int_env("DB_POOL_MAX", worker_concurrency + 1))
    http_timeout = _float_env("HTTP_TIMEOUT_SECONDS", 10.0)
    places_region_code = os.getenv("PLACES_REGION_CODE", "US").strip().upper() or "US"
    places_language_code = os.getenv("PLACES_LANGUAGE_CODE", "en").strip() or "en"
    nearby_radius_m = _int_env("NEARBY_RADIUS_METERS", 1500)
    nearby_max_results = _int_env("NEARBY_MAX_RESULTS", 20)

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not configured; Google Places requests will fail.")
    if not psi_api_key:
        logger.warning("PSI_API_KEY is not configured; performance metrics will be skipped.")

    return Settings(
        google_maps_api_key=google_maps_api_key,
        psi_api_key=psi_api_key,
        database_url=database_url,
        worker_port=worker_port,
        worker_concurrency=worker_concurrency,
        db_pool_max=db_pool_max,
        http_timeout=http_timeout,
        places_region_code=places_region_code,
        places_language_code=places_language_code,
        nearby_radius_m=nearby_radius_m,
        nearby_max_results=nearby_max_results,
    )
