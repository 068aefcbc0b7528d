"""Application configuration loaded from the environment."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./buildinglens.db"
    google_maps_api_key: str = ""
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    nominatim_email: Optional[str] = None
    search_radius_meters: float = 100.0
    ttl_geocoding: int = 2592000
    ttl_places: int = 604800
    ttl_identify: int = 3600
    http_timeout_seconds: float = 5.0
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def _positive_number(name: str, default: str, cast=float):
    raw = os.getenv(name, default)
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("%s=%r is not a number; using default %s", name, raw, default)
        return cast(default)
    if value <= 0:
        logger.warning("%s must be positive (got %s); using default %s", name, value, default)
        return cast(default)
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_maps_api_key = os.getenv("GOOGLE_MAPS_API_KEY", "")
    if not google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not configured; Google requests will fail.")

    cors_raw = os.getenv("CORS_ORIGIN", "*")
    cors_origins = tuple(origin.strip() for origin in cors_raw.split(",") if origin.strip()) or ("*",)

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./buildinglens.db"),
        google_maps_api_key=google_maps_api_key,
        nominatim_base_url=os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org").rstrip("/"),
        nominatim_email=os.getenv("NOMINATIM_EMAIL") or None,
        search_radius_meters=_positive_number("SEARCH_RADIUS_METERS", "100"),
        ttl_geocoding=_positive_number("REDIS_TTL_GEOCODING", "2592000", int),
        ttl_places=_positive_number("REDIS_TTL_PLACES", "604800", int),
        ttl_identify=_positive_number("REDIS_TTL_IDENTIFY", "3600", int),
        http_timeout_seconds=_positive_number("HTTP_TIMEOUT_SECONDS", "5"),
        cors_origins=cors_origins,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
