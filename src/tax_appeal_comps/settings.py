from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


DEFAULT_REGISTRY_BASE_URL = "https://datacatalog.cookcountyil.gov/resource"
DEFAULT_PROVIDER_BASE_URL = "https://app.realie.ai/api/public"


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from ``TAC_*`` environment variables.

    A missing provider key is a supported configuration: enrichment, geocoding
    and the secondary comparable search all report themselves unavailable.
    """

    registry_base_url: str = DEFAULT_REGISTRY_BASE_URL
    registry_app_token: Optional[str] = None
    registry_timeout_s: float = 20.0

    provider_api_key: Optional[str] = None
    provider_base_url: str = DEFAULT_PROVIDER_BASE_URL
    provider_timeout_s: float = 15.0
    provider_state: str = "IL"
    provider_county: str = "Cook"

    monthly_quota: int = 25
    cache_path: str = "./enrichment_cache.sqlite"

    batch_size: int = 5
    max_enrichment_lookups: int = 15
    secondary_radius_miles: float = 1.0
    secondary_time_frame_months: int = 18
    secondary_max_results: int = 25

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            registry_base_url=_env_str("TAC_REGISTRY_BASE_URL", DEFAULT_REGISTRY_BASE_URL),
            registry_app_token=_env_str("TAC_REGISTRY_APP_TOKEN", None),
            registry_timeout_s=_env_float("TAC_REGISTRY_TIMEOUT_S", 20.0),
            provider_api_key=_env_str("TAC_PROVIDER_API_KEY", None),
            provider_base_url=_env_str("TAC_PROVIDER_BASE_URL", DEFAULT_PROVIDER_BASE_URL),
            provider_timeout_s=_env_float("TAC_PROVIDER_TIMEOUT_S", 15.0),
            provider_state=_env_str("TAC_PROVIDER_STATE", "IL"),
            provider_county=_env_str("TAC_PROVIDER_COUNTY", "Cook"),
            monthly_quota=_env_int("TAC_MONTHLY_QUOTA", 25),
            cache_path=_env_str("TAC_CACHE_PATH", "./enrichment_cache.sqlite"),
            batch_size=max(1, _env_int("TAC_BATCH_SIZE", 5)),
            max_enrichment_lookups=max(0, _env_int("TAC_MAX_ENRICHMENT_LOOKUPS", 15)),
            secondary_radius_miles=_env_float("TAC_SECONDARY_RADIUS_MILES", 1.0),
            secondary_time_frame_months=_env_int("TAC_SECONDARY_TIME_FRAME_MONTHS", 18),
            secondary_max_results=_env_int("TAC_SECONDARY_MAX_RESULTS", 25),
        )

    @property
    def provider_configured(self) -> bool:
        return bool(self.provider_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()
