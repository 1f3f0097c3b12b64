"""MLS sync configuration with environment variable support."""

import os
from dataclasses import dataclass
from typing import Optional

from src.utils.errors import ConfigurationError


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass(frozen=True)
class MLSConfig:
    """Settings for the MLS feed and the sync pipeline."""

    base_url: str = ""
    access_token: str = ""
    page_size: int = 200
    max_page_size: int = 1000
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_max_wait_seconds: float = 10.0
    max_records_fetched: int = 30000
    media_batch_size: int = 20
    media_batch_delay_seconds: float = 0.2
    stale_run_minutes: int = 120
    default_source_system: str = "Stellar MLS"
    trigger_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "MLSConfig":
        """Build a config snapshot from the current environment."""
        return cls(
            base_url=os.environ.get("MLS_GRID_BASE_URL", "").strip().rstrip("/"),
            access_token=os.environ.get("MLS_GRID_ACCESS_TOKEN", "").strip(),
            page_size=_env_int("MLS_PAGE_SIZE", 200),
            max_page_size=_env_int("MLS_MAX_PAGE_SIZE", 1000),
            request_timeout_seconds=_env_float("MLS_REQUEST_TIMEOUT_SECONDS", 30.0),
            max_retries=_env_int("MLS_MAX_RETRIES", 3),
            retry_max_wait_seconds=_env_float("MLS_RETRY_MAX_WAIT_SECONDS", 10.0),
            max_records_fetched=_env_int("MLS_MAX_RECORDS_FETCHED", 30000),
            media_batch_size=_env_int("MLS_MEDIA_BATCH_SIZE", 20),
            media_batch_delay_seconds=_env_float("MLS_MEDIA_BATCH_DELAY_SECONDS", 0.2),
            stale_run_minutes=_env_int("MLS_STALE_RUN_MINUTES", 120),
            default_source_system=os.environ.get("MLS_DEFAULT_SOURCE_SYSTEM", "Stellar MLS"),
            trigger_token=os.environ.get("MLS_SYNC_TRIGGER_TOKEN", "").strip() or None,
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.base_url and self.access_token)

    def require_credentials(self) -> None:
        """Raise if the feed cannot be reached with this config."""
        if not self.has_credentials:
            raise ConfigurationError("MLS Grid credentials not configured")
