"""
Engine configuration using Pydantic Settings.

Values come from environment variables prefixed ``PULSEFORM_`` or a
``.env`` file in the working directory.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Baselines
    BASELINE_WINDOW_DAYS: int = 30
    BASELINE_MIN_SAMPLES: int = 7
    OUTLIER_SIGMA: float = 3.0
    BASELINE_EXCLUDE_ALCOHOL: bool = True
    BASELINE_CLEAN_MIN_SAMPLES: int = 15

    # Scoring
    RECOMPUTE_POLICY: Literal["on_demand", "once_per_day"] = "on_demand"
    SLEEP_NEED_HOURS: float = 8.0

    # Training load
    LOAD_HISTORY_DAYS: int = 180

    # Cache
    CACHE_TTL_SAMPLES: float = 300.0
    CACHE_TTL_ACTIVITIES: float = 3600.0
    CACHE_MAX_ENTRIES: int = 200
    CACHE_SERVE_STALE: bool = True

    # Provider access
    PROVIDER_MAX_ATTEMPTS: int = 3
    PROVIDER_BACKOFF_SECONDS: float = 0.5
    PROVIDER_TIMEOUT_SECONDS: float = 20.0

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PULSEFORM_",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
