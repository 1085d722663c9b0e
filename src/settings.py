"""Centralized settings for the rollout orchestrator.

Uses pydantic-settings to load from environment variables (prefixed ROLLOUT_)
with defaults suitable for local runs against the simulated collaborators.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Orchestrator settings loaded from environment variables."""

    # --- Persistence ---
    database_url: str = "sqlite:///rollout.db"

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "console"

    # --- Rollout defaults ---
    default_observation_window_seconds: float = Field(default=60.0, gt=0)
    default_sample_interval_seconds: float = Field(default=10.0, gt=0)
    default_timeout_seconds: float = Field(default=1800.0, gt=0)

    # --- Orchestrator behaviour ---
    notification_queue_size: int = 256
    # 0 = a failed fetch counts as insufficient data
    metrics_retry_attempts: int = Field(default=0, ge=0)
    metrics_retry_base_delay_seconds: float = Field(default=0.5, ge=0)
    fail_fast: bool = False
    destroy_candidate_on_rollback: bool = True
    finished_retention: int = Field(default=100, ge=0)  # finished deployments kept in memory

    model_config = {
        "env_prefix": "ROLLOUT_",
        "env_file": ".env",
        "extra": "ignore",
    }

    def rollout_defaults(self) -> dict:
        """Fallbacks for fields a deployment request leaves out."""
        return {
            "observation_window_seconds": self.default_observation_window_seconds,
            "timeout_seconds": self.default_timeout_seconds,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
