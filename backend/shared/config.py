"""
Central configuration for the Booyah Board overlay services.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings shared by the overlay service and the control API."""

    model_config = SettingsConfigDict(
        env_prefix="BB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Overlay instance label bound to every log line")

    # ── Feed ─────────────────────────────────────────────────
    feed_base_url: str = "http://localhost:3000"
    feed_path: str = "/api/live-scoring"
    feed_match_id: str = ""
    feed_client_id: str = ""
    feed_request_timeout_s: float = 10.0
    feed_max_retries: int = 2
    poll_interval_s: float = 3.0
    observer_id: str = Field(default="", description="Observer whose target drives the spectator highlight")

    # ── Snapshot export ──────────────────────────────────────
    snapshot_path: str = Field(default="", description="Folder (data.json is created) or full JSON file path")
    export_debounce_s: float = 0.1
    min_display_slots: int = 12

    # ── Broadcast assets ─────────────────────────────────────
    logo_folder: str = ""
    hp_folder: str = ""
    portrait_folder: str = ""
    zone_in_image: str = ""
    zone_out_image: str = ""
    spectator_highlight_image: str = ""

    # ── Elimination reveal ───────────────────────────────────
    elimination_settle_s: float = 0.3
    elimination_hold_s: float = 5.0
    elimination_cooldown_s: float = 0.5
    transition_url: str = Field(default="", description="vMix-style API endpoint, empty disables signals")
    transition_input: str = ""
    transition_timeout_s: float = 3.0

    # ── Redis ────────────────────────────────────────────────
    redis_enabled: bool = False
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = 10

    # ── API ──────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["*"]

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
