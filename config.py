"""
Configuration settings for studyset.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from studyset.audio.precache import PRECACHE_WINDOW
from studyset.delivery.cards import MIN_EASE
from studyset.delivery.learn_session import BATCH_SIZE
from studyset.delivery.session_store import SESSION_EXPIRY_DAYS
from studyset.integrations.elevenlabs_client import is_api_key_configured

DEFAULT_DATA_DIR = Path.home() / ".studyset"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory for the state database, session file and audio cache",
    )
    state_db_path: Path | None = Field(
        default=None,
        description="SQLite database of study sets (defaults to <data_dir>/state.db)",
    )
    session_file: Path | None = Field(
        default=None,
        description="Learn session snapshot (defaults to <data_dir>/learn_session.json)",
    )
    audio_cache_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL of the audio cache (defaults to sqlite:///<data_dir>/audio_cache.db)",
    )

    # ========================================
    # Audio Cache
    # ========================================
    cache_budget_mb: float = Field(
        default=50,
        gt=0,
        le=100,
        description="Maximum audio cache size in MB before LRU eviction",
    )
    precache_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Pause between pre-cache requests",
    )

    # ========================================
    # Text-to-Speech
    # ========================================
    use_premium_tts: bool = Field(
        default=False,
        description="Use ElevenLabs voices instead of offline system speech",
    )
    elevenlabs_api_key: str = Field(
        default="",
        description="ElevenLabs API key",
    )
    elevenlabs_api_url: str = Field(
        default="https://api.elevenlabs.io",
        description="ElevenLabs API base URL",
    )
    elevenlabs_model_id: str = Field(
        default="eleven_turbo_v2_5",
        description="ElevenLabs synthesis model",
    )
    selected_voice_id: str = Field(
        default="21m00Tcm4TlvDq8ikWAM",
        description="ElevenLabs voice ID",
    )
    tts_timeout_ms: int = Field(
        default=15000,
        ge=1000,
        description="Premium TTS request timeout",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    # ========================================
    # Derived paths
    # ========================================

    def get_state_db_path(self) -> Path:
        return self.state_db_path or self.data_dir / "state.db"

    def get_session_file(self) -> Path:
        return self.session_file or self.data_dir / "learn_session.json"

    def get_audio_cache_url(self) -> str:
        return self.audio_cache_url or f"sqlite:///{self.data_dir / 'audio_cache.db'}"

    def has_premium_tts_configured(self) -> bool:
        """Premium speech needs the toggle and a plausible API key."""
        return self.use_premium_tts and is_api_key_configured(self.elevenlabs_api_key)

    def get_study_config(self) -> dict[str, Any]:
        """Configuration surface consumed by the study core."""
        return {
            "ease_floor": MIN_EASE,
            "cache_budget_mb": self.cache_budget_mb,
            "precache_window": PRECACHE_WINDOW,
            "session_expiry_days": SESSION_EXPIRY_DAYS,
            "batch_size": BATCH_SIZE,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
