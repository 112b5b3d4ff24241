"""
Runtime configuration helpers for the friends client.

Loads the backend URL, anon key and timing windows from the environment,
falling back to the .env file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    # Required fields: must come from the environment or .env
    backend_url: str = Field(..., alias="SUPABASE_URL")
    backend_anon_key: str = Field(..., alias="SUPABASE_ANON_KEY")

    backend_timeout: float = Field(default=10.0, alias="BACKEND_TIMEOUT")

    # Friendship cache / sync windows
    profile_cache_ttl_ms: int = Field(default=30 * 60 * 1000, alias="PROFILE_CACHE_TTL_MS")
    realtime_debounce_ms: int = Field(default=300, alias="REALTIME_DEBOUNCE_MS")
    search_debounce_ms: int = Field(default=500, alias="SEARCH_DEBOUNCE_MS")

    ui_locale: str = Field(default="sv", alias="UI_LOCALE")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
