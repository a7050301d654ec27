"""Application configuration from environment."""
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from env / .env."""

    app_name: str = "Behavioural Simulation Engine"
    debug: bool = False
    log_level: str = "INFO"

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"
    gemini_timeout_seconds: float = 60.0

    # Progress simulation (cosmetic)
    progress_tick_seconds: float = 0.4
    progress_ceiling: float = 95.0  # must stay below 100
    progress_settle_seconds: float = 0.3

    # Session cookie for guest
    session_cookie_name: str = "bse_session_id"
    session_cookie_max_age: int = 60 * 60 * 24  # 1 day
    session_registry_max: int = 10_000  # least recently used sessions go first

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Base path for templates (app/)
BASE_DIR = Path(__file__).resolve().parent.parent
