from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = "sqlite+aiosqlite:///./data/timers.sqlite"
    db_echo: bool = False

    # 1s keeps the live countdown smooth; raise towards 30s to cut write load
    reconcile_interval_seconds: int = 1
    refresh_interval_seconds: int = 1
    reconciler_enabled: bool = True

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_prefix": "",
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
