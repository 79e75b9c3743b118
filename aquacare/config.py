"""Application settings loaded from the environment or a ``.env`` file.

Every field can be overridden with an ``AQUACARE_`` prefixed variable, e.g.
``AQUACARE_DATABASE_PATH=/var/lib/aquacare.db``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_PATH = Path(__file__).resolve().parent.parent / "aquarium.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AQUACARE_", env_file=".env", extra="ignore")

    # Storage
    database_path: Path = DEFAULT_DATABASE_PATH

    # Logging: DEBUG, INFO, WARNING, ERROR
    log_level: str = "INFO"

    # Subscription plans
    free_aquarium_limit: int = Field(default=1, ge=0)
    premium_aquarium_limit: int = Field(default=5, ge=0)

    default_time_zone: str = "UTC"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
