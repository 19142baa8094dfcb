"""
Runtime configuration for leitnercore, loaded from LEITNER_* environment
variables or a local .env file.
"""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_EXPORT_SOURCE


def get_default_db_path() -> Path:
    """Default database file location (the directory is created on connect)."""
    return Path.home() / ".leitnercore" / "leitner.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEITNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Overridden by LEITNER_DB_PATH.
    db_path: Path = get_default_db_path()

    # Written to metadata.source of every export.
    export_source: str = DEFAULT_EXPORT_SOURCE

    # When True, disables the guard that refuses to drop tables holding data.
    # Never enable outside tests. Set via LEITNER_TESTING_MODE.
    testing_mode: bool = False


settings = Settings()
