"""MyPA configuration — storage, sync and rollover settings."""

from typing import Literal

from pydantic_settings import BaseSettings

StorageMode = Literal["hybrid", "db-only", "file-only"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Indexed store
    database_url: str = "sqlite:///data/mypa.db"

    # Document (empty = no document connected at startup)
    todo_file_path: str = ""
    storage_mode: StorageMode = "hybrid"
    local_timezone: str = "Australia/Sydney"

    # Sync
    sync_debounce_seconds: float = 2.0
    external_check_enabled: bool = True
    external_check_interval_seconds: float = 30.0
    write_back_max_retries: int = 3

    # Rollover
    rollover_on_startup: bool = True

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:3000"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
