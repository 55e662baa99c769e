# Configuration management

from pydantic_settings import BaseSettings  # type: ignore
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    # Paths
    user_data_path: str = str(Path.home() / ".docport")

    # Backing store
    store_url: str = "memory://"
    store_retry_attempts: int = 3

    # Import
    import_batch_size: int = 1000
    preview_rows: int = 10
    detect_sample_bytes: int = 64 * 1024
    error_display_limit: int = 5  # Errors kept in memory; the log keeps all

    # Export
    export_batch_size: int = 1000

    # Progress callbacks
    progress_interval_seconds: float = 1.0

    # Application
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "DOCPORT_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
