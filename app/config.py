# app/config.py
import os
from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict

# Name of the top-level folder every event folder is archived under.
ARCHIVE_ROOT_FOLDER = "PIXER_ARCHIVE"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data.db")

    # Paths
    PUBLIC_ROOT: str = os.getenv("PUBLIC_ROOT", "./public")
    INTAKE_ROOT: str = os.getenv("INTAKE_ROOT", "./ingest")
    PROCESSED_ROOT: str = os.getenv("PROCESSED_ROOT", "./processed")

    # --- Storage Config ---
    PHOTO_COLLECTION: str = "event-photos"
    AZURE_STORAGE_CONNECTION_STRING: str | None = None
    STORAGE_ACCOUNT_NAME: str | None = None

    # --- Google Drive archive ---
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None

    # FTP drop
    FTP_HOST: str = "0.0.0.0"
    FTP_PORT: int = 2121

    # Watcher timings (seconds)
    WATCH_STABILITY_SECONDS: float = 1.5
    WATCH_POLL_SECONDS: float = 0.1
    WATCH_COOLDOWN_SECONDS: float = 5.0

    # Processing budgets
    ASSET_FETCH_TIMEOUT: float = 15.0
    PIPELINE_TIMEOUT_SECONDS: float = 300.0


class StorageBackendKind(str, Enum):
    LOCAL = "local"
    AZURE_BLOB = "azure_blob"


_PLACEHOLDER_PREFIXES = ("your-", "change-me")


def _is_configured(value: str | None) -> bool:
    if not value or not value.strip():
        return False
    if "<" in value and ">" in value:
        return False
    return not value.strip().lower().startswith(_PLACEHOLDER_PREFIXES)


def resolve_storage_backend(cfg: Settings) -> StorageBackendKind:
    """Pick the storage backend once, from what the deployment configured."""
    required = (cfg.AZURE_STORAGE_CONNECTION_STRING, cfg.STORAGE_ACCOUNT_NAME, cfg.PHOTO_COLLECTION)
    if all(_is_configured(v) for v in required):
        return StorageBackendKind.AZURE_BLOB
    return StorageBackendKind.LOCAL


def archive_configured(cfg: Settings) -> bool:
    return all(
        _is_configured(v)
        for v in (cfg.GOOGLE_CLIENT_ID, cfg.GOOGLE_CLIENT_SECRET, cfg.GOOGLE_REFRESH_TOKEN)
    )


def ensure_directories(cfg: Settings) -> None:
    for path in (cfg.PUBLIC_ROOT, cfg.INTAKE_ROOT, cfg.PROCESSED_ROOT):
        os.makedirs(path, exist_ok=True)


settings = Settings()
