from __future__ import annotations
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "leviro"
    DATABASE_TIMEOUT_MS: int = 5000

    # Local fallback storage, one JSON file per key
    STORAGE_DIR: str = ".leviro"
    STORAGE_PREFIX: str = "leviro_"

    TOAST_DURATION_MS: int = 3000

    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "1234"

    # Signs the browser session cookie
    SESSION_SECRET: str = "leviro-dev-secret"
    SESSION_COOKIE: str = "leviro_session"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    PORT: int = 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()
