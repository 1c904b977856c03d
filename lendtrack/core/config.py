from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "DeviceLending"
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # ``sql`` keeps everything in the relational database; ``firestore`` talks
    # to a Cloud Firestore project instead.
    STORE_BACKEND: Literal["sql", "firestore"] = "sql"
    DB_URL: str = Field(
        default="sqlite:///./lending.db",
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )
    FIRESTORE_PROJECT: str | None = None
    FIRESTORE_DATABASE: str | None = None
    STORE_TIMEOUT_SECONDS: float = 5.0

    HISTORY_RETENTION: int = Field(default=100, ge=1)

    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 60 * 12
    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")

    @field_validator("STORE_BACKEND", mode="before")
    @classmethod
    def normalize_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
