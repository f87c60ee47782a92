"""Application configuration management."""
from __future__ import annotations

import datetime as dt
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TOKEN_CLEANUP_INTERVAL = dt.timedelta(hours=1)


class Settings(BaseSettings):
    """Typed application settings loaded from the environment."""

    db_url: str = Field(validation_alias="DB_URL")
    jwt_secret: SecretStr = Field(validation_alias="JWT_SECRET")
    jwt_issuer: str = Field(default="movie-rating-system", validation_alias="JWT_ISSUER")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_duration: dt.timedelta = Field(
        default=dt.timedelta(hours=1),
        validation_alias="JWT_ACCESS_TOKEN_DURATION",
    )
    refresh_token_duration: dt.timedelta = Field(
        default=dt.timedelta(days=7),
        validation_alias="JWT_REFRESH_TOKEN_DURATION",
    )
    token_retention_period: dt.timedelta = Field(
        default=dt.timedelta(days=30),
        validation_alias="JWT_CLEANUP_RETENTION_PERIOD",
    )
    bcrypt_rounds: int = Field(default=12, ge=4, le=31, validation_alias="BCRYPT_ROUNDS")
    env: Literal["local", "dev", "prod"] = Field(default="local", validation_alias="ENV")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost", "http://localhost:3000"],
        validation_alias="CORS_ALLOWED_ORIGINS",
    )
    scheduler_enabled: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    git_sha: str | None = Field(default=None, validation_alias="GIT_SHA")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors(cls, value: object) -> list[str]:
        if isinstance(value, str) and not value.lstrip().startswith("["):
            origins = [item.strip() for item in value.split(",") if item.strip()]
            return origins or ["http://localhost", "http://localhost:3000"]
        return value  # type: ignore[return-value]

    @field_validator("access_token_duration", "refresh_token_duration", "token_retention_period")
    @classmethod
    def _positive_duration(cls, value: dt.timedelta) -> dt.timedelta:
        if value <= dt.timedelta(0):
            raise ValueError("Token durations must be positive.")
        return value

    @property
    def is_local(self) -> bool:
        return self.env == "local"

    def require_production_secrets(self) -> None:
        if self.is_local:
            return
        if self.jwt_secret.get_secret_value().strip() in {"", "CHANGE_ME"}:
            raise ValueError("JWT_SECRET must be set to a secure value in non-local environments.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    settings = Settings()
    settings.require_production_secrets()
    return settings
