"""Settings, read from the environment (and .env when present).

    DEVCOLLAB_ENV      local | test | staging | prod (default local)
    DATABASE_URL       SQLAlchemy URL, required
    JWT_SECRET         HS256 secret shared with the login service, required;
                       32+ chars in staging and prod
    JWT_ISSUER         expected iss, unchecked when unset
    JWT_AUDIENCE       expected aud, unchecked when unset
    STORAGE_ROOT       attachment directory (default uploads)
    MAX_UPLOAD_BYTES   per-file limit (default 25 MiB)
    CORS_ORIGINS       comma-separated browser origins
    LOG_JSON           JSON logs instead of console output (default true)
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_DEPLOYED_SECRET_LENGTH = 32
DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class Environment(str, Enum):
    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    devcollab_env: Environment = Field(default=Environment.LOCAL, alias="DEVCOLLAB_ENV")
    database_url: str = Field(alias="DATABASE_URL")

    jwt_secret: str = Field(alias="JWT_SECRET", min_length=1)
    jwt_issuer: str | None = Field(default=None, alias="JWT_ISSUER")
    jwt_audience: str | None = Field(default=None, alias="JWT_AUDIENCE")

    storage_root: str = Field(default="uploads", alias="STORAGE_ROOT")
    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, alias="MAX_UPLOAD_BYTES", gt=0)

    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    @property
    def is_deployed(self) -> bool:
        return self.devcollab_env in (Environment.STAGING, Environment.PROD)

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def _require_strong_secret_when_deployed(self) -> "Settings":
        if self.is_deployed and len(self.jwt_secret) < MIN_DEPLOYED_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {MIN_DEPLOYED_SECRET_LENGTH} characters "
                f"for DEVCOLLAB_ENV={self.devcollab_env.value}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded on first call.

    Raises:
        ValidationError: A required variable is missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Forget the loaded settings so the next get_settings() re-reads the env."""
    get_settings.cache_clear()
