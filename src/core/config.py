"""Client configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REST_PATH = "/rest/v1"


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Backend project URL and public (anon) key
    api_url: str = Field(default="http://localhost:54321", validation_alias="SUPABASE_URL")
    api_key: str = Field(default="", validation_alias="SUPABASE_ANON_KEY")

    # Per-request timeout for the REST client, in seconds
    api_timeout: float = Field(default=30.0, validation_alias="API_TIMEOUT")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the project URL so paths can be appended."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Upper-case the log level name."""
        return v.strip().upper()

    @property
    def rest_url(self) -> str:
        """Get the base URL of the REST surface."""
        return f"{self.api_url}{REST_PATH}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
