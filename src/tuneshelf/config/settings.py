"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./tuneshelf.db"
    echo: bool = False


# Hey future me - timeout_seconds=None means "wait forever" (no timeout at all).
class ProbeSettings(BaseModel):
    """ffprobe metadata extraction settings."""

    binary: str = "ffprobe"
    timeout_seconds: float | None = Field(default=30.0, gt=0)
    fallback_to_tag_reader: bool = True


class CatalogueSettings(BaseModel):
    """Remote catalogue (Deezer public API) settings."""

    base_url: str = "https://api.deezer.com"
    timeout_seconds: float | None = Field(default=15.0, gt=0)
    user_agent: str = "tuneshelf/0.1"


class LibrarySettings(BaseModel):
    """Library view and background refresh settings."""

    artist_staleness_days: int = Field(default=10, ge=0)
    preferences_path: Path | None = None


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level


class Settings(BaseSettings):
    """Root settings object.

    Nested sections map to env vars with a double underscore, e.g.
    ``TUNESHELF_PROBE__TIMEOUT_SECONDS=10``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUNESHELF_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "tuneshelf"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    catalogue: CatalogueSettings = Field(default_factory=CatalogueSettings)
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


# Settings are read once per process. Tests that need different values construct
# Settings(...) directly instead of going through this cache.
@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings."""
    return Settings()
