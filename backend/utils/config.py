"""
LocalRepo Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file into os.environ at module import time
# This ensures nested BaseSettings classes can read the values
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    # Try current working directory
    load_dotenv()


class WatcherSettings(BaseSettings):
    """Directory watcher configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    debounce_delay_ms: int = Field(default=500, ge=10, le=60000)
    observer_join_timeout: float = Field(default=5.0, ge=0.1)
    relay_poll_interval: float = Field(
        default=1.0,
        ge=0.05,
        description="Seconds between observer liveness checks",
    )


class ArchiveSettings(BaseSettings):
    """Archive builder configuration settings."""

    model_config = SettingsConfigDict(env_prefix="ARCHIVE_")

    ignore_file: str = Field(default=".localrepoignore", description="Per-directory ignore file name")
    compress_level: int = Field(default=6, ge=0, le=9)

    builtin_ignore_patterns: list[str] = Field(
        default=[
            ".git/",
            ".hg/",
            ".svn/",
            ".bzr/",
        ],
        description="Patterns appended after the ignore file's own patterns",
    )

    @field_validator("builtin_ignore_patterns", mode="before")
    @classmethod
    def parse_ignore_patterns(cls, v: str | list[str]) -> list[str]:
        """Parse ignore patterns from comma-separated string or list."""
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v


class ServerSettings(BaseSettings):
    """HTTP server configuration settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="localhost")
    port: int = Field(default=8673, ge=1, le=65535)
    public_host: str | None = Field(
        default=None,
        description="Host written into published URLs; defaults to host",
    )

    @property
    def address(self) -> str:
        """Host and port as written into published archive URLs."""
        return f"{self.public_host or self.host}:{self.port}"


class PublisherSettings(BaseSettings):
    """Publishing pipeline configuration settings."""

    model_config = SettingsConfigDict(env_prefix="PUBLISH_")

    input_dir: Path | None = Field(default=None, description="Directory to watch and archive")
    module_file: Path | None = Field(default=None, description="MODULE.bazel or WORKSPACE file to patch")
    import_path: str | None = Field(default=None, description="Key of the declaration to patch")


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="console")  # "json" or "console"
    file_path: Path | None = Field(default=None)


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="LocalRepo")
    app_version: str = Field(default="0.1.0")
    environment: str = Field(default="development")

    # Sub-settings
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    publisher: PublisherSettings = Field(default_factory=PublisherSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings for performance.
    """
    return Settings()
