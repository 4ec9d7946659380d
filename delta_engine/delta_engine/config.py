"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from delta_engine.source.nix_database import DEFAULT_DATABASE_PATH

logger = logging.getLogger(__name__)

APP_NAME = "nixdelta"


def default_state_dir() -> Path:
    """``$XDG_DATA_HOME/nixdelta``, falling back to ``~/.local/share/nixdelta``."""
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APP_NAME


class Settings(BaseSettings):
    """Application settings loaded from environment variables with NIXDELTA_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="NIXDELTA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False
    structured_logging: bool = False

    # Record source
    database_path: Path = DEFAULT_DATABASE_PATH

    # Snapshot persistence
    state_dir: Path = Field(default_factory=default_state_dir)
    state_file_name: str = "packages.mpack"

    # Snapshot builder
    duplicate_window_seconds: int = Field(default=3600, ge=0)
    # None walks the full closure. Shared dependencies are copied per branch,
    # so diamond-shaped graphs grow exponentially with depth.
    max_depth: int | None = Field(default=None, ge=1)
    build_workers: int = Field(default=1, ge=1)

    # Diff engine
    min_global_referrers: int = Field(default=2, ge=1)

    @field_validator("state_file_name")
    @classmethod
    def reject_path_separators(cls, v: str) -> str:
        if not v or "/" in v or v in (".", ".."):
            raise ValueError("state_file_name must be a plain file name")
        return v

    @property
    def state_file(self) -> Path:
        return self.state_dir / self.state_file_name


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings: database=%s state=%s", settings.database_path, settings.state_file)

    return settings
