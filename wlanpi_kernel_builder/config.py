"""Configuration settings for wlanpi_kernel_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wlanpi_kernel_builder.types import VersionStamp


def _default_jobs() -> int:
    """Return the default parallel job count (one per processing unit)."""
    return os.cpu_count() or 1


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the WLANPI_KBUILD_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="WLANPI_KBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    workspace_dir: Path = Field(
        default=Path("."),
        description="Root for the kernel source tree, build artifacts and staging",
    )
    output_dir: Path = Field(
        default=Path("output"),
        description="Directory receiving the built .deb archives",
    )
    log_file: Path = Field(
        default=Path("build_kernel.log"),
        description="Log file capturing all output of a run",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Terminal logging level (the log file always gets DEBUG)",
    )

    # Build
    jobs: int = Field(
        default_factory=_default_jobs,
        ge=1,
        description="Parallel make jobs for compile stages",
    )
    version_stamp: VersionStamp = Field(
        default=VersionStamp.DATE,
        description="Package version suffix: date (YYYYMMDD) or timestamp",
    )

    # Timeouts (in seconds)
    query_timeout: int = Field(
        default=300,
        ge=10,
        description="Timeout for short query commands (kernelrelease, rev-parse)",
    )

    @property
    def source_dir(self) -> Path:
        """Kernel working tree inside the workspace."""
        return self.workspace_dir / "linux"

    @property
    def artifacts_dir(self) -> Path:
        """Root receiving the collected build artifacts."""
        return self.workspace_dir / "build-artifacts"


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
