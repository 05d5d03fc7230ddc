"""Library settings and configuration."""

from __future__ import annotations

import os
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from typing import Annotated, Literal

from loguru import logger
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logger import configure_logging

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]


def _default_worker_count() -> int:
    return os.cpu_count() or 1


class Settings(BaseSettings):
    """
    voxelpipe configuration settings.

    Settings can be configured via:

    1. Environment variables (e.g., VOXELPIPE_MAX_WORKERS=4)
    2. .env file in the working directory
    3. Default values defined below

    All settings use the VOXELPIPE_ prefix for environment variables.

    .. rubric:: Examples

    Limit the compute engine to two worker threads and log debug output::

        export VOXELPIPE_MAX_WORKERS=2
        export VOXELPIPE_LOG_LEVEL=DEBUG
    """

    max_workers: Annotated[
        int,
        Field(
            default_factory=_default_worker_count,
            description="Default size of the compute engine's worker pool",
            gt=0,
        ),
    ]

    log_level: Annotated[
        LogLevel,
        Field(default="INFO", description="Level of the stderr log sink"),
    ]

    grid_tolerance: Annotated[
        float,
        Field(
            default=1e-4,
            description="Relative tolerance of the rectilinear grid check and of the grid alignment test",
            gt=0.0,
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="VOXELPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        validate_assignment=True,
        extra="forbid",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def library_version(self) -> str:
        """
        Get the library version from package metadata.

        :return: The installed version, or "0.0.0" when the package is not installed.
        """
        try:
            return version("voxelpipe")
        except PackageNotFoundError:
            logger.warning("Could not determine package version, using fallback '0.0.0'")
            return "0.0.0"

    def apply_logging(self) -> int:
        """Install the stderr log sink at the configured level."""
        return configure_logging(self.log_level)

    def log_startup_config(self) -> None:
        """Log the active configuration."""
        logger.info("=" * 60)
        logger.info("voxelpipe configuration:")
        logger.info(f"  Version: {self.library_version}")
        logger.info(f"  Worker threads: {self.max_workers}")
        logger.info(f"  Log level: {self.log_level}")
        logger.info(f"  Grid tolerance: {self.grid_tolerance:g}")
        logger.info("=" * 60)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    :return: The settings instance shared by every engine and comparator that
        was not given explicit values.
    """
    return Settings()  # type: ignore
