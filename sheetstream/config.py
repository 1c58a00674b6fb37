"""Configuration and environment settings"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

FORMAT_MAX_ROWS = 1_048_576

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class ExportSettings(BaseSettings):
    """Export service configuration"""

    model_config = SettingsConfigDict(
        env_prefix="SHEETSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    output_dir: str = "./exports"
    artifact_prefix: str | None = None
    overwrite_artifacts: bool = False

    # Limits
    max_rows_per_sheet: int = Field(default=FORMAT_MAX_ROWS, ge=2, le=FORMAT_MAX_ROWS)

    # Scratch space for in-progress workbooks (None = system temp dir)
    temp_dir: str | None = None

    log_level: str = "INFO"


@lru_cache
def get_settings() -> ExportSettings:
    """Get the cached settings instance"""
    return ExportSettings()


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging once for the service entry points"""
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)
