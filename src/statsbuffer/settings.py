"""Process-level settings for statsbuffer."""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Settings loaded from STATSBUFFER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STATSBUFFER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Level for the statsbuffer loggers")
    log_file: Optional[Path] = None
    rich_tracebacks: bool = True


settings = Settings()
