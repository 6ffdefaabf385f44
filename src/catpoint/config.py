"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from CATPOINT_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="CATPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Persistence - empty path keeps state in memory only
    repository_path: str = ""

    # Camera classification
    classifier: Literal["fake", "yolo"] = "fake"
    yolo_model: str = "yolo11n.pt"
    yolo_device: str = "cpu"
    cat_confidence_threshold: float = Field(default=50.0, gt=0.0, le=100.0)

    # Control API
    host: str = "0.0.0.0"
    port: int = 8080
    event_log_size: int = Field(default=100, ge=1)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
