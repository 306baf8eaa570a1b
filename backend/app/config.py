"""Application configuration."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Indicator backend: "auto" prefers native libraries when importable
    indicator_backend: Literal["auto", "native", "fallback"] = "auto"
    offload_native: bool = True

    # Strategy state persistence
    state_store: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    state_key_prefix: str = "strategy_state"

    # Seconds a fetched candle window stays cached (0 disables caching)
    candle_cache_ttl: float = 5.0

    # Strategy instances (symbol/strategy/options)
    instances_file: str = "instances.yaml"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging once for the process."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
