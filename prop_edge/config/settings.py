"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env file.
"""
import logging
import sys
from functools import lru_cache
from typing import Optional

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from prop_edge.config.constants import (
    ARBITRAGE_EXPIRY_MINUTES,
    CACHE_TTL_SECONDS,
    DEFAULT_BOOKMAKERS,
    KELLY_FRACTION,
    MAX_STAKE_FRACTION,
    MIN_ARBITRAGE_PROFIT_PCT,
    MIN_BOOKS_PER_PROP,
    MIN_EV_THRESHOLD_PCT,
    QUOTA_LIMIT,
)


class DetectionSettings(BaseSettings):
    """Settings for arbitrage and EV detection."""

    model_config = SettingsConfigDict(env_prefix="DETECTION_")

    min_arbitrage_profit: float = Field(
        default=MIN_ARBITRAGE_PROFIT_PCT,
        description="Minimum guaranteed profit percentage to flag arbitrage",
    )
    min_ev: float = Field(
        default=MIN_EV_THRESHOLD_PCT,
        description="Minimum EV percentage on at least one side",
    )
    total_stake: float = Field(
        default=100.0,
        description="Total stake used for arbitrage stake splits",
    )
    include_middles: bool = Field(
        default=True,
        description="Run middle detection and rank middles with other plays",
    )
    min_books: int = Field(
        default=MIN_BOOKS_PER_PROP,
        description="Minimum complete sportsbooks required to scan a prop",
    )
    arbitrage_expiry_minutes: int = Field(
        default=ARBITRAGE_EXPIRY_MINUTES,
        description="Minutes before an arbitrage is considered stale",
    )


class KellySettings(BaseSettings):
    """Settings for Kelly stake sizing."""

    model_config = SettingsConfigDict(env_prefix="KELLY_")

    fraction: float = Field(
        default=KELLY_FRACTION,
        description="Fraction of Kelly Criterion to use (0.25 = quarter Kelly)",
    )
    max_stake_percent: float = Field(
        default=MAX_STAKE_FRACTION,
        description="Maximum stake as fraction of bankroll (never above 0.10)",
    )

    @field_validator("max_stake_percent")
    @classmethod
    def validate_max_stake(cls, v: float) -> float:
        if not 0 < v <= MAX_STAKE_FRACTION:
            raise ValueError("max_stake_percent must be in (0, 0.10]")
        return v


class CacheSettings(BaseSettings):
    """Settings for the quota-aware odds cache."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: str = Field(
        default="memory",
        description="Cache backend: memory or sqlite",
    )
    sqlite_path: str = Field(
        default="data/cache/odds_cache.db",
        description="Database file for the sqlite backend",
    )
    ttl_seconds: int = Field(
        default=CACHE_TTL_SECONDS,
        description="Seconds a cached odds snapshot stays fresh",
    )
    quota_limit: int = Field(
        default=QUOTA_LIMIT,
        description="Upstream requests allowed per quota window",
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = ["memory", "sqlite"]
        if v not in allowed:
            raise ValueError(f"backend must be one of {allowed}")
        return v


class OddsAPISettings(BaseSettings):
    """Settings for Odds-API.io."""

    model_config = SettingsConfigDict(env_prefix="ODDS_")

    api_key: str = Field(
        default="",
        description="API key from odds-api.io",
    )
    base_url: str = Field(
        default="https://api.odds-api.io/v3",
        description="Base URL for the API",
    )
    bookmakers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BOOKMAKERS),
        description="Bookmakers to request odds from",
    )
    max_events: int = Field(
        default=10,
        description="Maximum upcoming events to fetch per scan",
    )
    max_concurrent_requests: int = Field(
        default=5,
        description="Maximum in-flight requests",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Total timeout per HTTP request",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Bankroll
    bankroll: float = Field(
        default=1000.0,
        description="Bankroll used for stake recommendations",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    # Sub-settings
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    kelly: KellySettings = Field(default_factory=KellySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    odds_api: OddsAPISettings = Field(default_factory=OddsAPISettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Apply log level and optional log file.

    The betting modules log through the standard library; the data layer
    logs through loguru. Both are pointed at the same level.
    """
    settings = settings or get_settings()
    level = settings.log_level.upper()

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logger.remove()
    logger.add(sys.stderr, level=level)
    if settings.log_file:
        logger.add(settings.log_file, level=level, rotation="10 MB", retention=5)
