"""
Upstream odds sources.

Available sources:
- OddsAPIClient: Odds-API.io v3 for player prop odds
"""
from .base import (
    BaseDataSource,
    DataSourceError,
    DataSourceHealth,
    DataSourceStatus,
    RateLimitError,
    AuthenticationError,
    DataNotAvailableError,
    RetryConfig,
)
from .odds_api import (
    OddsAPIClient,
    OddsEvent,
    QuotaStatus,
    parse_event_props,
    parse_player_name,
    parse_player_props,
    resolve_sport,
)

__all__ = [
    # Base classes
    "BaseDataSource",
    "DataSourceError",
    "DataSourceHealth",
    "DataSourceStatus",
    "RateLimitError",
    "AuthenticationError",
    "DataNotAvailableError",
    "RetryConfig",
    # Clients
    "OddsAPIClient",
    "OddsEvent",
    "QuotaStatus",
    # Parsing
    "parse_event_props",
    "parse_player_name",
    "parse_player_props",
    "resolve_sport",
]
