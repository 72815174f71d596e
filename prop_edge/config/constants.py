"""
Constants for the prop opportunity engine.

Contains detection thresholds, sport/league mappings, market name tables
and cache/quota limits.
"""
from enum import Enum
from typing import Final


# =============================================================================
# SPORTS
# =============================================================================
class Sport(str, Enum):
    """Supported leagues."""

    NBA = "NBA"
    NFL = "NFL"
    MLB = "MLB"
    NHL = "NHL"


class PropType(str, Enum):
    """Supported player prop types."""

    POINTS = "player_points"
    REBOUNDS = "player_rebounds"
    ASSISTS = "player_assists"
    THREES = "player_threes"
    BLOCKS = "player_blocks"
    STEALS = "player_steals"
    TURNOVERS = "player_turnovers"
    POINTS_REBOUNDS_ASSISTS = "player_points_rebounds_assists"
    POINTS_REBOUNDS = "player_points_rebounds"
    POINTS_ASSISTS = "player_points_assists"
    REBOUNDS_ASSISTS = "player_rebounds_assists"


# Odds-API.io v3 `sport` query parameter
SPORT_PARAMS: Final[dict[Sport, str]] = {
    Sport.NBA: "basketball",
    Sport.NFL: "american-football",
    Sport.MLB: "baseball",
    Sport.NHL: "hockey",
}

# Odds-API.io v3 `league` query parameter
LEAGUE_PARAMS: Final[dict[Sport, str]] = {
    Sport.NBA: "usa-nba",
    Sport.NFL: "usa-nfl",
    Sport.MLB: "usa-mlb",
    Sport.NHL: "usa-nhl",
}


# =============================================================================
# MARKET MAPPINGS
# =============================================================================
# Odds-API.io market names to prop types
PROP_MARKET_NAMES: Final[dict[str, PropType]] = {
    "Points O/U": PropType.POINTS,
    "Rebounds O/U": PropType.REBOUNDS,
    "Assists O/U": PropType.ASSISTS,
    "3-Pointers Made O/U": PropType.THREES,
    "Blocks O/U": PropType.BLOCKS,
    "Steals O/U": PropType.STEALS,
    "Turnovers O/U": PropType.TURNOVERS,
    "Pts+Rebs+Asts O/U": PropType.POINTS_REBOUNDS_ASSISTS,
    "Points+Rebounds O/U": PropType.POINTS_REBOUNDS,
    "Points+Assists O/U": PropType.POINTS_ASSISTS,
    "Rebounds+Assists O/U": PropType.REBOUNDS_ASSISTS,
}


# =============================================================================
# BOOKMAKER MAPPINGS
# =============================================================================
BOOKMAKER_DISPLAY_NAMES: Final[dict[str, str]] = {
    "draftkings": "DraftKings",
    "fanduel": "FanDuel",
    "betmgm": "BetMGM",
    "caesars": "Caesars",
    "pointsbet": "PointsBet",
    "bet365": "Bet365",
    "betfair": "Betfair",
    "bwin": "Bwin",
    "betrivers": "BetRivers",
    "pinnacle": "Pinnacle",
}

DEFAULT_BOOKMAKERS: Final[list[str]] = ["Bet365", "Betfair", "Bwin"]


# =============================================================================
# DETECTION THRESHOLDS
# =============================================================================
MIN_ARBITRAGE_PROFIT_PCT: Final[float] = 0.5
MIN_EV_THRESHOLD_PCT: Final[float] = 2.0
MIDDLE_MIN_LINE_DIFF: Final[float] = 2.0
MIN_BOOKS_PER_PROP: Final[int] = 2
ARBITRAGE_EXPIRY_MINUTES: Final[int] = 30

KELLY_FRACTION: Final[float] = 0.25
MAX_STAKE_FRACTION: Final[float] = 0.10


# =============================================================================
# CACHE AND QUOTA
# =============================================================================
CACHE_KEY_PREFIX: Final[str] = "@odds_cache:"
CACHE_TTL_SECONDS: Final[int] = 300  # 5 minutes
QUOTA_LIMIT: Final[int] = 5000  # requests per hour
QUOTA_RESET_HOURS: Final[int] = 1
LOW_QUOTA_WARNING: Final[int] = 50
CRITICAL_QUOTA_WARNING: Final[int] = 10
