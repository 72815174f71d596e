"""
Odds math and opportunity detection for player props.

Provides tools for:
- Odds conversion and implied probability
- Market-consensus true probability estimation
- Cross-book arbitrage and middle scanning
- Expected value detection
- Kelly Criterion bet sizing
- Ranking and deduplication of opportunities
"""

from .odds_converter import (
    InvalidOddsError,
    american_to_decimal,
    american_to_implied_probability,
    decimal_to_american,
    decimal_to_implied_probability,
    implied_probability_to_american,
    validate_american_odds,
    calculate_vig,
    calculate_expected_value_percent,
    calculate_arbitrage_profit,
    calculate_arbitrage_stakes,
)

from .quotes import (
    Side,
    GameInfo,
    SportsbookQuote,
    PropMarket,
    complete_quotes,
    merge_side_quotes,
)

from .true_probability import (
    TrueProbabilityEstimator,
    estimate_true_probability,
)

from .opportunity import (
    Confidence,
    ArbType,
    OpportunityType,
    BookLeg,
    BestPrice,
    LineRange,
    ArbitrageOpportunity,
    EVOpportunity,
    Opportunity,
)

from .arbitrage_scanner import (
    ArbitrageScanner,
    ScanResult,
)

from .ev_detector import (
    EVDetector,
    DetectionResult,
    find_best_odds,
)

from .kelly_calculator import (
    KellyCalculator,
    StakeRecommendation,
    kelly_fraction,
    calculate_kelly_stake,
)

from .ranking import (
    OpportunityFilters,
    OpportunityRanker,
    RankedOpportunities,
    rank_opportunities,
)

__all__ = [
    # Odds converter
    "InvalidOddsError",
    "american_to_decimal",
    "american_to_implied_probability",
    "decimal_to_american",
    "decimal_to_implied_probability",
    "implied_probability_to_american",
    "validate_american_odds",
    "calculate_vig",
    "calculate_expected_value_percent",
    "calculate_arbitrage_profit",
    "calculate_arbitrage_stakes",
    # Quotes
    "Side",
    "GameInfo",
    "SportsbookQuote",
    "PropMarket",
    "complete_quotes",
    "merge_side_quotes",
    # True probability
    "TrueProbabilityEstimator",
    "estimate_true_probability",
    # Opportunities
    "Confidence",
    "ArbType",
    "OpportunityType",
    "BookLeg",
    "BestPrice",
    "LineRange",
    "ArbitrageOpportunity",
    "EVOpportunity",
    "Opportunity",
    # Arbitrage
    "ArbitrageScanner",
    "ScanResult",
    # Expected value
    "EVDetector",
    "DetectionResult",
    "find_best_odds",
    # Kelly sizing
    "KellyCalculator",
    "StakeRecommendation",
    "kelly_fraction",
    "calculate_kelly_stake",
    # Ranking
    "OpportunityFilters",
    "OpportunityRanker",
    "RankedOpportunities",
    "rank_opportunities",
]
