"""
Odds conversion and calculation utilities.

Provides functions for converting between odds formats and calculating
implied probabilities, expected value, vig and two-leg arbitrage math.

All American odds are validated: zero, sub-100 magnitudes and non-integral
values raise InvalidOddsError instead of dividing by zero downstream.
"""
import math
from typing import NamedTuple


class InvalidOddsError(ValueError):
    """Raised for zero, malformed or out-of-range odds."""

    def __init__(self, odds, message: str = "Invalid American odds"):
        super().__init__(f"{message}: {odds!r}")
        self.odds = odds


class OddsFormats(NamedTuple):
    """Container for odds in multiple formats."""

    american: int
    decimal: float
    implied_probability: float


class VigorousLine(NamedTuple):
    """Two-way line with vig information."""

    side1_implied: float
    side2_implied: float
    total_implied: float
    vig_percent: float
    side1_fair: float
    side2_fair: float


class ArbitrageProfit(NamedTuple):
    """Profit of a two-leg position at a given total stake."""

    total_implied: float
    profit_percent: float  # Negative when the combined market carries vig
    profit_amount: float


class ArbitrageStakes(NamedTuple):
    """Proportional stake split for a two-leg position."""

    over_stake: float
    under_stake: float


def validate_american_odds(american) -> int:
    """
    Validate American odds and return them as an int.

    Args:
        american: Candidate American odds (e.g., -110, +150)

    Returns:
        The odds as an int

    Raises:
        InvalidOddsError: If the odds are zero, |odds| < 100 or not integral
    """
    if isinstance(american, bool) or not isinstance(american, (int, float)):
        raise InvalidOddsError(american, "American odds must be numeric")
    if isinstance(american, float):
        if math.isnan(american) or math.isinf(american) or not american.is_integer():
            raise InvalidOddsError(american, "American odds must be integral")
    if american == 0:
        raise InvalidOddsError(american, "American odds cannot be zero")
    if abs(american) < 100:
        raise InvalidOddsError(american, "American odds magnitude must be >= 100")
    return int(american)


def american_to_decimal(american: int) -> float:
    """
    Convert American odds to decimal odds.

    Args:
        american: American odds (e.g., -110, +150)

    Returns:
        Decimal odds (e.g., 1.909, 2.50)

    Examples:
        >>> american_to_decimal(-110)
        1.9090909090909092
        >>> american_to_decimal(150)
        2.5
    """
    american = validate_american_odds(american)
    if american > 0:
        return american / 100 + 1
    return 100 / abs(american) + 1


def decimal_to_american(decimal_odds: float) -> int:
    """
    Convert decimal odds to American odds.

    Upstream feeds quote decimal odds; display and detection use American.

    Args:
        decimal_odds: Decimal odds (e.g., 1.541, 2.54)

    Returns:
        American odds (e.g., -185, +154)

    Raises:
        InvalidOddsError: If decimal odds are not greater than 1

    Examples:
        >>> decimal_to_american(2.5)
        150
        >>> decimal_to_american(1.5)
        -200
    """
    if (
        isinstance(decimal_odds, bool)
        or not isinstance(decimal_odds, (int, float))
        or math.isnan(decimal_odds)
        or decimal_odds <= 1
    ):
        raise InvalidOddsError(decimal_odds, "Decimal odds must be greater than 1")

    if decimal_odds >= 2:
        # Positive American odds
        return int(round((decimal_odds - 1) * 100))
    # Negative American odds
    return int(round(-100 / (decimal_odds - 1)))


def american_to_implied_probability(american: int) -> float:
    """
    Convert American odds to implied probability.

    Note: This includes the bookmaker's vig, so both sides won't sum to 1.

    Args:
        american: American odds

    Returns:
        Implied probability (0-1)

    Examples:
        >>> american_to_implied_probability(-110)
        0.5238095238095238
        >>> american_to_implied_probability(150)
        0.4
    """
    american = validate_american_odds(american)
    if american > 0:
        return 100 / (american + 100)
    return -american / (-american + 100)


def decimal_to_implied_probability(decimal_odds: float) -> float:
    """
    Convert decimal odds to implied probability.

    Examples:
        >>> decimal_to_implied_probability(2.0)
        0.5
    """
    if decimal_odds <= 1:
        raise InvalidOddsError(decimal_odds, "Decimal odds must be greater than 1")
    return 1 / decimal_odds


def implied_probability_to_american(probability: float) -> int:
    """
    Convert implied probability to American odds.

    Args:
        probability: Implied probability, strictly between 0 and 1

    Returns:
        American odds

    Examples:
        >>> implied_probability_to_american(0.5)
        100
        >>> implied_probability_to_american(0.6)
        -150
    """
    if not 0 < probability < 1:
        raise ValueError(f"Probability must be between 0 and 1, got {probability}")

    if probability == 0.5:
        return 100
    elif probability > 0.5:
        # Favorite (negative odds)
        return int(round(-probability / (1 - probability) * 100))
    else:
        # Underdog (positive odds)
        return int(round((1 - probability) / probability * 100))


def convert_odds(american: int) -> OddsFormats:
    """Convert American odds to all formats."""
    return OddsFormats(
        american=validate_american_odds(american),
        decimal=american_to_decimal(american),
        implied_probability=american_to_implied_probability(american),
    )


def calculate_vig(odds1: int, odds2: int) -> VigorousLine:
    """
    Calculate the vig/juice for a two-way line.

    Args:
        odds1: American odds for outcome 1
        odds2: American odds for outcome 2

    Returns:
        VigorousLine with implied probabilities, vig, and fair probabilities

    Examples:
        >>> round(calculate_vig(-110, -110).vig_percent, 2)
        4.76
    """
    implied1 = american_to_implied_probability(odds1)
    implied2 = american_to_implied_probability(odds2)

    total_implied = implied1 + implied2

    # Vig is the excess over 100%
    vig_percent = (total_implied - 1) * 100

    return VigorousLine(
        side1_implied=implied1,
        side2_implied=implied2,
        total_implied=total_implied,
        vig_percent=vig_percent,
        side1_fair=implied1 / total_implied,
        side2_fair=implied2 / total_implied,
    )


def calculate_expected_value_percent(
    true_probability: float,
    american_odds: int,
) -> float:
    """
    Calculate expected value as a percentage of the amount wagered.

    EV% = (p * d - 1) * 100 for decimal odds d. For fixed odds this is
    strictly increasing in p since d > 1.

    Args:
        true_probability: Estimated probability of winning (0-1)
        american_odds: American odds offered

    Returns:
        Expected value percentage (5.0 means +5%)

    Examples:
        >>> round(calculate_expected_value_percent(0.55, -110), 4)
        5.0
    """
    decimal_odds = american_to_decimal(american_odds)
    return (true_probability * decimal_odds - 1) * 100


def calculate_arbitrage_profit(
    over_odds: int,
    under_odds: int,
    total_stake: float = 100.0,
) -> ArbitrageProfit:
    """
    Profit of backing both sides with a proportional stake split.

    profit% = (1 / total_implied - 1) * 100, which is positive only when
    the combined implied probability is below 1.

    Examples:
        >>> round(calculate_arbitrage_profit(120, 110).profit_percent, 2)
        7.44
    """
    total_implied = american_to_implied_probability(
        over_odds
    ) + american_to_implied_probability(under_odds)

    profit_percent = (1 / total_implied - 1) * 100
    profit_amount = total_stake * profit_percent / 100

    return ArbitrageProfit(
        total_implied=total_implied,
        profit_percent=profit_percent,
        profit_amount=round(profit_amount, 2),
    )


def calculate_arbitrage_stakes(
    over_odds: int,
    under_odds: int,
    total_stake: float = 100.0,
) -> ArbitrageStakes:
    """
    Split a total stake so both legs return the same payout.

    Each leg gets (leg_implied / total_implied) * total_stake.

    Examples:
        >>> calculate_arbitrage_stakes(120, 110, 100.0)
        ArbitrageStakes(over_stake=48.84, under_stake=51.16)
    """
    over_implied = american_to_implied_probability(over_odds)
    under_implied = american_to_implied_probability(under_odds)
    total_implied = over_implied + under_implied

    return ArbitrageStakes(
        over_stake=round(over_implied / total_implied * total_stake, 2),
        under_stake=round(under_implied / total_implied * total_stake, 2),
    )


def calculate_potential_payout(stake: float, american_odds: int) -> float:
    """
    Calculate total payout (stake + profit) for a winning bet.

    Examples:
        >>> round(calculate_potential_payout(100.0, -110), 2)
        190.91
    """
    return stake * american_to_decimal(american_odds)


def format_american_odds(odds: int) -> str:
    """
    Format American odds with proper sign.

    Examples:
        >>> format_american_odds(-110)
        '-110'
        >>> format_american_odds(150)
        '+150'
    """
    if odds > 0:
        return f"+{odds}"
    return str(odds)
