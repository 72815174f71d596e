"""
Kelly Criterion bet sizing calculator.

Implements bet sizing using the Kelly Criterion with conservative
fractional Kelly and a hard ceiling of 10% of bankroll per bet.
"""
import math
from dataclasses import dataclass
from typing import Optional

from prop_edge.config.constants import KELLY_FRACTION, MAX_STAKE_FRACTION

from .odds_converter import american_to_decimal, calculate_expected_value_percent


def _validate_probability(probability: float) -> None:
    if math.isnan(probability) or not 0 <= probability <= 1:
        raise ValueError(f"Probability must be between 0 and 1, got {probability}")


def full_kelly_fraction(true_probability: float, american_odds: int) -> float:
    """
    Raw Kelly fraction f* = (b*p - q) / b.

    Negative when the bet has negative edge.
    """
    _validate_probability(true_probability)
    b = american_to_decimal(american_odds) - 1  # Net odds (profit per unit wagered)
    p = true_probability
    q = 1 - p
    return (b * p - q) / b


def _fractional_kelly_stake(
    bankroll: float,
    true_probability: float,
    american_odds: int,
    multiplier: float,
) -> float:
    if bankroll <= 0:
        return 0.0

    adjusted = full_kelly_fraction(true_probability, american_odds) * multiplier
    return max(0.0, min(MAX_STAKE_FRACTION * bankroll, adjusted * bankroll))


def _round_to_cents(stake: float, ceiling: float) -> float:
    # Never let rounding push the stake over the ceiling
    return min(round(stake, 2), math.floor(ceiling * 100) / 100)


def kelly_fraction(
    bankroll: float,
    true_probability: float,
    american_odds: int,
    fraction_multiplier: float = KELLY_FRACTION,
) -> float:
    """
    Dollar stake from fractional Kelly.

    stake = clamp(f* * fraction_multiplier * bankroll, 0, 0.10 * bankroll)

    The 10%-of-bankroll ceiling holds however large the raw Kelly fraction
    is, and negative edges size to 0.

    Args:
        bankroll: Current bankroll
        true_probability: Estimated probability of winning (0-1)
        american_odds: American odds
        fraction_multiplier: Kelly fraction (0.25 = quarter Kelly)

    Returns:
        Stake in bankroll units
    """
    return _fractional_kelly_stake(
        bankroll, true_probability, american_odds, fraction_multiplier
    )


def calculate_kelly_stake(
    bankroll: float,
    true_probability: float,
    odds: int,
    kelly_fraction: float = KELLY_FRACTION,
) -> float:
    """
    Recommended stake for a bet-sizing calculator, rounded to cents.

    Examples:
        >>> calculate_kelly_stake(1000, 0.55, -110, 0.25)
        13.75
    """
    if bankroll <= 0:
        return 0.0
    stake = _fractional_kelly_stake(bankroll, true_probability, odds, kelly_fraction)
    return _round_to_cents(stake, MAX_STAKE_FRACTION * bankroll)


@dataclass
class StakeRecommendation:
    """Recommended stake for a single bet."""

    full_kelly: float  # Raw Kelly fraction, can be negative
    fractional_kelly: float  # After applying the multiplier
    recommended_stake: float  # Dollar amount
    stake_percentage: float  # Fraction of bankroll
    capped_by_max: bool = False

    # Input parameters for reference
    win_probability: float = 0.0
    decimal_odds: float = 0.0
    bankroll: float = 0.0
    ev_percent: float = 0.0

    @property
    def expected_profit(self) -> float:
        """Expected profit of the recommended stake."""
        return round(self.recommended_stake * self.ev_percent / 100, 2)

    @property
    def has_edge(self) -> bool:
        return self.full_kelly > 0


class KellyCalculator:
    """
    Kelly Criterion calculator for bet sizing.

    Key formulas:
    - Full Kelly: f* = (bp - q) / b
      where b = net odds, p = win prob, q = lose prob
    - Fractional Kelly: f = f* x fraction
    - Stake: clamp(f * bankroll, 0, max_stake_pct * bankroll)

    Example:
        >>> kelly = KellyCalculator(fraction=0.25)
        >>> rec = kelly.calculate_stake(bankroll=1000.0, win_probability=0.55, odds=-110)
        >>> rec.recommended_stake
        13.75
    """

    def __init__(
        self,
        fraction: float = KELLY_FRACTION,
        max_stake_pct: float = MAX_STAKE_FRACTION,
    ):
        """
        Initialize the Kelly calculator.

        Args:
            fraction: Kelly fraction to use (0.25 = quarter Kelly)
            max_stake_pct: Maximum stake as a fraction of bankroll, at most 0.10
        """
        if not 0 < fraction <= 1:
            raise ValueError("Fraction must be between 0 and 1")
        if not 0 < max_stake_pct <= MAX_STAKE_FRACTION:
            raise ValueError(
                f"Max stake percentage must be between 0 and {MAX_STAKE_FRACTION}"
            )

        self.fraction = fraction
        self.max_stake_pct = max_stake_pct

    def calculate_stake(
        self,
        bankroll: float,
        win_probability: float,
        odds: int,
    ) -> StakeRecommendation:
        """
        Calculate the recommended stake for a bet.

        Args:
            bankroll: Current bankroll in dollars
            win_probability: Probability of winning (0-1)
            odds: American odds (e.g., -110, +150)

        Returns:
            StakeRecommendation with dollar amount and metadata
        """
        full = full_kelly_fraction(win_probability, odds)
        fractional = full * self.fraction
        decimal_odds = american_to_decimal(odds)
        ev_percent = calculate_expected_value_percent(win_probability, odds)

        if bankroll <= 0:
            return StakeRecommendation(
                full_kelly=full,
                fractional_kelly=fractional,
                recommended_stake=0.0,
                stake_percentage=0.0,
                win_probability=win_probability,
                decimal_odds=decimal_odds,
                bankroll=bankroll,
                ev_percent=ev_percent,
            )

        stake = max(0.0, fractional * bankroll)
        max_stake = self.max_stake_pct * bankroll

        capped_by_max = stake > max_stake
        if capped_by_max:
            stake = max_stake

        stake = _round_to_cents(stake, max_stake)

        return StakeRecommendation(
            full_kelly=full,
            fractional_kelly=fractional,
            recommended_stake=stake,
            stake_percentage=stake / bankroll,
            capped_by_max=capped_by_max,
            win_probability=win_probability,
            decimal_odds=decimal_odds,
            bankroll=bankroll,
            ev_percent=ev_percent,
        )

    def calculate_growth_rate(
        self,
        win_probability: float,
        odds: int,
        stake_fraction: Optional[float] = None,
    ) -> float:
        """
        Expected logarithmic growth rate p*log(1 + b*f) + q*log(1 - f).

        The Kelly Criterion maximizes this quantity.

        Args:
            win_probability: Probability of winning
            odds: American odds
            stake_fraction: Fraction of bankroll wagered (fractional Kelly if None)

        Returns:
            Expected log growth per bet
        """
        if stake_fraction is None:
            stake_fraction = min(
                max(0.0, full_kelly_fraction(win_probability, odds) * self.fraction),
                self.max_stake_pct,
            )

        if stake_fraction <= 0:
            return 0.0
        if stake_fraction >= 1:
            return float("-inf")

        p = win_probability
        q = 1 - p
        b = american_to_decimal(odds) - 1

        return p * math.log(1 + b * stake_fraction) + q * math.log(1 - stake_fraction)
