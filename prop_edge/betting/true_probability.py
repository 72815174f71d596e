"""
Market-consensus true probability estimation.

There is no predictive model behind this estimate. The consensus implied
probability across books is scaled by the inverse of the average two-sided
implied total, which strips the average bookmaker margin. Margins are
averaged across books first; individual books are not de-vigged.
"""
import logging
from typing import Iterable

from .quotes import Side, SportsbookQuote, complete_quotes

logger = logging.getLogger(__name__)

MIN_TRUE_PROBABILITY = 0.01
MAX_TRUE_PROBABILITY = 0.99
DEFAULT_TRUE_PROBABILITY = 0.5


class TrueProbabilityEstimator:
    """
    Estimates the vig-free probability of one side of a prop.

    Example:
        >>> estimator = TrueProbabilityEstimator()
        >>> p_over = estimator.estimate(quotes, Side.OVER)
    """

    def __init__(
        self,
        min_probability: float = MIN_TRUE_PROBABILITY,
        max_probability: float = MAX_TRUE_PROBABILITY,
        default_probability: float = DEFAULT_TRUE_PROBABILITY,
    ):
        if not 0 <= min_probability < max_probability <= 1:
            raise ValueError("Probability bounds must satisfy 0 <= min < max <= 1")
        self.min_probability = min_probability
        self.max_probability = max_probability
        self.default_probability = default_probability

    def estimate(self, quotes: Iterable[SportsbookQuote], side: Side) -> float:
        """
        Estimate the true probability for a side.

        Args:
            quotes: Quotes for a single prop; incomplete quotes are ignored
            side: Side.OVER or Side.UNDER

        Returns:
            Probability clamped to [min_probability, max_probability],
            or default_probability when no complete quote is available
        """
        side = Side(side)
        books = complete_quotes(quotes)

        if not books:
            logger.debug("No complete quotes, using default probability")
            return self.default_probability

        avg_side_prob = sum(q.implied_prob_for(side) for q in books) / len(books)
        avg_total_implied = sum(q.total_implied_prob for q in books) / len(books)

        if avg_total_implied <= 0:
            return self.default_probability

        vig_multiplier = 1 / avg_total_implied
        estimated = avg_side_prob * vig_multiplier

        return max(self.min_probability, min(self.max_probability, estimated))


def estimate_true_probability(
    quotes: Iterable[SportsbookQuote],
    side: Side,
) -> float:
    """Convenience wrapper around TrueProbabilityEstimator.estimate."""
    return TrueProbabilityEstimator().estimate(quotes, side)
