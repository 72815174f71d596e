"""
Expected value detection for player props.

Compares every book's price against a market-consensus true probability and
flags props where the best available price on either side carries enough
positive EV.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from prop_edge.config.constants import MIN_EV_THRESHOLD_PCT

from .odds_converter import calculate_expected_value_percent
from .opportunity import (
    BestPrice,
    Confidence,
    EVOpportunity,
    LineRange,
    make_opportunity_id,
)
from .quotes import GameInfo, PropMarket, Side, SportsbookQuote, complete_quotes
from .true_probability import TrueProbabilityEstimator

logger = logging.getLogger(__name__)


@dataclass
class EVSummary:
    """Aggregate statistics over a set of EV opportunities."""

    total: int = 0
    high_confidence: int = 0
    average_ev: float = 0.0
    best_ev: float = 0.0
    five_star_count: int = 0


@dataclass
class DetectionResult:
    """Result of an EV detection scan."""

    opportunities: list[EVOpportunity] = field(default_factory=list)
    scanned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    props_scanned: int = 0

    @property
    def high_confidence(self) -> list[EVOpportunity]:
        return [o for o in self.opportunities if o.confidence is Confidence.HIGH]

    @property
    def best(self) -> Optional[EVOpportunity]:
        if not self.opportunities:
            return None
        return max(self.opportunities, key=lambda o: o.max_ev)


def calculate_ev_rating(ev: float) -> int:
    """Star rating (1-5) for an EV percentage."""
    if ev < 0:
        return 1
    if ev < 2:
        return 2
    if ev < 4:
        return 3
    if ev < 6:
        return 4
    return 5


def calculate_line_range(quotes: list[SportsbookQuote]) -> LineRange:
    """Min, max, average and spread of lines, rounded to one decimal."""
    if not quotes:
        return LineRange(min=0.0, max=0.0, average=0.0, spread=0.0)

    lines = [q.line for q in quotes]
    low = min(lines)
    high = max(lines)

    return LineRange(
        min=round(low, 1),
        max=round(high, 1),
        average=round(sum(lines) / len(lines), 1),
        spread=round(high - low, 1),
    )


def ev_confidence(spread: float, max_ev: float) -> Confidence:
    """Tight lines plus strong EV earn HIGH; the first matching rule wins."""
    if spread <= 0.5 and max_ev >= 4:
        return Confidence.HIGH
    if spread <= 1.0 and max_ev >= 3:
        return Confidence.HIGH
    if spread <= 2.0 or max_ev >= 2.5:
        return Confidence.MEDIUM
    return Confidence.LOW


def _best_for_side(
    quotes: list[SportsbookQuote],
    side: Side,
    true_probability: float,
) -> BestPrice:
    # Strict > keeps the first-encountered book on ties
    best_quote = quotes[0]
    best_ev = calculate_expected_value_percent(true_probability, best_quote.odds_for(side))

    for quote in quotes[1:]:
        ev = calculate_expected_value_percent(true_probability, quote.odds_for(side))
        if ev > best_ev:
            best_ev = ev
            best_quote = quote

    return BestPrice(
        sportsbook_id=best_quote.sportsbook_id,
        sportsbook=best_quote.display_name,
        line=best_quote.line,
        odds=best_quote.odds_for(side),
        implied_probability=best_quote.implied_prob_for(side),
        ev=best_ev,
        logo_url=best_quote.logo_url,
    )


def find_best_odds(
    quotes: list[SportsbookQuote],
    true_probability_over: float,
) -> tuple[BestPrice, BestPrice]:
    """
    Find the highest-EV Over and Under prices.

    Args:
        quotes: Complete quotes for one prop
        true_probability_over: Estimated probability of the Over

    Returns:
        Tuple of (best_over, best_under)

    Raises:
        ValueError: If no complete quotes are provided
    """
    books = complete_quotes(quotes)
    if not books:
        raise ValueError("No sportsbooks provided")

    return (
        _best_for_side(books, Side.OVER, true_probability_over),
        _best_for_side(books, Side.UNDER, 1 - true_probability_over),
    )


class EVDetector:
    """
    Detects +EV prices across sportsbooks for a prop.

    Example:
        >>> detector = EVDetector(min_ev=2.0)
        >>> opp = detector.detect(quotes, "LeBron James", "points", game)
        >>> if opp:
        ...     print(opp.highlight, opp.best_play)
    """

    def __init__(
        self,
        min_ev: float = MIN_EV_THRESHOLD_PCT,
        estimator: Optional[TrueProbabilityEstimator] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the EV detector.

        Args:
            min_ev: Minimum EV percentage on at least one side (default 2%)
            estimator: True probability estimator (market consensus by default)
            now: Clock returning an aware datetime
        """
        self.min_ev = min_ev
        self.estimator = estimator or TrueProbabilityEstimator()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def detect(
        self,
        quotes: Iterable[SportsbookQuote],
        player: str,
        prop_type: str,
        game: GameInfo,
        sport: str = "NBA",
    ) -> Optional[EVOpportunity]:
        """
        Evaluate one prop.

        Returns:
            EVOpportunity, or None when there are no complete quotes or
            neither side's best EV reaches min_ev
        """
        books = complete_quotes(quotes)
        if not books:
            return None

        true_prob_over = self.estimator.estimate(books, Side.OVER)
        best_over, best_under = find_best_odds(books, true_prob_over)
        line_range = calculate_line_range(books)

        if best_over.ev < self.min_ev and best_under.ev < self.min_ev:
            return None

        max_ev = max(best_over.ev, best_under.ev)
        created_at = self._now()

        logger.debug(f"EV {max_ev:.2f}% on {player} {prop_type}")

        return EVOpportunity(
            id=make_opportunity_id("ev", player, prop_type, created_at=created_at),
            player=player,
            prop_type=prop_type,
            game=game,
            estimated_true_probability_over=true_prob_over,
            best_over=best_over,
            best_under=best_under,
            all_books=tuple(books),
            line_range=line_range,
            rating=calculate_ev_rating(max_ev),
            confidence=ev_confidence(line_range.spread, max_ev),
            created_at=created_at,
            sport=sport,
        )

    def detect_all(self, markets: Iterable[PropMarket]) -> DetectionResult:
        """Evaluate many prop markets; results sorted by best EV."""
        opportunities: list[EVOpportunity] = []
        scanned = 0

        for market in markets:
            scanned += 1
            opportunity = self.detect(
                market.quotes, market.player, market.prop_type, market.game, market.sport
            )
            if opportunity is not None:
                opportunities.append(opportunity)

        return DetectionResult(
            opportunities=sort_by_ev(opportunities),
            scanned_at=self._now(),
            props_scanned=scanned,
        )


def sort_by_ev(opportunities: Iterable[EVOpportunity]) -> list[EVOpportunity]:
    """Sort by max EV, highest first."""
    return sorted(opportunities, key=lambda o: o.max_ev, reverse=True)


def filter_by_threshold(
    opportunities: Iterable[EVOpportunity],
    min_ev: float,
) -> list[EVOpportunity]:
    """Keep opportunities whose best side reaches min_ev."""
    return [o for o in opportunities if o.max_ev >= min_ev]


def summarize(opportunities: list[EVOpportunity]) -> EVSummary:
    """Summary statistics; the average covers both sides of every prop."""
    if not opportunities:
        return EVSummary()

    all_evs = [ev for o in opportunities for ev in (o.best_over.ev, o.best_under.ev)]

    return EVSummary(
        total=len(opportunities),
        high_confidence=sum(1 for o in opportunities if o.confidence is Confidence.HIGH),
        average_ev=round(sum(all_evs) / len(all_evs), 2),
        best_ev=round(max(all_evs), 2),
        five_star_count=sum(1 for o in opportunities if o.rating == 5),
    )
