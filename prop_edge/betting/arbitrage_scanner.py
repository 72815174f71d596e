"""
Cross-book arbitrage scanner.

Identifies guaranteed profit opportunities by pairing the Over at one book
with the Under at another, and "middle" windows where books disagree on the
line enough that both legs can win.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from prop_edge.config.constants import MIDDLE_MIN_LINE_DIFF, MIN_ARBITRAGE_PROFIT_PCT

from .odds_converter import (
    american_to_implied_probability,
    calculate_arbitrage_profit,
    calculate_arbitrage_stakes,
)
from .opportunity import (
    ARBITRAGE_TTL,
    ArbitrageOpportunity,
    ArbType,
    BookLeg,
    Confidence,
    make_opportunity_id,
)
from .quotes import GameInfo, PropMarket, SportsbookQuote, complete_quotes

logger = logging.getLogger(__name__)

MIDDLE_WIDE_WINDOW = 3.0
DEFAULT_TOTAL_STAKE = 100.0


@dataclass(frozen=True)
class _Combination:
    """An Over leg from one book against an Under leg from another."""

    over_quote: SportsbookQuote
    under_quote: SportsbookQuote
    over_odds: int
    under_odds: int
    profit_pct: float
    total_implied: float

    @property
    def line_diff(self) -> float:
        return round(abs(self.over_quote.line - self.under_quote.line), 6)


@dataclass
class ArbitrageSummary:
    """Aggregate statistics over a set of opportunities."""

    total: int = 0
    high_confidence: int = 0
    average_profit: float = 0.0
    best_profit: float = 0.0
    total_potential_profit: float = 0.0


@dataclass
class ScanResult:
    """Results from scanning prop markets for arbitrage and middles."""

    opportunities: list[ArbitrageOpportunity] = field(default_factory=list)
    middles: list[ArbitrageOpportunity] = field(default_factory=list)
    scanned_props: int = 0
    scanned_books: int = 0
    scan_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_opportunities(self) -> bool:
        return len(self.opportunities) > 0 or len(self.middles) > 0

    def get_top_opportunities(self, n: int = 5) -> list[ArbitrageOpportunity]:
        """Get top N arbitrage opportunities sorted by profit percentage."""
        return sort_by_profit(self.opportunities)[:n]


def arbitrage_confidence(line_diff: float, profit_pct: float) -> Confidence:
    """
    Confidence for a guaranteed-profit pair; the first matching rule wins.

    Matching lines with solid profit are the safest. Wider line gaps need
    more profit to stay above LOW.
    """
    if line_diff == 0 and profit_pct >= 1.5:
        return Confidence.HIGH
    if line_diff <= 1 and profit_pct >= 1.0:
        return Confidence.HIGH
    if line_diff <= 2 or profit_pct >= 0.8:
        return Confidence.MEDIUM
    return Confidence.LOW


def middle_confidence(line_diff: float) -> Confidence:
    return Confidence.HIGH if line_diff >= MIDDLE_WIDE_WINDOW else Confidence.MEDIUM


class ArbitrageScanner:
    """
    Scanner for cross-book arbitrage and middle opportunities on player props.

    Arbitrage exists when the Over implied probability at one book plus the
    Under implied probability at another is less than 100%. Backing both
    with a proportional stake split pays the same whichever side wins.

    Example:
        Book A: Over 27.5 @ +120 (implied 45.5%)
        Book B: Under 27.5 @ +110 (implied 47.6%)
        Total implied: 93.1% < 100% = 7.44% guaranteed profit

    Usage:
        >>> scanner = ArbitrageScanner(min_profit_pct=0.5)
        >>> arbs = scanner.detect(quotes, "LeBron James", "points", game)
        >>> for arb in arbs:
        ...     print(f"{arb.guaranteed_profit_pct:.2f}% on {arb.best_play}")

    Pair evaluation is O(n^2) in the number of books, which stays in single
    digits per prop.
    """

    def __init__(
        self,
        min_profit_pct: float = MIN_ARBITRAGE_PROFIT_PCT,
        total_stake: float = DEFAULT_TOTAL_STAKE,
        include_same_book: bool = False,
        expiry=ARBITRAGE_TTL,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the arbitrage scanner.

        Args:
            min_profit_pct: Minimum profit percentage to report (0.5 = 0.5%)
            total_stake: Total stake used for the stake split
            include_same_book: Whether to pair a book with itself
            expiry: Soft TTL after which odds may have moved
            now: Clock returning an aware datetime
        """
        self.min_profit_pct = min_profit_pct
        self.total_stake = total_stake
        self.include_same_book = include_same_book
        self.expiry = expiry
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _combination(
        self,
        over_quote: SportsbookQuote,
        under_quote: SportsbookQuote,
    ) -> _Combination:
        profit = calculate_arbitrage_profit(
            over_quote.over_odds, under_quote.under_odds, self.total_stake
        )
        return _Combination(
            over_quote=over_quote,
            under_quote=under_quote,
            over_odds=over_quote.over_odds,
            under_odds=under_quote.under_odds,
            profit_pct=profit.profit_percent,
            total_implied=profit.total_implied,
        )

    def _skip_pair(self, book1: SportsbookQuote, book2: SportsbookQuote) -> bool:
        return not self.include_same_book and book1.sportsbook_id == book2.sportsbook_id

    def _build(
        self,
        combo: _Combination,
        arb_type: ArbType,
        confidence: Confidence,
        player: str,
        prop_type: str,
        game: GameInfo,
        sport: str,
    ) -> ArbitrageOpportunity:
        created_at = self._now()
        stakes = calculate_arbitrage_stakes(
            combo.over_odds, combo.under_odds, self.total_stake
        )
        profit_pct = max(combo.profit_pct, 0.0)
        prefix = "arb" if arb_type is ArbType.ARBITRAGE else "middle"

        return ArbitrageOpportunity(
            id=make_opportunity_id(
                prefix,
                player,
                prop_type,
                combo.over_quote.sportsbook_id,
                combo.under_quote.sportsbook_id,
                created_at=created_at,
            ),
            arb_type=arb_type,
            player=player,
            prop_type=prop_type,
            game=game,
            over_book=BookLeg.from_quote(
                combo.over_quote,
                combo.over_odds,
                american_to_implied_probability(combo.over_odds),
            ),
            under_book=BookLeg.from_quote(
                combo.under_quote,
                combo.under_odds,
                american_to_implied_probability(combo.under_odds),
            ),
            guaranteed_profit_pct=profit_pct,
            total_stake=self.total_stake,
            over_stake=stakes.over_stake,
            under_stake=stakes.under_stake,
            profit_amount=round(self.total_stake * profit_pct / 100, 2),
            line_diff=combo.line_diff,
            confidence=confidence,
            created_at=created_at,
            expires_at=created_at + self.expiry if self.expiry else None,
            sport=sport,
        )

    def detect_between_books(
        self,
        book1: SportsbookQuote,
        book2: SportsbookQuote,
        player: str,
        prop_type: str,
        game: GameInfo,
        sport: str = "NBA",
    ) -> Optional[ArbitrageOpportunity]:
        """
        Check both leg assignments between two books.

        Tries book1 Over vs book2 Under and book2 Over vs book1 Under, and
        keeps the more profitable assignment that clears min_profit_pct.

        Returns:
            ArbitrageOpportunity or None if neither assignment is an arb
        """
        if not (book1.is_complete and book2.is_complete):
            return None
        if self._skip_pair(book1, book2):
            return None

        candidates = [
            self._combination(book1, book2),
            self._combination(book2, book1),
        ]
        viable = [
            c
            for c in candidates
            if c.total_implied < 1 and c.profit_pct >= self.min_profit_pct
        ]
        if not viable:
            return None

        # max() keeps the first assignment on equal profit
        best = max(viable, key=lambda c: c.profit_pct)
        line_diff = best.line_diff

        return self._build(
            best,
            arb_type=ArbType.MIDDLE if line_diff > 1 else ArbType.ARBITRAGE,
            confidence=arbitrage_confidence(line_diff, best.profit_pct),
            player=player,
            prop_type=prop_type,
            game=game,
            sport=sport,
        )

    def detect(
        self,
        quotes: Iterable[SportsbookQuote],
        player: str,
        prop_type: str,
        game: GameInfo,
        sport: str = "NBA",
    ) -> list[ArbitrageOpportunity]:
        """
        Scan every pair of complete quotes for one prop.

        Only the most profitable arbitrage survives for a
        (player, prop_type), so the result has at most one element.
        """
        books = complete_quotes(quotes)
        best: Optional[ArbitrageOpportunity] = None

        for i in range(len(books)):
            for j in range(i + 1, len(books)):
                arb = self.detect_between_books(
                    books[i], books[j], player, prop_type, game, sport
                )
                if arb is None:
                    continue
                if best is None or arb.guaranteed_profit_pct > best.guaranteed_profit_pct:
                    best = arb

        if best is not None:
            logger.debug(
                f"Arbitrage {best.guaranteed_profit_pct:.2f}% on {player} {prop_type}: "
                f"{best.best_play}"
            )
        return [best] if best is not None else []

    def detect_middles(
        self,
        quotes: Iterable[SportsbookQuote],
        player: str,
        prop_type: str,
        game: GameInfo,
        sport: str = "NBA",
    ) -> list[ArbitrageOpportunity]:
        """
        Find middle windows between books whose lines differ by 2+.

        The Over is taken at the lower line and the Under at the higher
        line, so a final value between the two lines wins both bets. A pair
        is reported when it also guarantees min_profit_pct, or when the
        window is at least 3 wide.
        """
        books = complete_quotes(quotes)
        middles: list[ArbitrageOpportunity] = []

        for i in range(len(books)):
            for j in range(i + 1, len(books)):
                book1, book2 = books[i], books[j]
                if self._skip_pair(book1, book2):
                    continue

                line_diff = round(abs(book1.line - book2.line), 6)
                if line_diff < MIDDLE_MIN_LINE_DIFF:
                    continue

                if book1.line < book2.line:
                    lower, higher = book1, book2
                else:
                    lower, higher = book2, book1

                combo = self._combination(lower, higher)
                is_attractive = (
                    combo.profit_pct >= self.min_profit_pct
                    or line_diff >= MIDDLE_WIDE_WINDOW
                )
                if not is_attractive:
                    continue

                middles.append(
                    self._build(
                        combo,
                        arb_type=ArbType.MIDDLE,
                        confidence=middle_confidence(line_diff),
                        player=player,
                        prop_type=prop_type,
                        game=game,
                        sport=sport,
                    )
                )

        return middles

    def scan_market(self, market: PropMarket, include_middles: bool = True) -> ScanResult:
        """Scan a single prop market."""
        return self.scan_markets([market], include_middles=include_middles)

    def scan_markets(
        self,
        markets: Iterable[PropMarket],
        include_middles: bool = True,
    ) -> ScanResult:
        """
        Scan many prop markets for arbitrage and middles.

        Args:
            markets: Prop markets, one per (player, prop type, game)
            include_middles: Also run middle detection

        Returns:
            ScanResult with arbitrage opportunities sorted by profit
        """
        opportunities: list[ArbitrageOpportunity] = []
        middles: list[ArbitrageOpportunity] = []
        books_seen: set[str] = set()
        scanned = 0

        for market in markets:
            scanned += 1
            quotes = market.complete_quotes
            books_seen.update(q.sportsbook_id for q in quotes)

            opportunities.extend(
                self.detect(quotes, market.player, market.prop_type, market.game, market.sport)
            )
            if include_middles:
                middles.extend(
                    self.detect_middles(
                        quotes, market.player, market.prop_type, market.game, market.sport
                    )
                )

        return ScanResult(
            opportunities=sort_by_profit(opportunities),
            middles=sort_by_profit(middles),
            scanned_props=scanned,
            scanned_books=len(books_seen),
            scan_time=self._now(),
        )


def sort_by_profit(
    opportunities: Iterable[ArbitrageOpportunity],
) -> list[ArbitrageOpportunity]:
    """Sort opportunities by profit percentage, highest first."""
    return sorted(opportunities, key=lambda o: o.guaranteed_profit_pct, reverse=True)


def filter_by_profit(
    opportunities: Iterable[ArbitrageOpportunity],
    min_profit: float,
) -> list[ArbitrageOpportunity]:
    """Keep opportunities with at least min_profit percent."""
    return [o for o in opportunities if o.guaranteed_profit_pct >= min_profit]


def summarize(opportunities: list[ArbitrageOpportunity]) -> ArbitrageSummary:
    """Summary statistics; all zeros for an empty list."""
    if not opportunities:
        return ArbitrageSummary()

    profits = [o.guaranteed_profit_pct for o in opportunities]

    return ArbitrageSummary(
        total=len(opportunities),
        high_confidence=sum(1 for o in opportunities if o.confidence is Confidence.HIGH),
        average_profit=round(sum(profits) / len(profits), 2),
        best_profit=round(max(profits), 2),
        total_potential_profit=round(sum(o.profit_amount for o in opportunities), 2),
    )
