"""
Opportunity containers produced by the detectors.

Opportunities are created fresh on each detection pass and never updated;
the next pass supersedes them.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union

from prop_edge.config.constants import ARBITRAGE_EXPIRY_MINUTES

from .odds_converter import format_american_odds
from .quotes import GameInfo, SportsbookQuote

ARBITRAGE_TTL = timedelta(minutes=ARBITRAGE_EXPIRY_MINUTES)


class Confidence(str, Enum):
    """Confidence in an opportunity."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ArbType(str, Enum):
    """Kinds of two-leg cross-book positions."""

    ARBITRAGE = "arbitrage"
    MIDDLE = "middle"


class OpportunityType(str, Enum):
    """Top-level opportunity categories."""

    ARBITRAGE = "arbitrage"
    HIGH_EV = "high-ev"


@dataclass(frozen=True)
class BookLeg:
    """One leg of a two-book position."""

    sportsbook_id: str
    sportsbook: str
    line: float
    odds: int
    implied_probability: float
    logo_url: Optional[str] = None

    @classmethod
    def from_quote(cls, quote: SportsbookQuote, odds: int, implied: float) -> "BookLeg":
        return cls(
            sportsbook_id=quote.sportsbook_id,
            sportsbook=quote.display_name,
            line=quote.line,
            odds=odds,
            implied_probability=implied,
            logo_url=quote.logo_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sportsbook_id": self.sportsbook_id,
            "sportsbook": self.sportsbook,
            "line": self.line,
            "odds": self.odds,
            "implied_probability": self.implied_probability,
            "logo_url": self.logo_url,
        }


@dataclass(frozen=True)
class BestPrice:
    """Best-EV price for one side across books."""

    sportsbook_id: str
    sportsbook: str
    line: float
    odds: int
    implied_probability: float
    ev: float  # EV percentage, 4.2 = +4.2%
    logo_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sportsbook_id": self.sportsbook_id,
            "sportsbook": self.sportsbook,
            "line": self.line,
            "odds": self.odds,
            "implied_probability": self.implied_probability,
            "ev": self.ev,
            "logo_url": self.logo_url,
        }


@dataclass(frozen=True)
class LineRange:
    """Spread of posted lines across books."""

    min: float
    max: float
    average: float
    spread: float

    def to_dict(self) -> dict[str, float]:
        return {
            "min": self.min,
            "max": self.max,
            "average": self.average,
            "spread": self.spread,
        }


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """Cross-book position: guaranteed profit (arbitrage) or a middle window."""

    id: str
    arb_type: ArbType
    player: str
    prop_type: str
    game: GameInfo
    over_book: BookLeg
    under_book: BookLeg

    # Profit metrics
    guaranteed_profit_pct: float
    total_stake: float
    over_stake: float
    under_stake: float
    profit_amount: float
    line_diff: float

    confidence: Confidence
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None
    sport: str = "NBA"

    opportunity_type = OpportunityType.ARBITRAGE

    @property
    def score(self) -> float:
        return self.guaranteed_profit_pct

    @property
    def total_implied(self) -> float:
        return self.over_book.implied_probability + self.under_book.implied_probability

    @property
    def is_middle(self) -> bool:
        return self.arb_type is ArbType.MIDDLE

    @property
    def highlight(self) -> str:
        return f"{self.guaranteed_profit_pct:.2f}% Guaranteed Profit"

    @property
    def best_play(self) -> str:
        return (
            f"{self.over_book.sportsbook} Over {format_american_odds(self.over_book.odds)}"
            f" / {self.under_book.sportsbook} Under {format_american_odds(self.under_book.odds)}"
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the soft expiry has passed and odds may have moved."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "opportunity_type": self.opportunity_type.value,
            "arb_type": self.arb_type.value,
            "player": self.player,
            "prop_type": self.prop_type,
            "sport": self.sport,
            "game": self.game.to_dict(),
            "over_book": self.over_book.to_dict(),
            "under_book": self.under_book.to_dict(),
            "guaranteed_profit_pct": self.guaranteed_profit_pct,
            "total_stake": self.total_stake,
            "over_stake": self.over_stake,
            "under_stake": self.under_stake,
            "profit_amount": self.profit_amount,
            "line_diff": self.line_diff,
            "confidence": self.confidence.value,
            "score": self.score,
            "highlight": self.highlight,
            "best_play": self.best_play,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class EVOpportunity:
    """Positive expected value price on at least one side of a prop."""

    id: str
    player: str
    prop_type: str
    game: GameInfo
    estimated_true_probability_over: float
    best_over: BestPrice
    best_under: BestPrice
    all_books: tuple[SportsbookQuote, ...]
    line_range: LineRange
    rating: int
    confidence: Confidence
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sport: str = "NBA"

    opportunity_type = OpportunityType.HIGH_EV

    @property
    def max_ev(self) -> float:
        return max(self.best_over.ev, self.best_under.ev)

    @property
    def score(self) -> float:
        return self.max_ev

    @property
    def estimated_true_probability_under(self) -> float:
        return 1 - self.estimated_true_probability_over

    @property
    def best_side(self) -> str:
        """Over wins only on a strictly higher EV."""
        return "Over" if self.best_over.ev > self.best_under.ev else "Under"

    @property
    def highlight(self) -> str:
        return f"{self.max_ev:.2f}% Expected Value"

    @property
    def best_play(self) -> str:
        best = self.best_over if self.best_side == "Over" else self.best_under
        return f"{best.sportsbook} {self.best_side} {format_american_odds(best.odds)}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "opportunity_type": self.opportunity_type.value,
            "player": self.player,
            "prop_type": self.prop_type,
            "sport": self.sport,
            "game": self.game.to_dict(),
            "estimated_true_probability_over": self.estimated_true_probability_over,
            "best_over": self.best_over.to_dict(),
            "best_under": self.best_under.to_dict(),
            "all_books": [q.to_dict() for q in self.all_books],
            "line_range": self.line_range.to_dict(),
            "rating": self.rating,
            "confidence": self.confidence.value,
            "score": self.score,
            "highlight": self.highlight,
            "best_play": self.best_play,
            "created_at": self.created_at.isoformat(),
        }


Opportunity = Union[ArbitrageOpportunity, EVOpportunity]


def make_opportunity_id(prefix: str, *parts: str, created_at: datetime) -> str:
    """Build a readable id such as 'arb-LeBron James-points-fanduel-draftkings-1700000000000'."""
    return "-".join([prefix, *parts, str(int(created_at.timestamp() * 1000))])
