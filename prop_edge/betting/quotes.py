"""
Sportsbook quote containers.

A SportsbookQuote is one book's two-sided market for a player prop at a
point in time. Quotes missing a side are kept but flagged incomplete so the
detectors can skip them.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from .odds_converter import american_to_implied_probability, validate_american_odds


class Side(str, Enum):
    """Side of a two-way prop market."""

    OVER = "over"
    UNDER = "under"

    @property
    def opposite(self) -> "Side":
        return Side.UNDER if self is Side.OVER else Side.OVER


@dataclass(frozen=True)
class GameInfo:
    """Matchup a prop belongs to."""

    home_team: str
    away_team: str
    game_time: Optional[datetime] = None
    game_id: Optional[str] = None

    @property
    def description(self) -> str:
        return f"{self.away_team} @ {self.home_team}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "game_time": self.game_time.isoformat() if self.game_time else None,
        }


@dataclass(frozen=True)
class SportsbookQuote:
    """
    One sportsbook's over/under market for a prop.

    A side that the book does not offer is None. A side that is present
    must be valid American odds, otherwise InvalidOddsError is raised.
    """

    sportsbook_id: str
    display_name: str
    line: float
    over_odds: Optional[int] = None
    under_odds: Optional[int] = None
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    logo_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.over_odds is not None:
            object.__setattr__(self, "over_odds", validate_american_odds(self.over_odds))
        if self.under_odds is not None:
            object.__setattr__(self, "under_odds", validate_american_odds(self.under_odds))
        object.__setattr__(self, "line", float(self.line))

    @property
    def is_complete(self) -> bool:
        """Both sides quoted."""
        return self.over_odds is not None and self.under_odds is not None

    @property
    def over_implied_prob(self) -> Optional[float]:
        if self.over_odds is None:
            return None
        return american_to_implied_probability(self.over_odds)

    @property
    def under_implied_prob(self) -> Optional[float]:
        if self.under_odds is None:
            return None
        return american_to_implied_probability(self.under_odds)

    @property
    def total_implied_prob(self) -> Optional[float]:
        """Two-sided implied sum, above 1 by the book's margin."""
        if not self.is_complete:
            return None
        return self.over_implied_prob + self.under_implied_prob

    def odds_for(self, side: Side) -> Optional[int]:
        return self.over_odds if side is Side.OVER else self.under_odds

    def implied_prob_for(self, side: Side) -> Optional[float]:
        return self.over_implied_prob if side is Side.OVER else self.under_implied_prob

    def to_dict(self) -> dict[str, Any]:
        return {
            "sportsbook_id": self.sportsbook_id,
            "display_name": self.display_name,
            "line": self.line,
            "over_odds": self.over_odds,
            "under_odds": self.under_odds,
            "over_implied_prob": self.over_implied_prob,
            "under_implied_prob": self.under_implied_prob,
            "observed_at": self.observed_at.isoformat(),
            "logo_url": self.logo_url,
        }


@dataclass
class PropMarket:
    """All quotes for one (player, prop type, game)."""

    player: str
    prop_type: str
    game: GameInfo
    quotes: list[SportsbookQuote] = field(default_factory=list)
    sport: str = "NBA"

    @property
    def key(self) -> tuple[str, str]:
        return (self.player, self.prop_type)

    @property
    def complete_quotes(self) -> list[SportsbookQuote]:
        return complete_quotes(self.quotes)


def complete_quotes(quotes: Iterable[SportsbookQuote]) -> list[SportsbookQuote]:
    """Filter to quotes with both sides present, preserving order."""
    return [q for q in quotes if q.is_complete]


def merge_side_quotes(quotes: Iterable[SportsbookQuote]) -> list[SportsbookQuote]:
    """
    Merge one-sided quotes from the same sportsbook into two-sided quotes.

    Feeds often deliver Over and Under as separate outcomes. The first line
    seen for a book is kept; later sides for the same book fill in the gaps.
    Order of first appearance is preserved.
    """
    merged: "OrderedDict[str, SportsbookQuote]" = OrderedDict()

    for quote in quotes:
        existing = merged.get(quote.sportsbook_id)
        if existing is None:
            merged[quote.sportsbook_id] = quote
            continue

        merged[quote.sportsbook_id] = SportsbookQuote(
            sportsbook_id=existing.sportsbook_id,
            display_name=existing.display_name,
            line=existing.line,
            over_odds=quote.over_odds if quote.over_odds is not None else existing.over_odds,
            under_odds=quote.under_odds if quote.under_odds is not None else existing.under_odds,
            observed_at=max(existing.observed_at, quote.observed_at),
            logo_url=existing.logo_url or quote.logo_url,
        )

    return list(merged.values())
