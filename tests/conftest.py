"""Shared fixtures for prop_edge tests."""

from datetime import datetime, timedelta, timezone

import pytest

from prop_edge.betting.quotes import GameInfo, SportsbookQuote

T0 = datetime(2024, 1, 15, 0, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Manually advanced clock for cache and expiry tests."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock frozen at 2024-01-15 00:00 UTC."""
    return FrozenClock()


@pytest.fixture
def game():
    """A sample NBA matchup."""
    return GameInfo(
        home_team="Los Angeles Lakers",
        away_team="Golden State Warriors",
        game_time=T0 + timedelta(hours=3),
        game_id="evt-1",
    )


@pytest.fixture
def make_quote():
    """Factory for sportsbook quotes with sensible defaults."""

    def _make(
        book: str,
        over=None,
        under=None,
        line: float = 27.5,
        display_name=None,
    ) -> SportsbookQuote:
        return SportsbookQuote(
            sportsbook_id=book,
            display_name=display_name or book.title(),
            line=line,
            over_odds=over,
            under_odds=under,
            observed_at=T0,
        )

    return _make
