"""Tests for cross-book arbitrage and middle detection."""

from datetime import timedelta

import pytest

from prop_edge.betting.arbitrage_scanner import (
    ArbitrageScanner,
    arbitrage_confidence,
    filter_by_profit,
    middle_confidence,
    summarize,
)
from prop_edge.betting.opportunity import ArbType, Confidence
from prop_edge.betting.quotes import PropMarket

PLAYER = "LeBron James"
PROP = "player_points"


@pytest.fixture
def scanner(clock):
    return ArbitrageScanner(now=clock)


class TestArbitrageDetection:
    """Test guaranteed-profit pairs."""

    def test_classic_arbitrage(self, scanner, game, make_quote, clock):
        """Test +120 Over at one book against +110 Under at another."""
        quotes = [
            make_quote("fanduel", over=120, under=-150),
            make_quote("draftkings", over=-150, under=110),
        ]
        arbs = scanner.detect(quotes, PLAYER, PROP, game)

        assert len(arbs) == 1
        arb = arbs[0]
        assert arb.arb_type is ArbType.ARBITRAGE
        assert arb.over_book.sportsbook_id == "fanduel"
        assert arb.under_book.sportsbook_id == "draftkings"
        assert arb.guaranteed_profit_pct == pytest.approx(7.44, abs=0.01)
        assert arb.over_stake == pytest.approx(48.83, abs=0.02)
        assert arb.under_stake == pytest.approx(51.17, abs=0.02)
        assert arb.profit_amount == pytest.approx(7.44, abs=0.01)
        assert arb.confidence is Confidence.HIGH
        assert arb.created_at == clock()
        assert arb.expires_at == clock() + timedelta(minutes=30)
        assert arb.highlight == "7.44% Guaranteed Profit"

    def test_reported_pairs_are_sound(self, scanner, game, make_quote):
        """Test every reported arbitrage has total implied below one."""
        quotes = [
            make_quote("a", over=120, under=-200),
            make_quote("b", over=-200, under=110),
            make_quote("c", over=-200, under=100),
            make_quote("d", over=105, under=-105),
        ]
        result = scanner.scan_market(PropMarket(PLAYER, PROP, game, quotes))
        for arb in result.opportunities:
            assert arb.total_implied < 1
            assert arb.guaranteed_profit_pct >= scanner.min_profit_pct

    def test_keeps_most_profitable_pair(self, scanner, game, make_quote):
        """Test only the best pair survives for one prop."""
        quotes = [
            make_quote("a", over=120, under=-200),
            make_quote("b", over=-200, under=110),
            make_quote("c", over=-200, under=100),
        ]
        arbs = scanner.detect(quotes, PLAYER, PROP, game)

        assert len(arbs) == 1
        assert arbs[0].under_book.sportsbook_id == "b"
        assert arbs[0].guaranteed_profit_pct == pytest.approx(7.44, abs=0.01)

    def test_no_arbitrage_in_vig_market(self, scanner, game, make_quote):
        quotes = [make_quote("a", -110, -110), make_quote("b", -110, -110)]
        assert scanner.detect(quotes, PLAYER, PROP, game) == []

    def test_below_min_profit_rejected(self, scanner, game, make_quote):
        """Test a 0.25% edge is below the default 0.5% floor."""
        quotes = [make_quote("a", over=100, under=-200), make_quote("b", over=-200, under=101)]
        assert scanner.detect(quotes, PLAYER, PROP, game) == []

    def test_same_book_pair_skipped(self, scanner, game, make_quote):
        quotes = [
            make_quote("fanduel", over=120, under=-150),
            make_quote("fanduel", over=-150, under=110),
        ]
        assert scanner.detect(quotes, PLAYER, PROP, game) == []

    def test_same_book_pair_allowed_when_enabled(self, game, make_quote, clock):
        scanner = ArbitrageScanner(include_same_book=True, now=clock)
        quotes = [
            make_quote("fanduel", over=120, under=-150),
            make_quote("fanduel", over=-150, under=110),
        ]
        assert len(scanner.detect(quotes, PLAYER, PROP, game)) == 1

    def test_incomplete_quotes_ignored(self, scanner, game, make_quote):
        quotes = [make_quote("a", over=120), make_quote("b", under=110)]
        assert scanner.detect(quotes, PLAYER, PROP, game) == []

    def test_different_lines_flagged_as_middle(self, scanner, game, make_quote):
        quotes = [
            make_quote("a", over=120, under=-150, line=25.5),
            make_quote("b", over=-150, under=110, line=27.5),
        ]
        arb = scanner.detect(quotes, PLAYER, PROP, game)[0]
        assert arb.arb_type is ArbType.MIDDLE
        assert arb.line_diff == 2.0
        assert arb.confidence is Confidence.MEDIUM

    def test_expiry(self, scanner, game, make_quote, clock):
        quotes = [make_quote("a", 120, -150), make_quote("b", -150, 110)]
        arb = scanner.detect(quotes, PLAYER, PROP, game)[0]

        assert not arb.is_expired(clock())
        clock.advance(minutes=30)
        assert arb.is_expired(clock())


class TestMiddleDetection:
    """Test line-window middles."""

    def test_wide_window_reported_without_profit(self, scanner, game, make_quote):
        quotes = [
            make_quote("a", -110, -110, line=25.5),
            make_quote("b", -110, -110, line=28.5),
        ]
        middles = scanner.detect_middles(quotes, PLAYER, PROP, game)

        assert len(middles) == 1
        middle = middles[0]
        assert middle.arb_type is ArbType.MIDDLE
        assert middle.over_book.line == 25.5
        assert middle.under_book.line == 28.5
        assert middle.guaranteed_profit_pct == 0.0
        assert middle.confidence is Confidence.HIGH
        assert middle.id.startswith("middle-")

    def test_narrow_window_without_profit_skipped(self, scanner, game, make_quote):
        quotes = [
            make_quote("a", -110, -110, line=25.5),
            make_quote("b", -110, -110, line=27.5),
        ]
        assert scanner.detect_middles(quotes, PLAYER, PROP, game) == []

    def test_narrow_window_with_profit(self, scanner, game, make_quote):
        quotes = [
            make_quote("a", over=120, under=-150, line=25.5),
            make_quote("b", over=-150, under=110, line=27.5),
        ]
        middles = scanner.detect_middles(quotes, PLAYER, PROP, game)
        assert len(middles) == 1
        assert middles[0].confidence is Confidence.MEDIUM

    def test_small_line_gap_ignored(self, scanner, game, make_quote):
        quotes = [
            make_quote("a", 120, -150, line=26.0),
            make_quote("b", -150, 110, line=27.5),
        ]
        assert scanner.detect_middles(quotes, PLAYER, PROP, game) == []

    def test_scan_markets_excludes_middles_on_request(self, scanner, game, make_quote):
        market = PropMarket(
            PLAYER,
            PROP,
            game,
            [make_quote("a", -110, -110, line=25.5), make_quote("b", -110, -110, line=28.5)],
        )
        assert scanner.scan_markets([market]).middles
        assert scanner.scan_markets([market], include_middles=False).middles == []


class TestScanAndSummary:
    """Test bulk scanning helpers."""

    def test_scan_counts(self, scanner, game, make_quote):
        markets = [
            PropMarket(PLAYER, PROP, game, [make_quote("a", 120, -150), make_quote("b", -150, 110)]),
            PropMarket("Stephen Curry", PROP, game, [make_quote("a", -110, -110), make_quote("c", -110, -110)]),
        ]
        result = scanner.scan_markets(markets)

        assert result.scanned_props == 2
        assert result.scanned_books == 3
        assert len(result.opportunities) == 1
        assert result.has_opportunities
        assert result.get_top_opportunities(1)[0].player == PLAYER

    def test_summarize_empty(self):
        summary = summarize([])
        assert summary.total == 0
        assert summary.average_profit == 0.0
        assert summary.best_profit == 0.0

    def test_summarize_and_filter(self, scanner, game, make_quote):
        arbs = scanner.detect([make_quote("a", 120, -150), make_quote("b", -150, 110)], PLAYER, PROP, game)
        summary = summarize(arbs)
        assert summary.total == 1
        assert summary.high_confidence == 1
        assert summary.best_profit == pytest.approx(7.44, abs=0.01)
        assert filter_by_profit(arbs, 10.0) == []


class TestConfidenceRules:
    @pytest.mark.parametrize(
        "line_diff,profit,expected",
        [
            (0, 1.5, Confidence.HIGH),
            (1, 1.0, Confidence.HIGH),
            (0, 0.6, Confidence.MEDIUM),
            (2, 0.6, Confidence.MEDIUM),
            (3, 0.9, Confidence.MEDIUM),
            (3, 0.6, Confidence.LOW),
        ],
    )
    def test_arbitrage_confidence(self, line_diff, profit, expected):
        assert arbitrage_confidence(line_diff, profit) is expected

    def test_middle_confidence(self):
        assert middle_confidence(3.0) is Confidence.HIGH
        assert middle_confidence(2.0) is Confidence.MEDIUM
