"""Tests for quote containers and consensus probability."""

from datetime import timedelta

import pytest

from prop_edge.betting.odds_converter import InvalidOddsError
from prop_edge.betting.quotes import (
    PropMarket,
    Side,
    SportsbookQuote,
    complete_quotes,
    merge_side_quotes,
)
from prop_edge.betting.true_probability import (
    TrueProbabilityEstimator,
    estimate_true_probability,
)


class TestSportsbookQuote:
    """Test quote validation and derived probabilities."""

    def test_complete_quote(self, make_quote):
        quote = make_quote("fanduel", over=-110, under=-110)
        assert quote.is_complete
        assert quote.total_implied_prob == pytest.approx(2 * 110 / 210)

    def test_missing_side_is_incomplete(self, make_quote):
        quote = make_quote("fanduel", over=-110)
        assert not quote.is_complete
        assert quote.under_implied_prob is None
        assert quote.total_implied_prob is None

    def test_zero_odds_rejected(self, make_quote):
        with pytest.raises(InvalidOddsError):
            make_quote("fanduel", over=0, under=-110)

    def test_line_coerced_to_float(self, make_quote):
        assert make_quote("fanduel", over=-110, under=-110, line=27).line == 27.0

    def test_side_accessors(self, make_quote):
        quote = make_quote("fanduel", over=120, under=-150)
        assert quote.odds_for(Side.OVER) == 120
        assert quote.odds_for(Side.UNDER) == -150
        assert quote.implied_prob_for(Side.UNDER) == pytest.approx(0.6)
        assert Side.OVER.opposite is Side.UNDER

    def test_complete_quotes_preserves_order(self, make_quote):
        quotes = [
            make_quote("a", over=-110, under=-110),
            make_quote("b", over=-110),
            make_quote("c", over=-105, under=-115),
        ]
        assert [q.sportsbook_id for q in complete_quotes(quotes)] == ["a", "c"]

    def test_market_key(self, game, make_quote):
        market = PropMarket("LeBron James", "player_points", game, [make_quote("a", -110, -110)])
        assert market.key == ("LeBron James", "player_points")
        assert game.description == "Golden State Warriors @ Los Angeles Lakers"


class TestMergeSideQuotes:
    """Test combining one-sided feed outcomes."""

    def test_merges_same_book(self, make_quote):
        over = make_quote("bet365", over=-110, line=24.5)
        under = SportsbookQuote(
            sportsbook_id="bet365",
            display_name="Bet365",
            line=25.5,
            under_odds=-120,
            observed_at=over.observed_at + timedelta(seconds=5),
        )
        merged = merge_side_quotes([over, under])

        assert len(merged) == 1
        assert merged[0].over_odds == -110
        assert merged[0].under_odds == -120
        # first line seen wins
        assert merged[0].line == 24.5
        assert merged[0].observed_at == under.observed_at

    def test_keeps_first_appearance_order(self, make_quote):
        quotes = [
            make_quote("b", over=-110),
            make_quote("a", over=-110, under=-110),
            make_quote("b", under=-110),
        ]
        merged = merge_side_quotes(quotes)
        assert [q.sportsbook_id for q in merged] == ["b", "a"]
        assert merged[0].is_complete


class TestTrueProbability:
    """Test market-consensus probability estimation."""

    def test_no_quotes_returns_default(self):
        assert estimate_true_probability([], Side.OVER) == 0.5

    def test_only_incomplete_quotes_returns_default(self, make_quote):
        assert estimate_true_probability([make_quote("a", over=-200)], Side.OVER) == 0.5

    def test_symmetric_market_is_even(self, make_quote):
        quotes = [make_quote("a", -110, -110), make_quote("b", -110, -110)]
        assert estimate_true_probability(quotes, Side.OVER) == pytest.approx(0.5)

    def test_sides_sum_to_one(self, make_quote):
        quotes = [make_quote("a", -130, 110), make_quote("b", -125, 105)]
        p_over = estimate_true_probability(quotes, Side.OVER)
        p_under = estimate_true_probability(quotes, Side.UNDER)
        assert p_over + p_under == pytest.approx(1.0)
        assert p_over > 0.5

    def test_incomplete_quotes_ignored(self, make_quote):
        complete = [make_quote("a", -110, -110)]
        with_partial = complete + [make_quote("b", over=-500)]
        assert estimate_true_probability(with_partial, Side.OVER) == pytest.approx(
            estimate_true_probability(complete, Side.OVER)
        )

    def test_clamped_to_bounds(self, make_quote):
        quotes = [make_quote("a", over=-100000, under=10000)]
        assert estimate_true_probability(quotes, Side.OVER) == 0.99
        assert estimate_true_probability(quotes, Side.UNDER) == 0.01

    def test_invalid_bounds_rejected(self):
        with pytest.raises(ValueError):
            TrueProbabilityEstimator(min_probability=0.9, max_probability=0.1)
