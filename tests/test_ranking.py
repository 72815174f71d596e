"""Tests for opportunity deduplication, filtering and ranking."""

from datetime import datetime, timedelta, timezone

import pytest

from prop_edge.betting.opportunity import (
    ArbitrageOpportunity,
    ArbType,
    BestPrice,
    BookLeg,
    Confidence,
    EVOpportunity,
    LineRange,
)
from prop_edge.betting.ranking import (
    OpportunityFilters,
    OpportunityRanker,
    dedupe,
    rank_opportunities,
    ranking_key,
)

T0 = datetime(2024, 1, 15, tzinfo=timezone.utc)


def make_arb(
    game,
    player="LeBron James",
    prop_type="player_points",
    profit=3.0,
    arb_type=ArbType.ARBITRAGE,
    created_at=T0,
    books=("fanduel", "draftkings"),
    opp_id=None,
):
    over_id, under_id = books
    return ArbitrageOpportunity(
        id=opp_id or f"arb-{player}-{prop_type}-{over_id}-{under_id}-{profit}",
        arb_type=arb_type,
        player=player,
        prop_type=prop_type,
        game=game,
        over_book=BookLeg(over_id, over_id.title(), 27.5, 120, 0.4545),
        under_book=BookLeg(under_id, under_id.title(), 27.5, 110, 0.4762),
        guaranteed_profit_pct=profit,
        total_stake=100.0,
        over_stake=48.84,
        under_stake=51.16,
        profit_amount=profit,
        line_diff=0.0,
        confidence=Confidence.HIGH,
        created_at=created_at,
    )


def make_ev(
    game,
    player="LeBron James",
    prop_type="player_points",
    ev=4.0,
    created_at=T0,
    book="caesars",
    opp_id=None,
):
    return EVOpportunity(
        id=opp_id or f"ev-{player}-{prop_type}-{ev}",
        player=player,
        prop_type=prop_type,
        game=game,
        estimated_true_probability_over=0.5,
        best_over=BestPrice(book, book.title(), 27.5, 110, 0.4762, ev),
        best_under=BestPrice(book, book.title(), 27.5, -130, 0.5652, -8.0),
        all_books=(),
        line_range=LineRange(27.5, 27.5, 27.5, 0.0),
        rating=4,
        confidence=Confidence.HIGH,
        created_at=created_at,
    )


class TestDedupe:
    """Test one opportunity per (player, prop type)."""

    def test_higher_profit_arbitrage_survives(self, game):
        """Test two arbs on the same prop collapse to the 5% one."""
        low = make_arb(game, profit=3.0)
        high = make_arb(game, profit=5.0, books=("betmgm", "caesars"))

        for ordering in ([low, high], [high, low]):
            survivors = dedupe(ordering)
            assert survivors == [high]

    def test_ev_can_beat_arbitrage(self, game):
        arb = make_arb(game, profit=2.0)
        ev = make_ev(game, ev=6.0)
        assert dedupe([arb, ev]) == [ev]

    def test_different_props_kept(self, game):
        points = make_arb(game, prop_type="player_points")
        rebounds = make_arb(game, prop_type="player_rebounds")
        other = make_ev(game, player="Anthony Davis")
        assert len(dedupe([points, rebounds, other])) == 3

    def test_equal_score_collision_independent_of_order(self, game):
        arb = make_arb(game, profit=4.0)
        ev = make_ev(game, ev=4.0)
        assert dedupe([arb, ev]) == [arb]
        assert dedupe([ev, arb]) == [arb]


class TestOrdering:
    """Test the deterministic sort order."""

    def test_score_descending(self, game):
        opps = [
            make_ev(game, player="A", ev=2.5),
            make_arb(game, player="B", profit=7.0),
            make_ev(game, player="C", ev=4.0),
        ]
        ranked = rank_opportunities(opps)
        assert [o.player for o in ranked] == ["B", "C", "A"]

    def test_older_first_on_equal_score(self, game):
        newer = make_ev(game, player="A", created_at=T0 + timedelta(seconds=5))
        older = make_ev(game, player="B", created_at=T0)
        assert [o.player for o in rank_opportunities([newer, older])] == ["B", "A"]

    def test_kind_breaks_remaining_ties(self, game):
        ev = make_ev(game, player="A", ev=3.0)
        middle = make_arb(game, player="B", profit=3.0, arb_type=ArbType.MIDDLE)
        arb = make_arb(game, player="C", profit=3.0)

        ranked = rank_opportunities([ev, middle, arb])
        assert [o.player for o in ranked] == ["C", "B", "A"]

    def test_id_is_final_tie_break(self, game):
        first = make_ev(game, player="A", opp_id="ev-a")
        second = make_ev(game, player="B", opp_id="ev-b")
        assert rank_opportunities([second, first]) == [first, second]

    def test_ranking_key_is_total(self, game):
        a = make_arb(game, player="A", profit=3.0)
        b = make_arb(game, player="B", profit=3.0)
        assert ranking_key(a) != ranking_key(b)


class TestFilters:
    """Test pre-ranking filters."""

    @pytest.fixture
    def mixed(self, game):
        return [
            make_arb(game, player="A", profit=1.0),
            make_arb(game, player="B", profit=3.0, books=("betmgm", "pointsbet")),
            make_ev(game, player="C", ev=2.5),
            make_ev(game, player="D", ev=5.0, prop_type="player_assists"),
        ]

    def test_type_filter(self, mixed):
        ranked = rank_opportunities(mixed, OpportunityFilters(opportunity_type="high-ev"))
        assert {o.player for o in ranked} == {"C", "D"}

        ranked = rank_opportunities(mixed, OpportunityFilters(opportunity_type="arbitrage"))
        assert {o.player for o in ranked} == {"A", "B"}

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            OpportunityFilters(opportunity_type="parlay")

    def test_thresholds(self, mixed):
        ranked = rank_opportunities(mixed, OpportunityFilters(min_profit=2.0, min_ev=3.0))
        assert {o.player for o in ranked} == {"B", "D"}

    def test_sportsbook_filter(self, mixed):
        ranked = rank_opportunities(mixed, OpportunityFilters(sportsbooks={"betmgm"}))
        assert [o.player for o in ranked] == ["B"]

    def test_prop_type_filter(self, mixed):
        ranked = rank_opportunities(mixed, OpportunityFilters(prop_types={"player_assists"}))
        assert [o.player for o in ranked] == ["D"]


class TestOpportunityRanker:
    """Test merging detector outputs."""

    def test_counts(self, game):
        ranked = OpportunityRanker().rank(
            arbitrage=[make_arb(game, player="A", profit=2.0)],
            ev=[make_ev(game, player="B", ev=3.0)],
            middles=[make_arb(game, player="C", profit=0.0, arb_type=ArbType.MIDDLE)],
        )

        assert ranked.arbitrage_count == 1
        assert ranked.ev_count == 1
        assert ranked.middle_count == 1
        assert ranked.top.player == "B"
        assert len(ranked.get_top(2)) == 2
        assert ranked.to_dicts()[0]["opportunity_type"] == "high-ev"

    def test_middles_excluded(self, game):
        ranked = OpportunityRanker(include_middles=False).rank(
            middles=[make_arb(game, player="C", arb_type=ArbType.MIDDLE)],
        )
        assert ranked.opportunities == []
        assert ranked.top is None

    def test_filters_applied(self, game):
        ranker = OpportunityRanker(filters=OpportunityFilters(opportunity_type="arbitrage"))
        ranked = ranker.rank(
            arbitrage=[make_arb(game, player="A")],
            ev=[make_ev(game, player="B")],
        )
        assert [o.player for o in ranked.opportunities] == ["A"]
