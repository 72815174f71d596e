"""
Opportunity ranking and deduplication.

Merges arbitrage, middle and EV results into one ranked list with a single
opportunity per (player, prop type). The survivor of a collision is the one
with the higher score; the loser is discarded, never merged.

Ordering is fully deterministic:
    1. score, highest first
    2. created_at, oldest first
    3. kind: arbitrage, then middle, then EV
    4. id
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .opportunity import (
    ArbitrageOpportunity,
    ArbType,
    EVOpportunity,
    Opportunity,
    OpportunityType,
)

logger = logging.getLogger(__name__)

_KIND_ORDER = {
    ArbType.ARBITRAGE: 0,
    ArbType.MIDDLE: 1,
}
_EV_KIND = 2


def _kind_rank(opportunity: Opportunity) -> int:
    if isinstance(opportunity, ArbitrageOpportunity):
        return _KIND_ORDER[opportunity.arb_type]
    return _EV_KIND


def ranking_key(opportunity: Opportunity) -> tuple:
    """Sort key implementing the ranking order above."""
    return (
        -opportunity.score,
        opportunity.created_at,
        _kind_rank(opportunity),
        opportunity.id,
    )


def _beats(challenger: Opportunity, incumbent: Opportunity) -> bool:
    return ranking_key(challenger) < ranking_key(incumbent)


def sportsbooks_of(opportunity: Opportunity) -> set[str]:
    """Sportsbook ids a bettor would have to use for the play."""
    if isinstance(opportunity, ArbitrageOpportunity):
        return {opportunity.over_book.sportsbook_id, opportunity.under_book.sportsbook_id}
    return {opportunity.best_over.sportsbook_id, opportunity.best_under.sportsbook_id}


@dataclass
class OpportunityFilters:
    """
    Filters applied before ranking.

    Attributes:
        opportunity_type: "all", "arbitrage" or "high-ev"
        min_profit: Minimum guaranteed profit % for arbitrage/middles
        min_ev: Minimum best-side EV % for EV opportunities
        sportsbooks: Keep only plays that touch one of these books
        prop_types: Keep only these prop types
    """

    opportunity_type: str = "all"
    min_profit: float = 0.0
    min_ev: float = 0.0
    sportsbooks: Optional[set[str]] = None
    prop_types: Optional[set[str]] = None

    def __post_init__(self) -> None:
        if self.opportunity_type != "all":
            # Raises ValueError for unknown types
            OpportunityType(self.opportunity_type)

    def matches(self, opportunity: Opportunity) -> bool:
        if (
            self.opportunity_type != "all"
            and opportunity.opportunity_type.value != self.opportunity_type
        ):
            return False

        if isinstance(opportunity, ArbitrageOpportunity):
            if opportunity.guaranteed_profit_pct < self.min_profit:
                return False
        elif opportunity.max_ev < self.min_ev:
            return False

        if self.prop_types and opportunity.prop_type not in self.prop_types:
            return False
        if self.sportsbooks and not sportsbooks_of(opportunity) & self.sportsbooks:
            return False

        return True


def dedupe(opportunities: Iterable[Opportunity]) -> list[Opportunity]:
    """
    Keep one opportunity per (player, prop_type).

    The higher score wins; equal scores fall through to the ranking
    tie-break so the survivor does not depend on input order.
    """
    best: dict[tuple[str, str], Opportunity] = {}

    for opportunity in opportunities:
        key = (opportunity.player, opportunity.prop_type)
        incumbent = best.get(key)
        if incumbent is None or _beats(opportunity, incumbent):
            best[key] = opportunity

    return list(best.values())


def rank_opportunities(
    opportunities: Iterable[Opportunity],
    filters: Optional[OpportunityFilters] = None,
) -> list[Opportunity]:
    """Filter, dedupe and sort opportunities."""
    candidates = list(opportunities)
    if filters is not None:
        candidates = [o for o in candidates if filters.matches(o)]

    survivors = dedupe(candidates)
    dropped = len(candidates) - len(survivors)
    if dropped:
        logger.debug(f"Dropped {dropped} duplicate opportunities")

    return sorted(survivors, key=ranking_key)


@dataclass
class RankedOpportunities:
    """Ranked output of one detection pass."""

    opportunities: list[Opportunity] = field(default_factory=list)
    arbitrage_count: int = 0
    middle_count: int = 0
    ev_count: int = 0

    @property
    def top(self) -> Optional[Opportunity]:
        return self.opportunities[0] if self.opportunities else None

    def get_top(self, n: int = 10) -> list[Opportunity]:
        return self.opportunities[:n]

    def to_dicts(self) -> list[dict]:
        return [o.to_dict() for o in self.opportunities]


class OpportunityRanker:
    """
    Merges detector outputs into the final ranked list.

    Example:
        >>> ranker = OpportunityRanker()
        >>> ranked = ranker.rank(scan.opportunities, ev.opportunities, scan.middles)
        >>> for opp in ranked.get_top(5):
        ...     print(opp.highlight, opp.best_play)
    """

    def __init__(
        self,
        include_middles: bool = True,
        filters: Optional[OpportunityFilters] = None,
    ):
        self.include_middles = include_middles
        self.filters = filters

    def rank(
        self,
        arbitrage: Iterable[ArbitrageOpportunity] = (),
        ev: Iterable[EVOpportunity] = (),
        middles: Iterable[ArbitrageOpportunity] = (),
    ) -> RankedOpportunities:
        """
        Rank one pass of detector results.

        Args:
            arbitrage: Arbitrage opportunities (may include middle-typed arbs)
            ev: EV opportunities
            middles: Middle windows from middle detection

        Returns:
            RankedOpportunities with per-kind counts of the survivors
        """
        merged: list[Opportunity] = [*arbitrage, *ev]
        if self.include_middles:
            merged.extend(middles)

        ranked = rank_opportunities(merged, self.filters)

        return RankedOpportunities(
            opportunities=ranked,
            arbitrage_count=sum(
                1
                for o in ranked
                if isinstance(o, ArbitrageOpportunity) and not o.is_middle
            ),
            middle_count=sum(
                1 for o in ranked if isinstance(o, ArbitrageOpportunity) and o.is_middle
            ),
            ev_count=sum(1 for o in ranked if isinstance(o, EVOpportunity)),
        )
