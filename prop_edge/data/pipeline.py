"""
Fetch-and-scan orchestration.

Owns the odds client, the quota-aware cache and the detectors:
- Consults the cache before spending upstream quota
- Fans out per-event fetches through the client
- Parses quotes into prop markets and drops thin markets
- Runs arbitrage, middle and EV detection, then ranks the results
- Attaches Kelly stake suggestions to EV plays

A failed event fetch never aborts a scan; that event simply contributes no
quotes.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, Protocol

from loguru import logger

from prop_edge.betting.arbitrage_scanner import ArbitrageScanner, ScanResult
from prop_edge.betting.ev_detector import DetectionResult, EVDetector
from prop_edge.betting.kelly_calculator import KellyCalculator, StakeRecommendation
from prop_edge.betting.opportunity import EVOpportunity, Opportunity
from prop_edge.betting.quotes import PropMarket
from prop_edge.betting.ranking import OpportunityRanker, RankedOpportunities
from prop_edge.config.constants import MIN_BOOKS_PER_PROP

from .cache.cache_manager import InMemoryCache, QuotaAwareCache
from .sources.base import DataSourceError
from .sources.odds_api import OddsAPIClient, parse_player_props

PLAYER_PROPS_MARKET = "player_props"


class OddsSource(Protocol):
    """What the pipeline needs from an odds client."""

    @property
    def requests_remaining(self) -> Optional[int]: ...

    async def fetch_event_payloads(self, sport: str = "NBA") -> list[dict[str, Any]]: ...

    async def close(self) -> None: ...


@dataclass
class ScanReport:
    """Everything produced by one scan of a league."""

    sport: str
    ranked: RankedOpportunities
    arbitrage: ScanResult
    ev: DetectionResult
    stakes: dict[str, StakeRecommendation] = field(default_factory=dict)
    events_scanned: int = 0
    markets_scanned: int = 0
    from_cache: bool = False
    error: Optional[str] = None
    scanned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def opportunities(self) -> list[Opportunity]:
        return self.ranked.opportunities

    @property
    def ok(self) -> bool:
        return self.error is None


class OpportunityPipeline:
    """
    Orchestrates odds fetching, caching and opportunity detection.

    Example:
        >>> pipeline = OpportunityPipeline.from_settings(get_settings())
        >>> report = await pipeline.scan("NBA")
        >>> for opp in report.ranked.get_top(5):
        ...     print(opp.player, opp.highlight, opp.best_play)
        >>> await pipeline.close()
    """

    def __init__(
        self,
        client: OddsSource,
        cache: Optional[QuotaAwareCache] = None,
        arbitrage_scanner: Optional[ArbitrageScanner] = None,
        ev_detector: Optional[EVDetector] = None,
        ranker: Optional[OpportunityRanker] = None,
        kelly: Optional[KellyCalculator] = None,
        bankroll: float = 1000.0,
        min_books: int = MIN_BOOKS_PER_PROP,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._now = now or (lambda: datetime.now(timezone.utc))

        self.client = client
        self.cache = cache or QuotaAwareCache(InMemoryCache(), now=self._now)
        self.arbitrage_scanner = arbitrage_scanner or ArbitrageScanner(now=self._now)
        self.ev_detector = ev_detector or EVDetector(now=self._now)
        self.ranker = ranker or OpportunityRanker()
        self.kelly = kelly or KellyCalculator()
        self.bankroll = bankroll
        self.min_books = min_books

        self.logger = logger.bind(component="pipeline")

    @classmethod
    def from_settings(
        cls,
        settings,
        client: Optional[OddsSource] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> "OpportunityPipeline":
        """
        Create a pipeline from application settings.

        Args:
            settings: Root Settings object
            client: Odds client override (an OddsAPIClient is built otherwise)
            now: Clock shared by the cache and detectors
        """
        detection = settings.detection
        return cls(
            client=client or OddsAPIClient.create_from_settings(settings.odds_api),
            cache=QuotaAwareCache.create_from_settings(settings.cache, now=now),
            arbitrage_scanner=ArbitrageScanner(
                min_profit_pct=detection.min_arbitrage_profit,
                total_stake=detection.total_stake,
                expiry=timedelta(minutes=detection.arbitrage_expiry_minutes),
                now=now,
            ),
            ev_detector=EVDetector(min_ev=detection.min_ev, now=now),
            ranker=OpportunityRanker(include_middles=detection.include_middles),
            kelly=KellyCalculator(
                fraction=settings.kelly.fraction,
                max_stake_pct=settings.kelly.max_stake_percent,
            ),
            bankroll=settings.bankroll,
            min_books=detection.min_books,
            now=now,
        )

    async def _fetch_and_cache(self, sport: str) -> list[dict[str, Any]]:
        payloads = await self.client.fetch_event_payloads(sport)
        if not payloads:
            # Nothing usable came back; retry upstream on the next scan
            self.logger.warning(f"No {sport} odds returned, not caching")
            if self.client.requests_remaining is not None:
                self.cache.update_quota(self.client.requests_remaining)
            return payloads

        await self.cache.set(
            sport, PLAYER_PROPS_MARKET, payloads, self.client.requests_remaining
        )
        return payloads

    async def load_payloads(
        self,
        sport: str = "NBA",
        force_refresh: bool = False,
    ) -> tuple[list[dict[str, Any]], bool]:
        """
        Get raw event payloads from cache or upstream.

        The refresh decision is made before any network call.

        Returns:
            Tuple of (payloads, served_from_cache)

        Raises:
            DataSourceError: When the upstream fetch fails outright
        """
        if await self.cache.should_fetch_fresh(sport, PLAYER_PROPS_MARKET, force_refresh):
            self.logger.info(f"Fetching fresh {sport} odds")
            return await self._fetch_and_cache(sport), False

        cached = await self.cache.get(sport, PLAYER_PROPS_MARKET)
        if cached is None:
            # Expired between the freshness check and the read
            return await self._fetch_and_cache(sport), False

        self.logger.info(f"Using cached {sport} odds ({len(cached)} events)")
        return cached, True

    def build_markets(
        self,
        payloads: Iterable[dict[str, Any]],
        sport: str = "NBA",
    ) -> list[PropMarket]:
        """Parse payloads and keep props quoted two-sided by enough books."""
        markets = parse_player_props(payloads, sport=sport)
        usable = [m for m in markets if len(m.complete_quotes) >= self.min_books]

        self.logger.debug(
            f"{len(usable)}/{len(markets)} {sport} props have {self.min_books}+ complete books"
        )
        return usable

    def recommend_stake(self, opportunity: EVOpportunity) -> StakeRecommendation:
        """Kelly stake for the best side of an EV play."""
        if opportunity.best_side == "Over":
            probability = opportunity.estimated_true_probability_over
            odds = opportunity.best_over.odds
        else:
            probability = opportunity.estimated_true_probability_under
            odds = opportunity.best_under.odds
        return self.kelly.calculate_stake(self.bankroll, probability, odds)

    def detect(self, markets: list[PropMarket], sport: str = "NBA") -> ScanReport:
        """Run every detector over the markets and rank the results."""
        arbitrage = self.arbitrage_scanner.scan_markets(
            markets, include_middles=self.ranker.include_middles
        )
        ev = self.ev_detector.detect_all(markets)
        ranked = self.ranker.rank(arbitrage.opportunities, ev.opportunities, arbitrage.middles)

        stakes = {
            opp.id: self.recommend_stake(opp)
            for opp in ranked.opportunities
            if isinstance(opp, EVOpportunity)
        }

        return ScanReport(
            sport=sport,
            ranked=ranked,
            arbitrage=arbitrage,
            ev=ev,
            stakes=stakes,
            markets_scanned=len(markets),
            scanned_at=self._now(),
        )

    def _empty_report(self, sport: str, error: str) -> ScanReport:
        report = self.detect([], sport)
        report.error = error
        return report

    async def scan(self, sport: str = "NBA", force_refresh: bool = False) -> ScanReport:
        """
        Fetch (or reuse cached) odds for a league and detect opportunities.

        Upstream failures are logged and produce an empty report carrying
        the error message rather than raising.
        """
        try:
            payloads, from_cache = await self.load_payloads(sport, force_refresh)
        except DataSourceError as e:
            self.logger.error(f"Failed to load {sport} odds: {e}")
            return self._empty_report(sport, str(e))

        markets = self.build_markets(payloads, sport)
        report = self.detect(markets, sport)
        report.events_scanned = len(payloads)
        report.from_cache = from_cache

        self.logger.info(
            f"{sport} scan: {report.ranked.arbitrage_count} arbs, "
            f"{report.ranked.middle_count} middles, {report.ranked.ev_count} EV "
            f"across {len(markets)} props"
        )
        return report

    async def scan_many(
        self,
        sports: Iterable[str],
        force_refresh: bool = False,
    ) -> dict[str, ScanReport]:
        """Scan several leagues concurrently; one league failing does not stop the rest."""
        sports = list(sports)
        results = await asyncio.gather(
            *(self.scan(sport, force_refresh) for sport in sports),
            return_exceptions=True,
        )

        reports: dict[str, ScanReport] = {}
        for sport, result in zip(sports, results):
            if isinstance(result, Exception):
                self.logger.error(f"Scan failed for {sport}: {result}")
                reports[sport] = self._empty_report(sport, str(result))
            else:
                reports[sport] = result
        return reports

    async def close(self) -> None:
        """Close the client and cache."""
        await self.client.close()
        await self.cache.close()
        self.logger.info("Pipeline closed")
