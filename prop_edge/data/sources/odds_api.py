"""
Odds-API.io client for player prop odds.

Provides access to:
- Upcoming events per league
- Per-event odds from selected bookmakers, including player props

Features async HTTP with rate limiting, quota tracking via response
headers and retry with exponential backoff. Odds-API.io returns decimal
odds; parsing converts them to American odds and builds SportsbookQuote
lists grouped into PropMarkets.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import aiohttp
from loguru import logger

from prop_edge.betting.odds_converter import InvalidOddsError, decimal_to_american
from prop_edge.betting.quotes import GameInfo, PropMarket, SportsbookQuote, merge_side_quotes
from prop_edge.config.constants import (
    BOOKMAKER_DISPLAY_NAMES,
    DEFAULT_BOOKMAKERS,
    LEAGUE_PARAMS,
    LOW_QUOTA_WARNING,
    PROP_MARKET_NAMES,
    SPORT_PARAMS,
    PropType,
    Sport,
)

from .base import (
    AuthenticationError,
    BaseDataSource,
    DataNotAvailableError,
    DataSourceError,
    DataSourceHealth,
    DataSourceStatus,
    RateLimitError,
    RetryConfig,
)

# "Jarrett Allen (2) (8.5)" -> player name before the first parenthesis
_PLAYER_LABEL = re.compile(r"^([^(]+)")
_LINE_IN_LABEL = re.compile(r"\(([-+]?\d+(?:\.\d+)?)\)\s*$")

_parse_logger = logger.bind(component="odds_parser")


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_sport(sport: str) -> Sport:
    """Map a league name to Sport, raising ValueError when unsupported."""
    try:
        return Sport(sport.upper())
    except ValueError:
        raise ValueError(f"Unsupported sport: {sport}") from None


@dataclass
class OddsEvent:
    """An upcoming game as listed by the /events endpoint."""

    event_id: str
    home_team: str
    away_team: str
    commence_time: Optional[datetime] = None
    league_name: str = ""
    league_slug: str = ""
    status: str = "pending"

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "OddsEvent":
        league = raw.get("league") or {}
        return cls(
            event_id=str(raw["id"]),
            home_team=raw.get("home", ""),
            away_team=raw.get("away", ""),
            commence_time=_parse_datetime(raw.get("date")),
            league_name=league.get("name", ""),
            league_slug=league.get("slug", ""),
            status=raw.get("status", "pending"),
        )

    @property
    def game_info(self) -> GameInfo:
        return GameInfo(
            home_team=self.home_team,
            away_team=self.away_team,
            game_time=self.commence_time,
            game_id=self.event_id,
        )

    def matches_league(self, sport: Sport) -> bool:
        """Filter out college and minor leagues listed under the same sport."""
        name = self.league_name.lower()
        slug = self.league_slug.lower()
        tag = sport.value.lower()
        if not name and not slug:
            return True
        if sport is Sport.NBA and "g league" in name:
            return False
        return tag in name or tag in slug


def parse_player_name(label: Optional[str]) -> str:
    """Extract the player name from an outcome label."""
    if not label:
        return "Unknown Player"
    match = _PLAYER_LABEL.match(label)
    name = match.group(1).strip() if match else ""
    return name or "Unknown Player"


def _parse_line(entry: dict[str, Any]) -> Optional[float]:
    hdp = entry.get("hdp")
    if hdp is not None:
        try:
            return float(hdp)
        except (TypeError, ValueError):
            return None
    match = _LINE_IN_LABEL.search(entry.get("label") or "")
    return float(match.group(1)) if match else None


def _to_american(value: Any, context: str) -> Optional[int]:
    """Convert a decimal price to American odds; invalid prices become None."""
    if value is None or value == "":
        return None
    try:
        return decimal_to_american(float(value))
    except (TypeError, ValueError, OverflowError) as e:
        # InvalidOddsError is a ValueError
        _parse_logger.warning(f"Skipping invalid price {value!r} for {context}: {e}")
        return None


def parse_bookmaker_quotes(
    bookmaker: str,
    markets: Iterable[dict[str, Any]],
    prop_types: Optional[set[str]] = None,
    observed_at: Optional[datetime] = None,
) -> list[tuple[str, str, SportsbookQuote]]:
    """
    Parse one bookmaker's markets into (player, prop_type, quote) rows.

    Markets not in PROP_MARKET_NAMES, or not in prop_types when given, are
    skipped. Entries with no line are skipped; entries with one bad side
    keep the other side and become incomplete quotes.
    """
    observed_at = observed_at or datetime.now(timezone.utc)
    book_id = bookmaker.lower()
    display_name = BOOKMAKER_DISPLAY_NAMES.get(book_id, bookmaker)
    rows: list[tuple[str, str, SportsbookQuote]] = []

    for market in markets:
        prop_type = PROP_MARKET_NAMES.get(market.get("name", ""))
        if prop_type is None:
            continue
        if prop_types and prop_type.value not in prop_types:
            continue

        for entry in market.get("odds") or []:
            player = parse_player_name(entry.get("label"))
            line = _parse_line(entry)
            if line is None:
                continue

            context = f"{bookmaker} {player} {prop_type.value}"
            over = _to_american(entry.get("over"), context)
            under = _to_american(entry.get("under"), context)
            if over is None and under is None:
                continue

            try:
                quote = SportsbookQuote(
                    sportsbook_id=book_id,
                    display_name=display_name,
                    line=line,
                    over_odds=over,
                    under_odds=under,
                    observed_at=observed_at,
                )
            except InvalidOddsError as e:
                _parse_logger.warning(f"Skipping quote for {context}: {e}")
                continue

            rows.append((player, prop_type.value, quote))

    return rows


def parse_event_props(
    payload: dict[str, Any],
    sport: str = "NBA",
    prop_types: Optional[set[str]] = None,
    observed_at: Optional[datetime] = None,
) -> list[PropMarket]:
    """
    Build PropMarkets from one /odds response.

    Bookmakers arrive as a mapping of bookmaker name to market list. Quotes
    are grouped by (player, prop type); one-sided entries from the same book
    are merged.
    """
    bookmakers = payload.get("bookmakers") or {}
    if not isinstance(bookmakers, dict):
        raise ValueError("bookmakers must be a mapping of bookmaker to markets")

    game = OddsEvent.from_api(payload).game_info
    grouped: dict[tuple[str, str], list[SportsbookQuote]] = {}

    for bookmaker, markets in bookmakers.items():
        for player, prop_type, quote in parse_bookmaker_quotes(
            bookmaker, markets or [], prop_types, observed_at
        ):
            grouped.setdefault((player, prop_type), []).append(quote)

    return [
        PropMarket(
            player=player,
            prop_type=prop_type,
            game=game,
            quotes=merge_side_quotes(quotes),
            sport=sport,
        )
        for (player, prop_type), quotes in grouped.items()
    ]


def parse_player_props(
    payloads: Iterable[dict[str, Any]],
    sport: str = "NBA",
    prop_types: Optional[set[str]] = None,
    observed_at: Optional[datetime] = None,
) -> list[PropMarket]:
    """Parse many event payloads; a malformed event is logged and skipped."""
    markets: list[PropMarket] = []

    for payload in payloads:
        try:
            markets.extend(parse_event_props(payload, sport, prop_types, observed_at))
        except (KeyError, TypeError, ValueError) as e:
            _parse_logger.warning(f"Skipping malformed event {payload.get('id')}: {e}")

    return markets


@dataclass
class QuotaStatus:
    """Quota as reported by the most recent response headers."""

    remaining: Optional[int] = None
    used: Optional[int] = None
    last_check: Optional[datetime] = None


class OddsAPIClient(BaseDataSource[Any]):
    """
    Async client for Odds-API.io v3.

    Handles:
    - Async HTTP requests with connection pooling
    - A concurrency cap and minimum spacing between requests
    - Quota tracking via x-requests-remaining / x-requests-used headers
    - Retry logic with exponential backoff

    Rate limit: 5,000 requests per hour. Authentication is an apiKey
    query parameter.

    Example:
        >>> client = OddsAPIClient(api_key="...")
        >>> markets = await client.fetch_player_props("NBA")
        >>> await client.close()
    """

    BASE_URL = "https://api.odds-api.io/v3"

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        bookmakers: list[str] | None = None,
        max_events: int = 10,
        max_concurrent_requests: int = 5,
        request_timeout_seconds: float = 30.0,
        enabled: bool = True,
        retry_config: RetryConfig | None = None,
    ):
        super().__init__(
            source_name="odds_api_io",
            enabled=enabled,
            retry_config=retry_config,
        )

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.bookmakers = bookmakers or list(DEFAULT_BOOKMAKERS)
        self.max_events = max_events
        self.request_timeout_seconds = request_timeout_seconds

        self._quota = QuotaStatus()

        # Rate limiting
        self._request_semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._last_request_time: datetime | None = None
        self._min_request_interval = 0.2  # 200ms between requests

        self._session: aiohttp.ClientSession | None = None

        if not api_key:
            self.logger.warning("No API key provided - odds API will be disabled")
            self.enabled = False
            self._health.status = DataSourceStatus.DISABLED

    @classmethod
    def create_from_settings(cls, settings) -> "OddsAPIClient":
        """Create a client from OddsAPISettings."""
        return cls(
            api_key=settings.api_key,
            base_url=settings.base_url,
            bookmakers=settings.bookmakers,
            max_events=settings.max_events,
            max_concurrent_requests=settings.max_concurrent_requests,
            request_timeout_seconds=settings.request_timeout_seconds,
            enabled=bool(settings.api_key),
        )

    @property
    def requests_remaining(self) -> Optional[int]:
        return self._quota.remaining

    @property
    def requests_used(self) -> Optional[int]:
        return self._quota.used

    def get_quota_status(self) -> QuotaStatus:
        return self._quota

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout_seconds)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _update_quota(self, headers) -> None:
        """Update quota tracking from response headers."""
        remaining = headers.get("x-requests-remaining")
        used = headers.get("x-requests-used")

        try:
            if remaining is not None:
                self._quota.remaining = int(remaining)
            if used is not None:
                self._quota.used = int(used)
        except ValueError:
            self.logger.warning(f"Unreadable quota headers: {remaining!r}/{used!r}")
        self._quota.last_check = datetime.now(timezone.utc)

        self.logger.debug(
            f"API quota - Remaining: {self._quota.remaining}, Used: {self._quota.used}"
        )

        if self._quota.remaining is not None and self._quota.remaining < LOW_QUOTA_WARNING:
            self.logger.warning(f"Low API quota! Only {self._quota.remaining} remaining")

    async def _rate_limit(self) -> None:
        """Enforce spacing between requests."""
        if self._last_request_time:
            elapsed = (datetime.now() - self._last_request_time).total_seconds()
            if elapsed < self._min_request_interval:
                await asyncio.sleep(self._min_request_interval - elapsed)
        self._last_request_time = datetime.now()

    async def _fetch_impl(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self._make_request(endpoint, params)

    async def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an authenticated GET request.

        Raises:
            AuthenticationError: Missing or rejected API key
            RateLimitError: HTTP 429
            DataNotAvailableError: HTTP 404
            DataSourceError: Other API or connection errors
        """
        if not self.api_key:
            raise AuthenticationError(self.source_name, "Odds-API.io API key not configured")

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        request_params = {"apiKey": self.api_key}
        if params:
            request_params.update({k: str(v) for k, v in params.items()})

        async with self._request_semaphore:
            await self._rate_limit()
            session = await self._get_session()

            try:
                async with session.get(url, params=request_params) as response:
                    self._update_quota(response.headers)

                    if response.status == 200:
                        return await response.json()

                    if response.status == 401:
                        raise AuthenticationError(self.source_name, "Invalid API key")

                    if response.status == 429:
                        retry_after = response.headers.get("Retry-After", "60")
                        raise RateLimitError(
                            self.source_name,
                            retry_after_seconds=int(retry_after) if retry_after.isdigit() else 60,
                        )

                    if response.status == 404:
                        raise DataNotAvailableError(
                            self.source_name, f"Endpoint not found: {endpoint}"
                        )

                    error_text = await response.text()
                    raise DataSourceError(
                        f"API error {response.status}: {error_text}",
                        self.source_name,
                        retry_allowed=response.status >= 500,
                        status_code=response.status,
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise DataSourceError(
                    f"Connection error: {e}",
                    self.source_name,
                    original_error=e,
                    retry_allowed=True,
                )

    async def health_check(self) -> DataSourceHealth:
        """Check if Odds-API.io is reachable with the configured key."""
        if not self.enabled:
            return DataSourceHealth(
                source_name=self.source_name,
                status=DataSourceStatus.DISABLED,
                error_message="API key not configured",
            )

        try:
            await self._make_request("/sports")
        except AuthenticationError as e:
            return DataSourceHealth(
                source_name=self.source_name,
                status=DataSourceStatus.UNHEALTHY,
                error_message=str(e),
            )
        except DataSourceError as e:
            return DataSourceHealth(
                source_name=self.source_name,
                status=DataSourceStatus.DEGRADED,
                error_message=str(e),
            )

        return DataSourceHealth(
            source_name=self.source_name,
            status=DataSourceStatus.HEALTHY,
            last_success=datetime.now(timezone.utc),
        )

    async def get_events(
        self,
        sport: str = "NBA",
        limit: int | None = None,
        status: str = "pending",
    ) -> list[OddsEvent]:
        """
        Get upcoming events for a league.

        Args:
            sport: League name (NBA, NFL, MLB, NHL)
            limit: Maximum events to request (defaults to max_events)
            status: Event status filter; "pending" means not yet started

        Returns:
            Events belonging to the league, in API order
        """
        league = resolve_sport(sport)
        params = {
            "sport": SPORT_PARAMS[league],
            "league": LEAGUE_PARAMS[league],
            "status": status,
            "limit": limit or self.max_events,
        }

        data = await self.fetch("/events", params)
        events = [OddsEvent.from_api(raw) for raw in data or []]
        events = [e for e in events if e.matches_league(league)]

        self.logger.info(f"Found {len(events)} upcoming {league.value} events")
        return events

    async def get_event_odds(
        self,
        event_id: str,
        bookmakers: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Get odds for a specific event, including player props.

        Returns:
            Raw payload with bookmakers mapped to their market lists
        """
        params = {
            "eventId": event_id,
            "bookmakers": ",".join(bookmakers or self.bookmakers),
        }

        self.logger.debug(f"Fetching odds for event: {event_id}")
        return await self.fetch("/odds", params)

    async def _fetch_event_payload(
        self,
        event: OddsEvent,
        bookmakers: list[str] | None,
    ) -> Optional[dict[str, Any]]:
        try:
            payload = await self.get_event_odds(event.event_id, bookmakers)
        except DataSourceError as e:
            self.logger.warning(
                f"Failed to get odds for event {event.event_id} "
                f"({event.away_team} @ {event.home_team}): {e}"
            )
            return None

        if payload is None:
            payload = {}
        elif not isinstance(payload, dict):
            self.logger.warning(
                f"Unexpected odds body for event {event.event_id}: "
                f"{type(payload).__name__}, skipping"
            )
            return None

        # Event metadata fills gaps in the odds payload
        payload = dict(payload)
        payload.setdefault("id", event.event_id)
        payload.setdefault("home", event.home_team)
        payload.setdefault("away", event.away_team)
        if event.commence_time is not None:
            payload.setdefault("date", event.commence_time.isoformat())
        return payload

    async def fetch_event_payloads(
        self,
        sport: str = "NBA",
        bookmakers: list[str] | None = None,
        max_events: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch raw odds payloads for upcoming events concurrently.

        A failure for one event is logged and that event contributes
        nothing; the other events still come back.
        """
        events = await self.get_events(sport, limit=max_events)
        if max_events:
            events = events[:max_events]

        if not events:
            self.logger.info(f"No upcoming {sport} games found")
            return []

        results = await asyncio.gather(
            *(self._fetch_event_payload(event, bookmakers) for event in events)
        )
        payloads = [r for r in results if r is not None]

        self.logger.info(f"Fetched odds for {len(payloads)}/{len(events)} {sport} events")
        return payloads

    async def fetch_player_props(
        self,
        sport: str = "NBA",
        prop_types: Iterable[str | PropType] | None = None,
        bookmakers: list[str] | None = None,
        max_events: int | None = None,
    ) -> list[PropMarket]:
        """Fetch and parse player props for upcoming games."""
        payloads = await self.fetch_event_payloads(sport, bookmakers, max_events)
        wanted = {PropType(p).value for p in prop_types} if prop_types else None
        return parse_player_props(payloads, sport=sport, prop_types=wanted)
