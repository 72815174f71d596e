"""
Quota-aware odds cache with pluggable storage backends.

Odds snapshots are cached per (sport, market type) for a short TTL so that
repeated scans do not spend upstream API quota. Storage is behind the
CacheBackend interface:
- InMemoryCache (testing, single process)
- SQLiteCache (local persistence across restarts)

Records are stored as JSON text:
    {"data": ..., "timestamp": ms, "expiresAt": ms, "requestsRemaining": int|null}

A record is only usable while now < expiresAt. Expired records are treated
as absent even if still stored, and are removed on read or cleanup.
"""
import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

from loguru import logger

from prop_edge.config.constants import (
    CACHE_KEY_PREFIX,
    CACHE_TTL_SECONDS,
    CRITICAL_QUOTA_WARNING,
    LOW_QUOTA_WARNING,
    QUOTA_LIMIT,
    QUOTA_RESET_HOURS,
)


class CacheBackend(ABC):
    """Abstract base class for cache backends (string key-value stores)."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a raw value from storage."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a raw value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key from storage."""
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List keys with the given prefix."""
        pass

    @abstractmethod
    async def clear_prefix(self, prefix: str) -> int:
        """Clear all keys with given prefix. Returns count removed."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the storage connection."""
        pass


class InMemoryCache(CacheBackend):
    """
    Simple in-memory cache backend.

    Best for testing and small-scale local usage.
    Data is lost when the process exits.
    """

    def __init__(self):
        self._store: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._store[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        async with self._lock:
            return [k for k in self._store if k.startswith(prefix)]

    async def clear_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys_to_delete = [k for k in self._store if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._store[key]
            return len(keys_to_delete)

    async def close(self) -> None:
        async with self._lock:
            self._store.clear()


class SQLiteCache(CacheBackend):
    """
    SQLite-based cache backend.

    Good for local development with persistence.
    Data survives process restarts.
    """

    def __init__(self, db_path: Union[str, Path] = "odds_cache.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Ensure the database is initialized."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._init_db)
            self._initialized = True

    def _init_db(self) -> None:
        """Initialize the database schema."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                str(self.db_path), check_same_thread=False
            )
        return self._connection

    async def _run(self, func: Callable[[sqlite3.Connection], Any]) -> Any:
        await self._ensure_initialized()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, self._get_connection())

    async def get(self, key: str) -> Optional[str]:
        def _get(conn: sqlite3.Connection) -> Optional[str]:
            row = conn.execute(
                "SELECT value FROM cache WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None

        return await self._run(_get)

    async def set(self, key: str, value: str) -> None:
        def _set(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO cache (key, value) VALUES (?, ?)",
                (key, value),
            )
            conn.commit()

        await self._run(_set)

    async def delete(self, key: str) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            conn.commit()

        await self._run(_delete)

    async def keys(self, prefix: str = "") -> list[str]:
        def _keys(conn: sqlite3.Connection) -> list[str]:
            rows = conn.execute(
                "SELECT key FROM cache WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            ).fetchall()
            return [r[0] for r in rows]

        return await self._run(_keys)

    async def clear_prefix(self, prefix: str) -> int:
        def _clear(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "DELETE FROM cache WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            )
            conn.commit()
            return cursor.rowcount

        return await self._run(_clear)

    async def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None
            self._initialized = False


def _to_ms(moment: datetime) -> int:
    return round(moment.timestamp() * 1000)


def _from_ms(ms: Union[int, float]) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


@dataclass
class CacheRecord:
    """One cached odds snapshot."""

    data: Any
    stored_at: datetime
    expires_at: datetime
    quota_remaining_at_fetch: Optional[int] = None

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at

    def age_seconds(self, now: datetime) -> float:
        return (now - self.stored_at).total_seconds()

    def to_json(self) -> str:
        return json.dumps(
            {
                "data": self.data,
                "timestamp": _to_ms(self.stored_at),
                "expiresAt": _to_ms(self.expires_at),
                "requestsRemaining": self.quota_remaining_at_fetch,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "CacheRecord":
        """
        Parse a stored record.

        Raises:
            ValueError: If the payload is not a valid record
        """
        try:
            payload = json.loads(raw)
            return cls(
                data=payload["data"],
                stored_at=_from_ms(payload["timestamp"]),
                expires_at=_from_ms(payload["expiresAt"]),
                quota_remaining_at_fetch=payload.get("requestsRemaining"),
            )
        except (KeyError, TypeError, OverflowError, OSError) as e:
            raise ValueError(f"Corrupted cache record: {e}") from e


@dataclass
class QuotaState:
    """Upstream API quota as last reported by the provider."""

    requests_used: int = 0
    requests_remaining: Optional[int] = None  # Unknown until first response
    reset_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests_used": self.requests_used,
            "requests_remaining": self.requests_remaining,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class CacheStats:
    """Snapshot of cache contents and counters."""

    total_entries: int = 0
    valid_entries: int = 0
    expired_entries: int = 0
    hits: int = 0
    misses: int = 0
    api_calls: int = 0
    last_cleanup: Optional[datetime] = None
    quota: QuotaState = field(default_factory=QuotaState)

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class QuotaAwareCache:
    """
    TTL cache for odds snapshots plus upstream quota bookkeeping.

    The fetch orchestrator asks should_fetch_fresh() before calling the
    upstream API and stores the result with set(), passing along the
    remaining quota reported by the provider. A low quota only produces a
    warning; it never blocks a fetch.

    Example:
        >>> cache = QuotaAwareCache(InMemoryCache())
        >>> if await cache.should_fetch_fresh("NBA", "player_props"):
        ...     data = await client.fetch_player_props("NBA")
        ...     await cache.set("NBA", "player_props", data, client.requests_remaining)
    """

    def __init__(
        self,
        backend: CacheBackend,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        quota_limit: int = QUOTA_LIMIT,
        quota_window: timedelta = timedelta(hours=QUOTA_RESET_HOURS),
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.backend = backend
        self.ttl = timedelta(seconds=ttl_seconds)
        self.quota_limit = quota_limit
        self.quota_window = quota_window
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._quota = QuotaState()
        self._hits = 0
        self._misses = 0
        self._api_calls = 0
        self._last_cleanup: Optional[datetime] = None

        self.logger = logger.bind(component="odds_cache")

    @classmethod
    def create_from_settings(
        cls,
        settings,
        now: Optional[Callable[[], datetime]] = None,
    ) -> "QuotaAwareCache":
        """Create a cache from CacheSettings."""
        if settings.backend == "sqlite":
            backend: CacheBackend = SQLiteCache(settings.sqlite_path)
        else:
            backend = InMemoryCache()
        return cls(
            backend,
            ttl_seconds=settings.ttl_seconds,
            quota_limit=settings.quota_limit,
            now=now,
        )

    @staticmethod
    def make_key(sport: str, market_type: str) -> str:
        return f"{CACHE_KEY_PREFIX}{sport}_{market_type}"

    @property
    def quota(self) -> QuotaState:
        return self._quota

    async def _load(self, key: str) -> Optional[CacheRecord]:
        """Read a valid record; expired or corrupted records are removed."""
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            self.logger.error(f"Cache read error for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            record = CacheRecord.from_json(raw)
        except ValueError as e:
            self.logger.warning(f"Removing unreadable cache entry {key}: {e}")
            await self.backend.delete(key)
            return None

        if not record.is_valid(self._now()):
            await self.backend.delete(key)
            return None

        return record

    async def get(self, sport: str, market_type: str = "player_props") -> Optional[Any]:
        """
        Get cached data if still valid.

        Returns:
            The cached data, or None when absent or expired
        """
        key = self.make_key(sport, market_type)
        record = await self._load(key)

        if record is None:
            self._misses += 1
            self.logger.debug(f"Cache miss: {sport} {market_type}")
            return None

        self._hits += 1
        self.logger.debug(
            f"Cache hit: {sport} {market_type} "
            f"(age: {record.age_seconds(self._now()):.0f}s)"
        )
        return record.data

    async def set(
        self,
        sport: str,
        market_type: str,
        data: Any,
        quota_remaining: Optional[int] = None,
    ) -> None:
        """
        Store data with expires_at = now + TTL.

        Args:
            sport: League key, e.g. "NBA"
            market_type: Market group, e.g. "player_props"
            data: JSON-serializable payload
            quota_remaining: Remaining requests reported by the upstream API
        """
        key = self.make_key(sport, market_type)
        now = self._now()
        record = CacheRecord(
            data=data,
            stored_at=now,
            expires_at=now + self.ttl,
            quota_remaining_at_fetch=quota_remaining,
        )

        try:
            await self.backend.set(key, record.to_json())
            self.logger.debug(
                f"Cached {sport} {market_type} (expires in {self.ttl.total_seconds():.0f}s)"
            )
        except Exception as e:
            self.logger.error(f"Cache write error for {key}: {e}")

        if quota_remaining is not None:
            self.update_quota(quota_remaining)

    async def is_fresh(self, sport: str, market_type: str = "player_props") -> bool:
        """Whether a valid entry exists, without touching hit/miss counters."""
        return await self._load(self.make_key(sport, market_type)) is not None

    async def should_fetch_fresh(
        self,
        sport: str,
        market_type: str = "player_props",
        force_refresh: bool = False,
    ) -> bool:
        """
        Decide whether the upstream API should be called.

        True when forced or when no valid cache entry exists. A nearly
        exhausted quota is logged as a warning but never blocks the fetch.
        """
        if force_refresh:
            return True

        if await self.is_fresh(sport, market_type):
            return False

        self._misses += 1

        remaining = self._quota.requests_remaining
        if remaining is not None and remaining < CRITICAL_QUOTA_WARNING:
            self.logger.warning(
                f"Very low quota ({remaining} requests), consider using cached data only"
            )

        return True

    def update_quota(self, requests_remaining: int) -> QuotaState:
        """
        Record the remaining quota reported after a real upstream call.

        The window rolls over quota_window (one hour by default) after the
        first call of a window, following Odds-API.io's hourly request
        limit rather than a calendar-month billing cycle.
        """
        now = self._now()

        reset_at = self._quota.reset_at
        if reset_at is None or now >= reset_at:
            reset_at = now + self.quota_window

        self._quota = QuotaState(
            requests_used=max(0, self.quota_limit - requests_remaining),
            requests_remaining=requests_remaining,
            reset_at=reset_at,
            last_updated=now,
        )
        self._api_calls += 1

        if requests_remaining < LOW_QUOTA_WARNING:
            self.logger.warning(f"Low API quota: {requests_remaining} requests remaining")

        return self._quota

    def reset_quota(self) -> None:
        """Forget quota usage (after a provider reset or in tests)."""
        self._quota = QuotaState()
        self.logger.info("Quota usage reset")

    async def _cache_keys(self) -> list[str]:
        return await self.backend.keys(CACHE_KEY_PREFIX)

    async def cleanup_expired(self) -> int:
        """Remove expired and unreadable entries. Returns count removed."""
        now = self._now()
        removed = 0

        for key in await self._cache_keys():
            raw = await self.backend.get(key)
            if raw is None:
                continue
            try:
                expired = not CacheRecord.from_json(raw).is_valid(now)
            except ValueError:
                expired = True

            if expired:
                await self.backend.delete(key)
                removed += 1

        self._last_cleanup = now
        if removed:
            self.logger.info(f"Cleaned up {removed} expired cache entries")
        return removed

    async def clear_all(self) -> int:
        """Remove every cached odds snapshot."""
        count = await self.backend.clear_prefix(CACHE_KEY_PREFIX)
        self.logger.info(f"Cleared {count} cache entries")
        return count

    async def get_stats(self) -> CacheStats:
        """Count valid and expired entries and report counters and quota."""
        now = self._now()
        keys = await self._cache_keys()
        valid = 0
        expired = 0

        for key in keys:
            raw = await self.backend.get(key)
            if raw is None:
                continue
            try:
                if CacheRecord.from_json(raw).is_valid(now):
                    valid += 1
                else:
                    expired += 1
            except ValueError:
                expired += 1

        return CacheStats(
            total_entries=len(keys),
            valid_entries=valid,
            expired_entries=expired,
            hits=self._hits,
            misses=self._misses,
            api_calls=self._api_calls,
            last_cleanup=self._last_cleanup,
            quota=self._quota,
        )

    async def close(self) -> None:
        """Close the storage backend."""
        await self.backend.close()
