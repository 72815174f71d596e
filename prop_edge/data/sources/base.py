"""
Shared plumbing for upstream odds sources.

Every client gets:
- A typed error hierarchy rooted at DataSourceError
- fetch() with exponential backoff around the subclass's _fetch_impl()
- Health tracking that degrades after repeated failed fetches
- A loguru logger bound to the source name
"""
import asyncio
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar

from loguru import logger

T = TypeVar("T")

DEGRADED_AFTER_FAILURES = 2
UNHEALTHY_AFTER_FAILURES = 5


class DataSourceStatus(str, Enum):
    """Health status of an odds source."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


@dataclass
class DataSourceHealth:
    """Rolling health of an odds source."""

    source_name: str
    status: DataSourceStatus
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None
    latency_ms: Optional[float] = None


@dataclass
class RetryConfig:
    """Backoff policy for fetch()."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def backoff(self, attempt: int) -> float:
        """Delay after a failed attempt (1-based), capped at max_delay_seconds."""
        delay = min(
            self.initial_delay_seconds * self.exponential_base ** (attempt - 1),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay *= 0.5 + random.random()
        return delay


class DataSourceError(Exception):
    """Raised when an odds source cannot deliver data."""

    def __init__(
        self,
        message: str,
        source_name: str,
        original_error: Optional[Exception] = None,
        retry_allowed: bool = True,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.source_name = source_name
        self.original_error = original_error
        self.retry_allowed = retry_allowed
        self.status_code = status_code


class RateLimitError(DataSourceError):
    """HTTP 429 or an exhausted request quota."""

    def __init__(
        self,
        source_name: str,
        retry_after_seconds: Optional[int] = None,
    ):
        wait = f", retry after {retry_after_seconds}s" if retry_after_seconds else ""
        super().__init__(
            f"Rate limit exceeded for {source_name}{wait}",
            source_name,
            retry_allowed=True,
            status_code=429,
        )
        self.retry_after_seconds = retry_after_seconds


class AuthenticationError(DataSourceError):
    """API key missing or rejected; retrying cannot help."""

    def __init__(self, source_name: str, message: str = "Authentication failed"):
        super().__init__(message, source_name, retry_allowed=False, status_code=401)


class DataNotAvailableError(DataSourceError):
    """The requested event or endpoint does not exist."""

    def __init__(self, source_name: str, message: str):
        super().__init__(message, source_name, retry_allowed=False, status_code=404)


class BaseDataSource(ABC, Generic[T]):
    """
    Base class for odds clients.

    Subclasses implement _fetch_impl() for a single attempt and
    health_check(). Callers go through fetch(), which owns retries and
    health bookkeeping.
    """

    def __init__(
        self,
        source_name: str,
        enabled: bool = True,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.source_name = source_name
        self.enabled = enabled
        self.retry_config = retry_config or RetryConfig()

        self._health = DataSourceHealth(
            source_name=source_name,
            status=DataSourceStatus.HEALTHY if enabled else DataSourceStatus.DISABLED,
        )

        self.logger = logger.bind(source=source_name)

    @property
    def is_available(self) -> bool:
        return self.enabled

    @abstractmethod
    async def _fetch_impl(self, *args, **kwargs) -> T:
        """One request attempt, without retries."""

    @abstractmethod
    async def health_check(self) -> DataSourceHealth:
        """Cheap request proving the source is reachable."""

    async def fetch(self, *args, **kwargs) -> T:
        """
        Run _fetch_impl() with retries.

        Errors with retry_allowed=False propagate on the first attempt.
        Anything else is retried; once attempts run out a non-retryable
        DataSourceError wrapping the last failure is raised.

        Raises:
            DataSourceError: Source disabled, non-retryable failure, or
                attempts exhausted
        """
        if not self.is_available:
            raise DataSourceError(
                f"{self.source_name} is disabled",
                self.source_name,
                retry_allowed=False,
            )

        attempts = self.retry_config.max_attempts
        started = time.monotonic()
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                result = await self._fetch_impl(*args, **kwargs)
            except DataSourceError as e:
                last_error = e
                if not e.retry_allowed:
                    self.logger.warning(f"{self.source_name} request rejected: {e}")
                    self._record_failure(str(e))
                    raise
                self.logger.warning(f"Attempt {attempt}/{attempts} failed: {e}")
            except Exception as e:
                last_error = e
                self.logger.error(f"Unexpected error on attempt {attempt}/{attempts}: {e!r}")
            else:
                self._record_success((time.monotonic() - started) * 1000)
                return result

            if attempt < attempts:
                delay = self._calculate_delay(attempt, last_error)
                self.logger.info(f"Retrying {self.source_name} in {delay:.2f}s")
                await asyncio.sleep(delay)

        self._record_failure(str(last_error))
        raise DataSourceError(
            f"All {attempts} attempts failed for {self.source_name}",
            self.source_name,
            original_error=last_error,
            retry_allowed=False,
        )

    def _calculate_delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Honor Retry-After on rate limits, otherwise back off exponentially."""
        if isinstance(error, RateLimitError) and error.retry_after_seconds:
            return min(float(error.retry_after_seconds), self.retry_config.max_delay_seconds)
        return self.retry_config.backoff(attempt)

    def _record_success(self, latency_ms: float) -> None:
        health = self._health
        health.last_success = datetime.now(timezone.utc)
        health.latency_ms = latency_ms
        health.consecutive_failures = 0
        health.error_message = None
        health.status = DataSourceStatus.HEALTHY

    def _record_failure(self, error_message: str) -> None:
        health = self._health
        health.last_failure = datetime.now(timezone.utc)
        health.consecutive_failures += 1
        health.error_message = error_message

        if health.consecutive_failures >= UNHEALTHY_AFTER_FAILURES:
            health.status = DataSourceStatus.UNHEALTHY
        elif health.consecutive_failures >= DEGRADED_AFTER_FAILURES:
            health.status = DataSourceStatus.DEGRADED

    def get_health(self) -> DataSourceHealth:
        return self._health
