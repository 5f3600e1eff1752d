"""Rerank usage counters with Redis and in-memory implementations.

Tracks rerank units consumed per calendar day (UTC). The counter only
reports remaining quota; the provider enforces real limits.

Usage:
    # Get counter (auto-selects Redis or in-memory)
    counter = await get_rerank_usage_counter(settings)

    await counter.record(1)
    snapshot = await counter.snapshot()
    print(snapshot.remaining)
"""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

import redis.asyncio as redis
import structlog

from answerdesk.config.settings import Settings

logger = structlog.get_logger(__name__)

# Keep yesterday's key around for inspection, then let Redis drop it.
USAGE_KEY_TTL_SECONDS = int(timedelta(days=2).total_seconds())


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class UsageSnapshot:
    """Rerank usage for one day."""

    date: str
    units_used: int
    daily_limit: Optional[int]
    remaining: Optional[int]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _snapshot(day: date, used: int, daily_limit: Optional[int]) -> UsageSnapshot:
    remaining = max(0, daily_limit - used) if daily_limit is not None else None
    return UsageSnapshot(
        date=day.isoformat(),
        units_used=used,
        daily_limit=daily_limit,
        remaining=remaining,
    )


class RerankUsageCounter(Protocol):
    """Protocol for rerank usage counter implementations."""

    async def reset_if_new_day(self) -> bool: ...

    async def record(self, units: int) -> None: ...

    async def snapshot(self) -> UsageSnapshot: ...


@dataclass
class InMemoryRerankUsageCounter:
    """
    In-memory counter for development or Redis fallback.

    WARNING: Does not persist across restarts and does not share
    state between multiple application instances.
    """

    daily_limit: Optional[int] = None
    clock: Callable[[], date] = utc_today
    _date: Optional[date] = None
    _units_used: int = 0
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def _roll(self) -> bool:
        today = self.clock()
        if self._date == today:
            return False
        if self._date is not None:
            logger.info(
                "rerank_usage_day_rolled",
                previous_date=self._date.isoformat(),
                units_used=self._units_used,
            )
        self._date = today
        self._units_used = 0
        return True

    async def reset_if_new_day(self) -> bool:
        """Zero the counter if the calendar day changed. Returns True if it did."""
        async with self._lock:
            return self._roll()

    async def record(self, units: int) -> None:
        if units <= 0:
            return
        async with self._lock:
            self._roll()
            self._units_used += units

    async def snapshot(self) -> UsageSnapshot:
        async with self._lock:
            self._roll()
            return _snapshot(self._date, self._units_used, self.daily_limit)


class RedisRerankUsageCounter:
    """
    Redis-backed counter shared between application instances.

    One key per UTC day (``<prefix>:<YYYY-MM-DD>``) incremented atomically;
    keys expire on their own so a new day starts from zero.

    Args:
        redis_url: Redis connection URL
        daily_limit: Advisory daily unit limit, or None
        key_prefix: Prefix for Redis keys
        clock: Returns the current day (injectable for tests)
    """

    def __init__(
        self,
        redis_url: str,
        daily_limit: Optional[int] = None,
        key_prefix: str = "answerdesk:rerank_usage",
        clock: Callable[[], date] = utc_today,
    ):
        self._redis_url = redis_url
        self._daily_limit = daily_limit
        self._key_prefix = key_prefix
        self._clock = clock
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._date: Optional[date] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._connected:
            return

        try:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self._client.ping()
            self._connected = True
            logger.info("redis_usage_counter_connected")
        except Exception as e:
            logger.error("redis_usage_counter_connection_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._connected = False
            logger.info("redis_usage_counter_disconnected")

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _make_key(self, day: date) -> str:
        return f"{self._key_prefix}:{day.isoformat()}"

    async def reset_if_new_day(self) -> bool:
        today = self._clock()
        if self._date == today:
            return False
        self._date = today
        return True

    async def record(self, units: int) -> None:
        if units <= 0:
            return
        if not self._connected:
            raise RuntimeError("Usage counter not connected. Call connect() first.")

        await self.reset_if_new_day()
        key = self._make_key(self._date)
        try:
            pipe = self._client.pipeline()
            pipe.incrby(key, units)
            pipe.expire(key, USAGE_KEY_TTL_SECONDS)
            await pipe.execute()
        except redis.RedisError as e:
            # Advisory only; a lost increment must not fail the search.
            logger.warning("rerank_usage_record_failed", units=units, error=str(e))

    async def snapshot(self) -> UsageSnapshot:
        if not self._connected:
            raise RuntimeError("Usage counter not connected. Call connect() first.")

        await self.reset_if_new_day()
        raw = await self._client.get(self._make_key(self._date))
        return _snapshot(self._date, int(raw or 0), self._daily_limit)


async def get_rerank_usage_counter(settings: Optional[Settings] = None) -> RerankUsageCounter:
    """
    Create the rerank usage counter.

    Attempts to use Redis if configured, falls back to in-memory.
    """
    if settings is None:
        from answerdesk.config.settings import get_settings
        settings = get_settings()

    if settings.redis_url:
        try:
            counter = RedisRerankUsageCounter(
                redis_url=settings.redis_url,
                daily_limit=settings.rerank_daily_limit,
            )
            await counter.connect()
            logger.info("rerank_usage_counter_initialized", backend="redis")
            return counter
        except Exception as e:
            logger.warning(
                "redis_usage_counter_failed_fallback_to_memory",
                error=str(e),
            )

    logger.info("rerank_usage_counter_initialized", backend="in_memory")
    return InMemoryRerankUsageCounter(daily_limit=settings.rerank_daily_limit)
