"""Unit tests for rerank usage counters."""

from datetime import date

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from answerdesk.retrieval.usage import (
    InMemoryRerankUsageCounter,
    RedisRerankUsageCounter,
    get_rerank_usage_counter,
)

from tests.conftest import FixedClock


class TestInMemoryRerankUsageCounter:
    """Test in-memory usage counter."""

    @pytest.fixture
    def clock(self):
        return FixedClock(date(2024, 3, 1))

    @pytest.fixture
    def counter(self, clock):
        return InMemoryRerankUsageCounter(daily_limit=100, clock=clock)

    @pytest.mark.asyncio
    async def test_accumulates_units(self, counter):
        await counter.record(3)
        await counter.record(4)

        snapshot = await counter.snapshot()

        assert snapshot.date == "2024-03-01"
        assert snapshot.units_used == 7
        assert snapshot.remaining == 93

    @pytest.mark.asyncio
    async def test_resets_on_new_day(self, counter, clock):
        """Usage restarts at zero when the day rolls over."""
        await counter.record(40)
        clock.today = date(2024, 3, 2)

        snapshot = await counter.snapshot()

        assert snapshot.date == "2024-03-02"
        assert snapshot.units_used == 0
        assert snapshot.remaining == 100

    @pytest.mark.asyncio
    async def test_reset_if_new_day_reports_roll(self, counter, clock):
        await counter.reset_if_new_day()
        assert await counter.reset_if_new_day() is False

        clock.today = date(2024, 3, 2)
        assert await counter.reset_if_new_day() is True

    @pytest.mark.asyncio
    async def test_ignores_non_positive_units(self, counter):
        await counter.record(0)
        await counter.record(-5)

        assert (await counter.snapshot()).units_used == 0

    @pytest.mark.asyncio
    async def test_remaining_never_negative(self, counter):
        await counter.record(150)

        assert (await counter.snapshot()).remaining == 0

    @pytest.mark.asyncio
    async def test_no_limit(self, clock):
        counter = InMemoryRerankUsageCounter(clock=clock)
        await counter.record(5)

        snapshot = await counter.snapshot()

        assert snapshot.daily_limit is None
        assert snapshot.remaining is None


class TestRedisRerankUsageCounter:
    """Test Redis usage counter against a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[5, True])
        client.pipeline.return_value = pipe
        client.get = AsyncMock(return_value="5")
        client.ping = AsyncMock(return_value=True)
        return client

    @pytest.fixture
    async def counter(self, redis_client):
        counter = RedisRerankUsageCounter(
            redis_url="redis://localhost:6379",
            daily_limit=10,
            clock=FixedClock(date(2024, 3, 1)),
        )
        with patch("answerdesk.retrieval.usage.redis.from_url", return_value=redis_client):
            await counter.connect()
        return counter

    @pytest.mark.asyncio
    async def test_record_increments_day_key(self, counter, redis_client):
        await counter.record(5)

        pipe = redis_client.pipeline.return_value
        pipe.incrby.assert_called_once_with("answerdesk:rerank_usage:2024-03-01", 5)
        pipe.expire.assert_called_once()

    @pytest.mark.asyncio
    async def test_snapshot_reads_day_key(self, counter, redis_client):
        snapshot = await counter.snapshot()

        redis_client.get.assert_awaited_once_with("answerdesk:rerank_usage:2024-03-01")
        assert snapshot.units_used == 5
        assert snapshot.remaining == 5

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        counter = RedisRerankUsageCounter(redis_url="redis://localhost:6379")

        with pytest.raises(RuntimeError):
            await counter.snapshot()


class TestUsageCounterFactory:
    """Test usage counter factory."""

    @pytest.mark.asyncio
    async def test_returns_in_memory_when_no_redis(self):
        mock_settings = MagicMock()
        mock_settings.redis_url = None
        mock_settings.rerank_daily_limit = 50

        counter = await get_rerank_usage_counter(mock_settings)

        assert isinstance(counter, InMemoryRerankUsageCounter)
        assert counter.daily_limit == 50

    @pytest.mark.asyncio
    async def test_falls_back_when_redis_unreachable(self):
        """Connection failure falls back to in-memory."""
        mock_settings = MagicMock()
        mock_settings.redis_url = "redis://unreachable:6379"
        mock_settings.rerank_daily_limit = None

        with patch.object(
            RedisRerankUsageCounter,
            "connect",
            AsyncMock(side_effect=ConnectionError("refused")),
        ):
            counter = await get_rerank_usage_counter(mock_settings)

        assert isinstance(counter, InMemoryRerankUsageCounter)
