"""
Unit tests for the crawl-delay limiter.

Uses a fake clock so the spacing between request starts is measured
without real waiting.
"""
import asyncio

import pytest

from siteaudit.services.rate_limiter import CrawlRateLimiter


class TestCrawlRateLimiter:
    """Test start-to-start spacing of requests to one host."""

    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self, fake_clock):
        """The first slot is granted immediately."""
        limiter = CrawlRateLimiter(500, clock=fake_clock, sleep=fake_clock.sleep)

        async with limiter.slot():
            pass

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_consecutive_requests_are_spaced(self, fake_clock):
        """Each request starts at least delay_ms after the previous one."""
        limiter = CrawlRateLimiter(500, clock=fake_clock, sleep=fake_clock.sleep)
        starts = []

        for _ in range(3):
            async with limiter.slot():
                starts.append(fake_clock.now)

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert all(gap >= 0.5 for gap in gaps)

    @pytest.mark.asyncio
    async def test_elapsed_time_counts_towards_delay(self, fake_clock):
        """Only the remainder of the delay is slept."""
        limiter = CrawlRateLimiter(500, clock=fake_clock, sleep=fake_clock.sleep)

        async with limiter.slot():
            fake_clock.now += 0.3  # request took 300ms
        async with limiter.slot():
            pass

        assert fake_clock.sleeps == [pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_no_wait_after_long_request(self, fake_clock):
        """A request longer than the delay needs no extra sleep."""
        limiter = CrawlRateLimiter(500, clock=fake_clock, sleep=fake_clock.sleep)

        async with limiter.slot():
            fake_clock.now += 2.0
        async with limiter.slot():
            pass

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_are_serialized(self, fake_clock):
        """Concurrent slots are granted one at a time with spacing."""
        limiter = CrawlRateLimiter(500, clock=fake_clock, sleep=fake_clock.sleep)
        starts = []

        async def request():
            async with limiter.slot():
                starts.append(fake_clock.now)
                await asyncio.sleep(0)

        await asyncio.gather(*(request() for _ in range(4)))

        assert len(starts) == 4
        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert all(gap >= 0.5 for gap in gaps)

    def test_raise_delay_only_increases(self):
        """Robots Crawl-delay can raise but never lower the delay."""
        limiter = CrawlRateLimiter(500)

        limiter.raise_delay(2000)
        assert limiter.delay_ms == 2000

        limiter.raise_delay(100)
        assert limiter.delay_ms == 2000

        limiter.raise_delay(None)
        assert limiter.delay_ms == 2000

    def test_negative_delay_is_zero(self):
        assert CrawlRateLimiter(-5).delay_ms == 0
