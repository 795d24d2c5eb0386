"""Tests for the shared rate-limited fetch gate."""

import asyncio
import time

import httpx
import pytest

from network.rate_limited_fetcher import RateLimitedFetcher
from utils.error_handling import FetchFailure


class _ConcurrencyProbe:
    def __init__(self, hold: float = 0.01) -> None:
        self.hold = hold
        self.active = 0
        self.peak = 0
        self.dispatch_times: list[float] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.dispatch_times.append(time.monotonic())
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.hold)
        finally:
            self.active -= 1
        return httpx.Response(200, text=f"<html>{request.url.path}</html>")


@pytest.mark.asyncio
async def test_never_exceeds_max_concurrent_and_queues_the_rest() -> None:
    probe = _ConcurrencyProbe(hold=0.02)
    transport = httpx.MockTransport(probe.handler)

    async with RateLimitedFetcher(max_concurrent=5, min_interval=0, transport=transport) as fetcher:
        bodies = await asyncio.gather(
            *(fetcher.fetch_text(f"https://books.example.com/{i}") for i in range(20))
        )

    assert len(bodies) == 20
    assert probe.peak <= 5
    assert fetcher.metrics.max_in_flight <= 5
    assert fetcher.metrics.successful_requests == 20
    assert fetcher.in_flight == 0


@pytest.mark.asyncio
async def test_dispatches_are_spaced_by_min_interval() -> None:
    probe = _ConcurrencyProbe(hold=0)
    transport = httpx.MockTransport(probe.handler)

    async with RateLimitedFetcher(max_concurrent=5, min_interval=0.05, transport=transport) as fetcher:
        await asyncio.gather(*(fetcher.fetch_text(f"https://books.example.com/{i}") for i in range(4)))

    times = sorted(probe.dispatch_times)
    gaps = [later - earlier for earlier, later in zip(times, times[1:])]
    assert all(gap >= 0.04 for gap in gaps)


@pytest.mark.asyncio
async def test_non_2xx_becomes_fetch_failure() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))

    async with RateLimitedFetcher(min_interval=0, transport=transport) as fetcher:
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch_text("https://books.example.com/missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.url == "https://books.example.com/missing"
    assert fetcher.metrics.failed_requests == 1


@pytest.mark.asyncio
async def test_timeout_becomes_fetch_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with RateLimitedFetcher(min_interval=0, transport=httpx.MockTransport(handler)) as fetcher:
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch_text("https://books.example.com/slow")

    assert exc_info.value.status_code is None
    assert fetcher.in_flight == 0


@pytest.mark.asyncio
async def test_fetch_outside_context_manager_raises() -> None:
    fetcher = RateLimitedFetcher()

    with pytest.raises(RuntimeError):
        await fetcher.fetch_text("https://books.example.com/")


def test_rejects_invalid_limits() -> None:
    with pytest.raises(ValueError):
        RateLimitedFetcher(max_concurrent=0)
    with pytest.raises(ValueError):
        RateLimitedFetcher(min_interval=-1)
