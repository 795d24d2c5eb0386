"""Tests for the cron-driven pipeline scheduler."""

import asyncio
from datetime import datetime, timezone

import pytest

from core.scheduler import PipelineScheduler
from utils.error_handling import ConfigurationError


NOW = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def _scheduler(**kwargs) -> PipelineScheduler:
    return PipelineScheduler(clock=lambda: NOW, **kwargs)


async def _noop() -> None:
    return None


def test_next_run_follows_cron_expression() -> None:
    scheduler = _scheduler()

    monitor = scheduler.add_job("monitor_items", "5,35 * * * *", _noop)
    lists = scheduler.add_job("sync_lists", "10 */2 * * *", _noop)

    assert monitor.next_run == datetime(2024, 5, 1, 10, 5, tzinfo=timezone.utc)
    assert lists.next_run == datetime(2024, 5, 1, 10, 10, tzinfo=timezone.utc)


def test_invalid_cron_expression_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        _scheduler().add_job("broken", "every five minutes", _noop)


@pytest.mark.asyncio
async def test_failing_run_is_recorded_not_raised() -> None:
    async def _boom() -> None:
        raise RuntimeError("database unavailable")

    scheduler = _scheduler()
    scheduler.add_job("monitor_items", "5,35 * * * *", _boom)

    assert await scheduler.run_job("monitor_items") is True

    job = scheduler.jobs["monitor_items"]
    assert job.last_status.startswith("failed: RuntimeError")
    assert job.run_count == 1
    assert job.running is False


@pytest.mark.asyncio
async def test_job_never_overlaps_itself() -> None:
    release = asyncio.Event()
    started = asyncio.Event()

    async def _slow() -> None:
        started.set()
        await release.wait()

    scheduler = _scheduler()
    scheduler.add_job("sync_lists", "10 */2 * * *", _slow)

    first = asyncio.create_task(scheduler.run_job("sync_lists"))
    await started.wait()
    second = await scheduler.run_job("sync_lists")
    release.set()

    assert second is False
    assert await first is True
    assert scheduler.jobs["sync_lists"].skipped_runs == 1
    assert scheduler.jobs["sync_lists"].run_count == 1


@pytest.mark.asyncio
async def test_loop_sleeps_until_next_tick_and_keeps_running_after_failure() -> None:
    delays: list[float] = []
    calls = 0

    async def _fake_sleep(delay: float) -> None:
        delays.append(delay)
        if len(delays) > 2:
            raise asyncio.CancelledError

    async def _flaky() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("fetch gate closed")

    scheduler = _scheduler(sleep=_fake_sleep)
    job = scheduler.add_job("monitor_items", "5,35 * * * *", _flaky)

    with pytest.raises(asyncio.CancelledError):
        await scheduler._job_loop(job)

    assert delays == [300.0, 300.0, 300.0]
    assert calls == 2


@pytest.mark.asyncio
async def test_start_and_stop() -> None:
    scheduler = _scheduler()
    scheduler.add_job("monitor_items", "5,35 * * * *", _noop)

    scheduler.start()
    assert scheduler.is_running
    await scheduler.stop()

    assert not scheduler.is_running
    assert scheduler.status()[0]["name"] == "monitor_items"
