"""Tests for per-key locks."""

import asyncio

import pytest

from core.locks import KeyedLocks


@pytest.mark.asyncio
async def test_same_key_is_serialised_and_released() -> None:
    locks = KeyedLocks()
    active = 0
    peak = 0

    async def worker() -> None:
        nonlocal active, peak
        async with locks.hold("9788498381498"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(3)))

    assert peak == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_is_dropped_after_an_error() -> None:
    locks = KeyedLocks()

    with pytest.raises(RuntimeError):
        async with locks.hold(1):
            raise RuntimeError("boom")

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_distinct_keys_do_not_block_each_other() -> None:
    locks = KeyedLocks()
    entered = asyncio.Event()

    async def first() -> None:
        async with locks.hold("a"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def second() -> None:
        async with locks.hold("b"):
            entered.set()

    await asyncio.gather(first(), second())

    assert len(locks) == 0
