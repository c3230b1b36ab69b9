"""Tests for the tick scheduler."""

import asyncio

import pytest

from ups_keeper.core import TickScheduler, TickSpec


@pytest.mark.asyncio
async def test_ticks_run_repeatedly_until_stopped():
    calls = 0

    async def tick() -> None:
        nonlocal calls
        calls += 1

    scheduler = TickScheduler([TickSpec("poll", tick, interval_seconds=0.01)])
    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    assert calls >= 3
    assert scheduler.running is False
    assert scheduler.stats("poll").completed == calls


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped():
    release = asyncio.Event()
    started = 0

    async def slow() -> None:
        nonlocal started
        started += 1
        await release.wait()

    scheduler = TickScheduler([TickSpec("slow", slow, interval_seconds=0.01)])
    scheduler.start()
    await asyncio.sleep(0.08)
    await scheduler.stop()

    assert started == 1
    assert scheduler.stats("slow").skipped >= 3


@pytest.mark.asyncio
async def test_failing_tick_is_logged_and_loop_continues(caplog):
    calls = 0

    async def broken() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("device exploded")

    scheduler = TickScheduler([TickSpec("broken", broken, interval_seconds=0.01)])
    with caplog.at_level("ERROR"):
        scheduler.start()
        await asyncio.sleep(0.06)
        await scheduler.stop()

    assert calls >= 2
    assert scheduler.stats("broken").failed == calls
    assert "broken tick failed" in caplog.text


@pytest.mark.asyncio
async def test_hung_tick_times_out():
    async def hung() -> None:
        await asyncio.sleep(10)

    scheduler = TickScheduler(
        [TickSpec("hung", hung, interval_seconds=1.0, timeout_seconds=0.01)]
    )

    await scheduler.run_once("hung")

    assert scheduler.stats("hung").timed_out == 1
    assert scheduler.stats("hung").completed == 0


@pytest.mark.asyncio
async def test_independent_tasks_do_not_block_each_other():
    release = asyncio.Event()
    fast_calls = 0

    async def slow() -> None:
        await release.wait()

    async def fast() -> None:
        nonlocal fast_calls
        fast_calls += 1

    scheduler = TickScheduler(
        [
            TickSpec("slow", slow, interval_seconds=0.01),
            TickSpec("fast", fast, interval_seconds=0.01),
        ]
    )
    scheduler.start()
    await asyncio.sleep(0.08)
    await scheduler.stop()

    assert fast_calls >= 3
    assert scheduler.names() == ["slow", "fast"]


def test_duplicate_and_invalid_specs_are_rejected():
    async def tick() -> None:
        return None

    scheduler = TickScheduler([TickSpec("poll", tick)])

    with pytest.raises(ValueError):
        scheduler.add(TickSpec("poll", tick))
    with pytest.raises(ValueError):
        scheduler.add(TickSpec("other", tick, interval_seconds=0))
