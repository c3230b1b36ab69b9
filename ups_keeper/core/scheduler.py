"""Tick scheduler driving the periodic supervisory tasks.

Each registered task fires on its own fixed period. A tick's work runs as a
separate asyncio task so the next tick is scheduled on time even when the
previous one is still waiting on the device.

Design principles:
- Declarative task specs rather than imperative loops
- A tick that is still running causes the next tick of the same task to be
  skipped, never queued
- Every tick is bounded by a timeout and isolated: exceptions are logged and
  never escape into the scheduler
- Graceful cancellation on shutdown
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

LOGGER = logging.getLogger(__name__)

TickCallable = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class TickSpec:
    """Declarative definition for a periodic task.

    Attributes:
        name: Human-readable name used in logs and statistics
        tick: Coroutine function executed once per period
        interval_seconds: Seconds between tick starts
        timeout_seconds: Upper bound for a single tick; ``None`` disables it
    """

    name: str
    tick: TickCallable
    interval_seconds: float = 1.0
    timeout_seconds: Optional[float] = None


@dataclass
class TickStats:
    """Counters describing how a periodic task behaved so far."""

    started: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    timed_out: int = 0


@dataclass
class _TaskRuntime:
    spec: TickSpec
    stats: TickStats = field(default_factory=TickStats)
    inflight: Optional[asyncio.Task[None]] = None
    loop_task: Optional[asyncio.Task[None]] = None


class TickScheduler:
    """Runs independent periodic tasks on a single event loop."""

    def __init__(self, specs: Optional[Iterable[TickSpec]] = None) -> None:
        self._runtimes: Dict[str, _TaskRuntime] = {}
        self._stop_event: Optional[asyncio.Event] = None
        for spec in specs or ():
            self.add(spec)

    def add(self, spec: TickSpec) -> None:
        if spec.name in self._runtimes:
            raise ValueError(f"duplicate periodic task: {spec.name}")
        if spec.interval_seconds <= 0:
            raise ValueError(f"interval for {spec.name} must be > 0")
        self._runtimes[spec.name] = _TaskRuntime(spec=spec)

    @property
    def running(self) -> bool:
        return any(
            runtime.loop_task is not None and not runtime.loop_task.done()
            for runtime in self._runtimes.values()
        )

    def stats(self, name: str) -> TickStats:
        return self._runtimes[name].stats

    def names(self) -> List[str]:
        return list(self._runtimes)

    def start(self) -> None:
        """Start all periodic tasks."""
        if self.running:
            return

        self._stop_event = asyncio.Event()
        for runtime in self._runtimes.values():
            runtime.loop_task = asyncio.create_task(
                self._run(runtime), name=f"tick:{runtime.spec.name}"
            )
        LOGGER.debug("Tick scheduler started: %s", ", ".join(self._runtimes))

    async def stop(self) -> None:
        """Stop all periodic tasks and cancel any tick still in flight."""
        if self._stop_event is not None:
            self._stop_event.set()

        tasks: List[asyncio.Task[None]] = []
        for runtime in self._runtimes.values():
            for task in (runtime.loop_task, runtime.inflight):
                if task is not None and not task.done():
                    task.cancel()
                    tasks.append(task)

        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        for runtime in self._runtimes.values():
            runtime.loop_task = None
            runtime.inflight = None
        LOGGER.debug("Tick scheduler stopped")

    async def run_once(self, name: str) -> None:
        """Execute one tick of ``name`` inline, with the usual isolation."""
        await self._execute(self._runtimes[name])

    async def _run(self, runtime: _TaskRuntime) -> None:
        assert self._stop_event is not None
        loop = asyncio.get_running_loop()
        interval = runtime.spec.interval_seconds
        next_at = loop.time()

        while not self._stop_event.is_set():
            if runtime.inflight is not None and not runtime.inflight.done():
                runtime.stats.skipped += 1
                LOGGER.debug(
                    "Skipping %s tick; previous tick still running", runtime.spec.name
                )
            else:
                runtime.inflight = asyncio.create_task(self._execute(runtime))

            next_at += interval
            delay = next_at - loop.time()
            if delay < 0:
                # Fell behind (suspend, slow host): realign instead of bursting.
                next_at = loop.time()
                delay = 0.0

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                continue

    async def _execute(self, runtime: _TaskRuntime) -> None:
        spec = runtime.spec
        runtime.stats.started += 1
        try:
            if spec.timeout_seconds is not None and spec.timeout_seconds > 0:
                await asyncio.wait_for(spec.tick(), timeout=spec.timeout_seconds)
            else:
                await spec.tick()
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            runtime.stats.timed_out += 1
            LOGGER.warning(
                "%s tick exceeded %.1fs and was cancelled",
                spec.name,
                spec.timeout_seconds,
            )
        except Exception:
            runtime.stats.failed += 1
            LOGGER.exception("%s tick failed", spec.name)
        else:
            runtime.stats.completed += 1
