"""systemd-logind screen lock watcher.

Follows ``dbus-monitor`` on the system bus and forwards ``Lock``/``Unlock``
signals of ``org.freedesktop.login1.Session`` to a :class:`PowerEventHub`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional, Sequence

from ..control.power_events import PowerEventHub

LOGGER = logging.getLogger(__name__)

LOGIND_MATCH = "type='signal',interface='org.freedesktop.login1.Session'"
DEFAULT_MONITOR_ARGV = ("dbus-monitor", "--system", LOGIND_MATCH)


def parse_signal_member(line: str) -> Optional[str]:
    """Return ``"Lock"``/``"Unlock"`` for logind signal header lines."""
    if not line.startswith("signal "):
        return None
    if "interface=org.freedesktop.login1.Session" not in line:
        return None
    for part in line.split(";"):
        key, _, value = part.strip().partition("=")
        if key == "member" and value in ("Lock", "Unlock"):
            return value
    return None


class LogindWatcher:
    """Runs ``dbus-monitor`` and translates signals into power events."""

    def __init__(
        self,
        hub: PowerEventHub,
        *,
        argv: Sequence[str] = DEFAULT_MONITOR_ARGV,
        restart_delay: float = 5.0,
    ) -> None:
        self._hub = hub
        self._argv = tuple(argv)
        self._restart_delay = restart_delay
        self._task: Optional[asyncio.Task[None]] = None
        self._process: Optional[asyncio.subprocess.Process] = None

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="logind-watcher")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def handle_line(self, line: str) -> None:
        member = parse_signal_member(line)
        if member == "Lock":
            await self._hub.fire_locked()
        elif member == "Unlock":
            await self._hub.fire_unlocked()

    async def _run(self) -> None:
        while True:
            try:
                await self._follow()
            except asyncio.CancelledError:
                raise
            except FileNotFoundError:
                LOGGER.error("%s not found; logind power events disabled", self._argv[0])
                return
            except Exception:
                LOGGER.exception("logind watcher failed")
            await asyncio.sleep(self._restart_delay)

    async def _follow(self) -> None:
        process = await asyncio.create_subprocess_exec(
            *self._argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        self._process = process
        LOGGER.info("Watching logind session lock signals")
        try:
            assert process.stdout is not None
            async for raw in process.stdout:
                await self.handle_line(raw.decode("utf-8", errors="replace").strip())
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                await process.wait()
            self._process = None
        LOGGER.warning("dbus-monitor exited with status %s", process.returncode)
