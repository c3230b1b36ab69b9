"""Screen lock/unlock reactions."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from ..core.models import CommandResult, UpsCommand
from ..core.protocols import PolicySource, PowerEventCallback, UpsBackend
from ..health import HealthReporter

LOGGER = logging.getLogger(__name__)


class PowerEventHub:
    """In-process power-event source.

    Transports (HTTP endpoint, MQTT topic, logind watcher) call
    :meth:`fire_locked` / :meth:`fire_unlocked`; subscribers receive each edge
    exactly once. A failing subscriber does not prevent delivery to the rest.
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[PowerEventCallback, PowerEventCallback]] = []

    def subscribe(
        self, on_locked: PowerEventCallback, on_unlocked: PowerEventCallback
    ) -> None:
        self._subscribers.append((on_locked, on_unlocked))

    async def fire_locked(self) -> None:
        await self._dispatch("screen-locked", 0)

    async def fire_unlocked(self) -> None:
        await self._dispatch("screen-unlocked", 1)

    async def _dispatch(self, name: str, index: int) -> None:
        LOGGER.debug("Power event: %s", name)
        for callbacks in list(self._subscribers):
            try:
                await callbacks[index]()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Power event subscriber failed for %s", name)


class PowerEventReactor:
    """Issues shutdown/resume commands on screen lock/unlock."""

    HEALTH_COMPONENT = "commands"

    def __init__(
        self,
        backend: UpsBackend,
        policy: PolicySource,
        *,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._backend = backend
        self._policy = policy
        self._health = health

    def attach(self, source) -> None:
        source.subscribe(self.on_screen_locked, self.on_screen_unlocked)

    async def on_screen_locked(self) -> Optional[CommandResult]:
        if not self._policy.auto_shutdown_enabled():
            return None
        LOGGER.info("Screen locked; sending %s", UpsCommand.SHUTDOWN_STAYOFF.value)
        return await self._send(UpsCommand.SHUTDOWN_STAYOFF)

    async def on_screen_unlocked(self) -> Optional[CommandResult]:
        if not self._policy.auto_shutdown_enabled():
            return None
        LOGGER.info("Screen unlocked; sending %s", UpsCommand.LOAD_ON.value)
        return await self._send(UpsCommand.LOAD_ON)

    async def _send(self, command: UpsCommand) -> CommandResult:
        result = await self._backend.send_instant_command(
            command, self._backend.device_name
        )
        if not result.success:
            LOGGER.error(
                "Instant command %s failed: %s", command.value, result.detail
            )
        if self._health is not None:
            await self._health.update(
                self.HEALTH_COMPONENT,
                result.success,
                None if result.success else f"{command.value}: {result.detail}",
            )
        return result
