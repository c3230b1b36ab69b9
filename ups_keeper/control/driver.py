"""Driver supervision: keep the NUT driver running while the UPS is attached."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.errors import DaemonStartError
from ..core.protocols import UpsBackend
from ..health import HealthReporter

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DriverSupervisionState:
    initialized: bool = False


class DriverSupervisor:
    """Starts the driver and restarts the daemon when the UPS shows up.

    ``initialized`` tracks live USB presence whenever the start branch is not
    taken, so unplugging and replugging the device re-arms exactly one more
    start+restart pair.
    """

    HEALTH_COMPONENT = "driver"

    def __init__(
        self,
        backend: UpsBackend,
        *,
        driver_process: str,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._backend = backend
        self._driver_process = driver_process
        self._health = health
        self._state = DriverSupervisionState()

    @property
    def state(self) -> DriverSupervisionState:
        return self._state

    async def tick(self) -> DriverSupervisionState:
        try:
            detected = await self._backend.is_device_present()
            needs_start = (
                detected
                and not self._state.initialized
                and not await self._backend.is_process_running(self._driver_process)
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Driver supervision check failed: %s", exc)
            await self._report(False, f"check failed: {exc}")
            return self._state

        if not needs_start:
            if detected != self._state.initialized:
                LOGGER.info(
                    "UPS USB device %s", "detected" if detected else "disconnected"
                )
            self._state = DriverSupervisionState(initialized=detected)
            await self._report(
                True, "device present" if detected else "device not present"
            )
            return self._state

        LOGGER.info("USB device was detected. Starting driver if not started...")
        try:
            await self._backend.start_driver_if_not_started()
            await self._backend.restart_daemon()
        except asyncio.CancelledError:
            raise
        except DaemonStartError as exc:
            LOGGER.error("Failed to start UPS driver: %s", exc)
            await self._report(False, f"start failed: {exc}")
            return self._state

        self._state = DriverSupervisionState(initialized=True)
        LOGGER.info("UPS driver started and daemon restarted")
        await self._report(True, "driver started")
        return self._state

    async def _report(self, healthy: bool, detail: str) -> None:
        if self._health is not None:
            await self._health.update(self.HEALTH_COMPONENT, healthy, detail)
