"""NUT backend implementation.

This module provides the :class:`UpsBackend` implementation for a UPS managed
by Network UPS Tools. It combines:
- ``upsc`` / ``upscmd`` through :class:`NutClient` for telemetry and commands
- sysfs USB enumeration for physical presence
- psutil process lookups for driver/daemon liveness
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..adapters.host import process_running, usb_device_present
from ..adapters.nut import NutClient
from ..config import KeeperConfig
from ..core.errors import CommandDeliveryError
from ..core.models import CommandResult, TelemetrySnapshot, UpsCommand, freeze_snapshot
from ..core.protocols import UpsBackend

LOGGER = logging.getLogger(__name__)


class NutBackend(UpsBackend):
    """UpsBackend implementation for a single NUT-managed UPS."""

    def __init__(
        self,
        config: KeeperConfig,
        *,
        client: Optional[NutClient] = None,
    ) -> None:
        """Initialize the NUT backend.

        Args:
            config: Application configuration.
            client: Optional pre-configured NutClient (for testing).
        """
        self._ups = config.ups
        self._client = client or NutClient(config.ups, config.nut)

    @property
    def device_name(self) -> str:
        return self._ups.name

    @property
    def client(self) -> NutClient:
        return self._client

    async def fetch_telemetry(self) -> Optional[TelemetrySnapshot]:
        variables = await self._client.list_variables()
        if not variables:
            return None
        return freeze_snapshot(variables)

    async def is_device_present(self) -> bool:
        return await asyncio.to_thread(
            usb_device_present,
            self._ups.usb_vendor_id,
            self._ups.usb_product_id,
            root=self._ups.sysfs_root,
        )

    async def is_process_running(self, name: str) -> bool:
        return await asyncio.to_thread(process_running, name)

    async def start_driver_if_not_started(self) -> None:
        if await self.is_process_running(self._ups.driver_process):
            LOGGER.debug("Driver %s already running", self._ups.driver_process)
            return
        await self._client.start_driver()
        LOGGER.info("Started UPS driver for %s", self._ups.name)

    async def restart_daemon(self) -> None:
        await self._client.restart_daemon()
        LOGGER.info("Requested %s restart", self._ups.daemon_process)

    async def start_daemon_if_not_started(self) -> None:
        if await self.is_process_running(self._ups.daemon_process):
            LOGGER.debug("Daemon %s already running", self._ups.daemon_process)
            return
        await self._client.start_daemon()
        LOGGER.info("Started %s", self._ups.daemon_process)

    async def send_instant_command(
        self, command: UpsCommand, device: Optional[str] = None
    ) -> CommandResult:
        target = device or self.device_name
        try:
            await self._client.instant_command(command.value, target)
        except CommandDeliveryError as exc:
            return CommandResult(
                command=command, device=target, success=False, detail=str(exc)
            )
        LOGGER.debug("Instant command %s delivered to %s", command.value, target)
        return CommandResult(command=command, device=target, success=True)
