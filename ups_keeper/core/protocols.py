"""Protocol definitions for the UPS collaborators consumed by the control loop.

The control loop never talks to NUT, USB or the desktop session directly. It
depends on the contracts below, which keeps every controller testable with
small in-memory stubs and lets the daemon transport be swapped without touching
the controllers.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

from .models import CommandResult, TelemetrySnapshot, UpsCommand

PowerEventCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class UpsBackend(Protocol):
    """Contract for the device/daemon side of the supervisor.

    Implementations own their transport (CLI tools, sockets, ...) and must
    translate transport failures into the error taxonomy in
    :mod:`ups_keeper.core.errors`.
    """

    @property
    def device_name(self) -> str:
        """Name of the supervised UPS as known to the daemon."""
        ...

    async def fetch_telemetry(self) -> Optional[TelemetrySnapshot]:
        """Return the raw variables reported by the daemon.

        Returns ``None`` when the daemon answered but had no data. Raises
        :class:`TransportError` when the daemon could not be reached.
        """
        ...

    async def is_device_present(self) -> bool:
        """Return True when the supported UPS is physically attached."""
        ...

    async def is_process_running(self, name: str) -> bool:
        """Return True when a process with ``name`` is alive on the host."""
        ...

    async def start_driver_if_not_started(self) -> None:
        """Start the UPS driver. Starting a running driver is a no-op.

        Raises:
            DaemonStartError: If the driver could not be started.
        """
        ...

    async def restart_daemon(self) -> None:
        """Ask the UPS daemon to restart/reload so it picks up the driver.

        Raises:
            DaemonStartError: If the restart request failed.
        """
        ...

    async def start_daemon_if_not_started(self) -> None:
        """Start the UPS daemon when it is not already running.

        Raises:
            DaemonStartError: If the daemon could not be started.
        """
        ...

    async def send_instant_command(
        self, command: UpsCommand, device: Optional[str] = None
    ) -> CommandResult:
        """Deliver an instant command. Never raises for delivery failures."""
        ...


class PowerEventSource(Protocol):
    """Source of host power-state transitions (screen lock/unlock)."""

    def subscribe(
        self, on_locked: PowerEventCallback, on_unlocked: PowerEventCallback
    ) -> None:
        """Route lock/unlock edges to the given coroutine callbacks."""
        ...


class PolicySource(Protocol):
    """Operator automation preferences."""

    def auto_fan_enabled(self) -> bool:
        ...

    def auto_shutdown_enabled(self) -> bool:
        ...
