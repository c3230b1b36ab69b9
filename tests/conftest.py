from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from ups_keeper.config import KeeperConfig, load_config
from ups_keeper.core import (
    CommandResult,
    TelemetrySnapshot,
    UpsCommand,
    freeze_snapshot,
)


class StubBackend:
    """In-memory UpsBackend recording every side effect."""

    def __init__(
        self,
        *,
        telemetry: Optional[Dict[str, object]] = None,
        present: bool = False,
        running: Optional[Dict[str, bool]] = None,
    ) -> None:
        self.telemetry = telemetry
        self.fetch_error: Optional[Exception] = None
        self.present = present
        self.presence_error: Optional[Exception] = None
        self.running: Dict[str, bool] = dict(running or {})
        self.start_error: Optional[Exception] = None
        self.command_failure: Optional[str] = None
        self.calls: List[str] = []
        self.commands: List[Tuple[UpsCommand, Optional[str]]] = []

    @property
    def device_name(self) -> str:
        return "ups"

    async def fetch_telemetry(self) -> Optional[TelemetrySnapshot]:
        self.calls.append("fetch")
        if self.fetch_error is not None:
            raise self.fetch_error
        if not self.telemetry:
            return None
        return freeze_snapshot(self.telemetry)

    async def is_device_present(self) -> bool:
        if self.presence_error is not None:
            raise self.presence_error
        return self.present

    async def is_process_running(self, name: str) -> bool:
        return self.running.get(name, False)

    async def start_driver_if_not_started(self) -> None:
        self.calls.append("start_driver")
        if self.start_error is not None:
            raise self.start_error

    async def restart_daemon(self) -> None:
        self.calls.append("restart_daemon")

    async def start_daemon_if_not_started(self) -> None:
        self.calls.append("start_daemon")
        if self.start_error is not None:
            raise self.start_error

    async def send_instant_command(
        self, command: UpsCommand, device: Optional[str] = None
    ) -> CommandResult:
        self.commands.append((command, device))
        if self.command_failure is not None:
            return CommandResult(
                command=command,
                device=device or self.device_name,
                success=False,
                detail=self.command_failure,
            )
        return CommandResult(command=command, device=device or self.device_name, success=True)


class StubPolicy:
    def __init__(self, *, auto_fan: bool = True, auto_shutdown: bool = False) -> None:
        self.auto_fan = auto_fan
        self.auto_shutdown = auto_shutdown

    def auto_fan_enabled(self) -> bool:
        return self.auto_fan

    def auto_shutdown_enabled(self) -> bool:
        return self.auto_shutdown


def operational_telemetry(**overrides: object) -> Dict[str, object]:
    """A full ``upsc`` reading of an idle Powerware unit on mains."""
    values: Dict[str, object] = {
        "battery.voltage": 40.0,
        "battery.runtime": 2820,
        "device.mfr": "EATON",
        "device.model": "5115",
        "device.type": "ups",
        "driver.name": "bcmxcp_usb",
        "input.voltage": 230,
        "outlet.1.status": "on",
        "outlet.2.status": "on",
        "output.voltage": 230,
        "ups.load": 12,
        "ups.status": "OL",
    }
    values.update(overrides)
    return values


@pytest.fixture
def backend() -> StubBackend:
    return StubBackend()


@pytest.fixture
def keeper_config(tmp_path: Path) -> KeeperConfig:
    return load_config(tmp_path / "ups-keeper.cfg")
