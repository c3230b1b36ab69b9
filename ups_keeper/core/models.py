"""Domain models for telemetry and commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

Scalar = Union[int, float, str]
TelemetrySnapshot = Mapping[str, Scalar]

EMPTY_SNAPSHOT: TelemetrySnapshot = MappingProxyType({})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def freeze_snapshot(values: Mapping[str, Scalar]) -> TelemetrySnapshot:
    """Return a read-only copy of ``values`` preserving key order."""
    return MappingProxyType(dict(values))


class SnapshotClassification(str, Enum):
    """Outcome of a single telemetry poll."""

    NO_DATA = "no_data"
    INITIALIZING = "initializing"
    OPERATIONAL = "operational"


class UpsCommand(str, Enum):
    """NUT instant commands issued by the controllers."""

    OUTLET_1_LOAD_ON = "outlet.1.load.on"
    OUTLET_1_LOAD_OFF = "outlet.1.load.off"
    OUTLET_2_LOAD_ON = "outlet.2.load.on"
    OUTLET_2_LOAD_OFF = "outlet.2.load.off"
    SHUTDOWN_STAYOFF = "shutdown.stayoff"
    LOAD_ON = "load.on"
    LOAD_OFF = "load.off"

    @classmethod
    def outlet_load(cls, outlet: int, on: bool) -> "UpsCommand":
        value = f"outlet.{outlet}.load.{'on' if on else 'off'}"
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(f"unsupported outlet command: {value}") from exc


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Outcome of an instant command delivery attempt."""

    command: UpsCommand
    device: str
    success: bool
    detail: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command.value,
            "device": self.device,
            "success": self.success,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
        }
