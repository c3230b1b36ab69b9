"""Core primitives for ups-keeper."""

from .errors import (
    CommandDeliveryError,
    ConfigurationError,
    DaemonStartError,
    MalformedTelemetry,
    TransportError,
    UpsKeeperError,
)
from .models import (
    EMPTY_SNAPSHOT,
    CommandResult,
    Scalar,
    SnapshotClassification,
    TelemetrySnapshot,
    UpsCommand,
    freeze_snapshot,
)
from .protocols import PolicySource, PowerEventCallback, PowerEventSource, UpsBackend
from .scheduler import TickScheduler, TickSpec, TickStats

__all__ = [
    "CommandDeliveryError",
    "CommandResult",
    "ConfigurationError",
    "DaemonStartError",
    "EMPTY_SNAPSHOT",
    "MalformedTelemetry",
    "PolicySource",
    "PowerEventCallback",
    "PowerEventSource",
    "Scalar",
    "SnapshotClassification",
    "TelemetrySnapshot",
    "TickScheduler",
    "TickSpec",
    "TickStats",
    "TransportError",
    "UpsBackend",
    "UpsCommand",
    "UpsKeeperError",
    "freeze_snapshot",
]
