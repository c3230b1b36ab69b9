"""Telemetry pipeline: normalization, polling and publication."""

from .normalizer import (
    DEFAULT_CALIBRATION,
    BatteryCalibration,
    classify,
    normalize,
    status_tokens,
)
from .poller import TelemetryPoller
from .store import SnapshotListener, SnapshotStore, TelemetryState

__all__ = [
    "BatteryCalibration",
    "DEFAULT_CALIBRATION",
    "SnapshotListener",
    "SnapshotStore",
    "TelemetryPoller",
    "TelemetryState",
    "classify",
    "normalize",
    "status_tokens",
]
