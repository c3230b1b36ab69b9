"""Normalization helpers for raw NUT telemetry snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .. import constants
from ..core.errors import ConfigurationError
from ..core.models import (
    Scalar,
    SnapshotClassification,
    TelemetrySnapshot,
    freeze_snapshot,
)

BATTERY_VOLTAGE = "battery.voltage"
BATTERY_CHARGE = "battery.charge"
UPS_STATUS = "ups.status"
UPS_LOAD = "ups.load"

# NUT status token emitted while the driver is still negotiating with the UPS.
STATUS_WAIT = "WAIT"


@dataclass(slots=True, frozen=True)
class BatteryCalibration:
    """Empty/full voltage range of the battery chemistry in use."""

    voltage_low: float = constants.DEFAULT_BATTERY_VOLTAGE_LOW
    voltage_high: float = constants.DEFAULT_BATTERY_VOLTAGE_HIGH

    def __post_init__(self) -> None:
        if self.voltage_high <= self.voltage_low:
            raise ConfigurationError(
                "voltage_high must be greater than voltage_low "
                f"(got low={self.voltage_low}, high={self.voltage_high})"
            )

    def charge_for(self, voltage: float) -> int:
        """Linear charge estimate, clamped to 100 but never at the low end."""
        level = (voltage - self.voltage_low) / (self.voltage_high - self.voltage_low)
        # half-up, not banker's rounding: 2.5% reads as 3
        return min(100, math.floor(level * 100 + 0.5))


DEFAULT_CALIBRATION = BatteryCalibration()


def _as_float(value: Optional[Scalar]) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize(
    snapshot: Mapping[str, Scalar],
    calibration: BatteryCalibration = DEFAULT_CALIBRATION,
) -> TelemetrySnapshot:
    """Return ``snapshot`` enriched with derived fields.

    ``battery.charge`` is written (or overwritten) when ``battery.voltage`` is
    present and numeric; otherwise the input entries are returned unchanged.
    Negative charge values are kept because they point at calibration or
    sensing problems.
    """
    enriched: Dict[str, Scalar] = dict(snapshot)
    voltage = _as_float(snapshot.get(BATTERY_VOLTAGE))
    if voltage is not None:
        enriched[BATTERY_CHARGE] = calibration.charge_for(voltage)
    return freeze_snapshot(enriched)


def status_tokens(snapshot: Mapping[str, Scalar]) -> tuple[str, ...]:
    """Split the NUT ``ups.status`` value (e.g. ``"OL CHRG"``) into tokens."""
    raw = snapshot.get(UPS_STATUS)
    if raw is None:
        return ()
    return tuple(token.upper() for token in str(raw).split())


def classify(
    snapshot: Optional[Mapping[str, Scalar]],
    *,
    min_operational_keys: int = constants.DEFAULT_MIN_OPERATIONAL_KEYS,
) -> SnapshotClassification:
    """Classify a poll result for downstream consumers."""
    if not snapshot:
        return SnapshotClassification.NO_DATA
    if len(snapshot) < min_operational_keys and STATUS_WAIT in status_tokens(
        snapshot
    ):
        return SnapshotClassification.INITIALIZING
    return SnapshotClassification.OPERATIONAL
