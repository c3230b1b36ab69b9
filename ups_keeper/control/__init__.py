"""Supervisory controllers driven by the tick scheduler and power events."""

from .driver import DriverSupervisionState, DriverSupervisor
from .fan import (
    FanControlState,
    FanDecision,
    FanEvent,
    FanHysteresisController,
    FanPhase,
    FanSettings,
    OutletReading,
    advance,
    read_outlet,
)
from .power_events import PowerEventHub, PowerEventReactor

__all__ = [
    "DriverSupervisionState",
    "DriverSupervisor",
    "FanControlState",
    "FanDecision",
    "FanEvent",
    "FanHysteresisController",
    "FanPhase",
    "FanSettings",
    "OutletReading",
    "PowerEventHub",
    "PowerEventReactor",
    "advance",
    "read_outlet",
]
