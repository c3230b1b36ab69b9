"""Load-driven fan control on a switched UPS outlet.

The cooling fans hang off a switchable outlet. When the UPS load rises above
the threshold the outlet is switched on; when it falls below, the outlet is
switched off. The outlet's *reported* state, not the load, confirms each
transition, so a load hovering around the threshold cannot make the controller
oscillate.

The transition logic lives in :func:`advance`, a pure function over frozen
records; :class:`FanHysteresisController` only wires it to the snapshot store,
the policy and the backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional

from .. import constants
from ..core.errors import MalformedTelemetry
from ..core.models import Scalar, UpsCommand
from ..core.protocols import PolicySource, UpsBackend
from ..health import HealthReporter
from ..telemetry.normalizer import UPS_LOAD
from ..telemetry.store import SnapshotStore

LOGGER = logging.getLogger(__name__)


class FanPhase(str, Enum):
    """Hysteresis regime, and whether a command awaits confirmation."""

    BELOW_THRESHOLD = "below_threshold"
    BELOW_THRESHOLD_AWAITING_ACK = "below_threshold_awaiting_ack"
    ABOVE_THRESHOLD = "above_threshold"
    ABOVE_THRESHOLD_AWAITING_ACK = "above_threshold_awaiting_ack"


_AWAITING = {
    FanPhase.BELOW_THRESHOLD: FanPhase.BELOW_THRESHOLD_AWAITING_ACK,
    FanPhase.ABOVE_THRESHOLD: FanPhase.ABOVE_THRESHOLD_AWAITING_ACK,
}
_SETTLED = {awaiting: settled for settled, awaiting in _AWAITING.items()}


@dataclass(slots=True, frozen=True)
class FanSettings:
    load_threshold: float = constants.DEFAULT_FAN_LOAD_THRESHOLD
    resend_seconds: int = constants.DEFAULT_FAN_RESEND_SECONDS
    outlet: int = constants.DEFAULT_FAN_OUTLET

    @property
    def status_key(self) -> str:
        return f"outlet.{self.outlet}.status"

    @property
    def on_command(self) -> UpsCommand:
        return UpsCommand.outlet_load(self.outlet, on=True)

    @property
    def off_command(self) -> UpsCommand:
        return UpsCommand.outlet_load(self.outlet, on=False)


@dataclass(slots=True, frozen=True)
class FanControlState:
    phase: FanPhase = FanPhase.BELOW_THRESHOLD
    resend_timer: int = constants.DEFAULT_FAN_RESEND_SECONDS

    @classmethod
    def initial(cls, settings: FanSettings) -> "FanControlState":
        return cls(phase=FanPhase.BELOW_THRESHOLD, resend_timer=settings.resend_seconds)

    @property
    def idle(self) -> bool:
        """True once the above-threshold transition has been confirmed."""
        return self.phase in (
            FanPhase.ABOVE_THRESHOLD,
            FanPhase.ABOVE_THRESHOLD_AWAITING_ACK,
        )

    @property
    def monitoring(self) -> bool:
        return self.phase in _SETTLED


@dataclass(slots=True, frozen=True)
class OutletReading:
    load: float
    outlet_status: str

    @property
    def outlet_on(self) -> bool:
        return "on" in self.outlet_status

    @property
    def outlet_off(self) -> bool:
        return "off" in self.outlet_status


class FanEvent(str, Enum):
    STEADY = "steady"
    COMMAND_SENT = "command_sent"
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    RESEND_TIMEOUT = "resend_timeout"


@dataclass(slots=True, frozen=True)
class FanDecision:
    state: FanControlState
    event: FanEvent
    command: Optional[UpsCommand] = None


def read_outlet(snapshot: Mapping[str, Scalar], settings: FanSettings) -> OutletReading:
    """Extract the load and outlet status the controller needs.

    Raises:
        MalformedTelemetry: If either field is missing or has the wrong type.
    """
    load = snapshot.get(UPS_LOAD)
    status = snapshot.get(settings.status_key)
    if load is None or status is None:
        raise MalformedTelemetry(
            f"snapshot lacks {UPS_LOAD} or {settings.status_key}"
        )
    if isinstance(load, bool):
        raise MalformedTelemetry(f"{UPS_LOAD} is not numeric: {load!r}")
    try:
        load_value = float(load)
    except (TypeError, ValueError) as exc:
        raise MalformedTelemetry(f"{UPS_LOAD} is not numeric: {load!r}") from exc
    return OutletReading(load=load_value, outlet_status=str(status).lower())


def advance(
    state: FanControlState, reading: OutletReading, settings: FanSettings
) -> FanDecision:
    """Compute the next controller state for one tick.

    Below the threshold regime a rising load with the outlet off issues the
    "on" command; above it a falling load with the outlet on issues "off".
    While a command awaits confirmation no further command is issued. The
    resend timer counts down once per monitoring tick (never below zero); when
    it has run out with the outlet still in its pre-command state, the
    controller drops back to the non-monitoring phase of the same regime so
    the next tick can issue the command again.
    """
    command: Optional[UpsCommand] = None
    event = FanEvent.STEADY

    if not state.monitoring:
        threshold = settings.load_threshold
        if not state.idle and reading.load > threshold and reading.outlet_off:
            command = settings.on_command
        elif state.idle and reading.load < threshold and reading.outlet_on:
            command = settings.off_command
        else:
            return FanDecision(state=state, event=FanEvent.STEADY)
        state = replace(
            state, phase=_AWAITING[state.phase], resend_timer=settings.resend_seconds
        )
        event = FanEvent.COMMAND_SENT

    awaiting_on = state.phase == FanPhase.BELOW_THRESHOLD_AWAITING_ACK
    applied = reading.outlet_on if awaiting_on else reading.outlet_off
    unchanged = reading.outlet_off if awaiting_on else reading.outlet_on

    if applied:
        settled = FanPhase.ABOVE_THRESHOLD if awaiting_on else FanPhase.BELOW_THRESHOLD
        return FanDecision(
            state=FanControlState(phase=settled, resend_timer=settings.resend_seconds),
            event=FanEvent.CONFIRMED,
            command=command,
        )

    if state.resend_timer <= 0 and unchanged:
        return FanDecision(
            state=FanControlState(
                phase=_SETTLED[state.phase], resend_timer=settings.resend_seconds
            ),
            event=FanEvent.RESEND_TIMEOUT,
        )

    if event is FanEvent.STEADY:
        event = FanEvent.WAITING
    return FanDecision(
        state=replace(state, resend_timer=max(0, state.resend_timer - 1)),
        event=event,
        command=command,
    )


class FanHysteresisController:
    """Sole writer of :class:`FanControlState`."""

    HEALTH_COMPONENT = "fan"

    def __init__(
        self,
        backend: UpsBackend,
        store: SnapshotStore,
        policy: PolicySource,
        *,
        settings: Optional[FanSettings] = None,
        health: Optional[HealthReporter] = None,
        state: Optional[FanControlState] = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._policy = policy
        self._settings = settings or FanSettings()
        self._health = health
        self._state = state or FanControlState.initial(self._settings)

    @property
    def state(self) -> FanControlState:
        return self._state

    @property
    def settings(self) -> FanSettings:
        return self._settings

    async def tick(self) -> Optional[FanDecision]:
        if not self._policy.auto_fan_enabled():
            return None

        telemetry = self._store.current
        if not telemetry.is_fresh:
            return None

        try:
            reading = read_outlet(telemetry.snapshot, self._settings)
        except MalformedTelemetry as exc:
            LOGGER.debug("Skipping fan tick: %s", exc)
            return None

        decision = advance(self._state, reading, self._settings)
        # Committed before the send so a cancelled tick cannot re-send.
        self._state = decision.state

        if decision.command is not None:
            LOGGER.info(
                "Load is %.1f%% (threshold %.1f%%). Sending %s",
                reading.load,
                self._settings.load_threshold,
                decision.command.value,
            )
            result = await self._backend.send_instant_command(
                decision.command, self._backend.device_name
            )
            if not result.success:
                # Stay in the awaiting phase; the resend timer bounds recovery.
                LOGGER.error(
                    "Instant command %s failed: %s",
                    decision.command.value,
                    result.detail,
                )
                await self._report(False, f"{decision.command.value}: {result.detail}")

        self._log_decision(decision)
        if decision.event in (FanEvent.CONFIRMED, FanEvent.RESEND_TIMEOUT):
            await self._report(
                decision.event is FanEvent.CONFIRMED, decision.state.phase.value
            )
        return decision

    def _log_decision(self, decision: FanDecision) -> None:
        event = decision.event
        if event is FanEvent.CONFIRMED:
            LOGGER.info(
                "Outlet %s confirmed; monitoring if load will be %s than %.1f%%",
                self._settings.outlet,
                "less" if decision.state.idle else "more",
                self._settings.load_threshold,
            )
        elif event is FanEvent.RESEND_TIMEOUT:
            pending = (
                self._settings.on_command
                if decision.state.phase == FanPhase.BELOW_THRESHOLD
                else self._settings.off_command
            )
            LOGGER.warning(
                "Outlet %s did not apply %s within %ss; will resend",
                self._settings.outlet,
                pending.value,
                self._settings.resend_seconds,
            )
        elif event in (FanEvent.WAITING, FanEvent.COMMAND_SENT):
            LOGGER.debug(
                "Time left to resend instant command: %s sec",
                decision.state.resend_timer,
            )

    async def _report(self, healthy: bool, detail: str) -> None:
        if self._health is not None:
            await self._health.update(self.HEALTH_COMPONENT, healthy, detail)
