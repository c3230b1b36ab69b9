"""Periodic telemetry poller.

Fetches the raw variables from the backend once per tick, derives the
operational fields, classifies the result and publishes it through the
:class:`SnapshotStore`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .. import constants
from ..core.errors import TransportError
from ..core.models import SnapshotClassification, TelemetrySnapshot
from ..core.protocols import UpsBackend
from ..health import HealthReporter
from .normalizer import DEFAULT_CALIBRATION, BatteryCalibration, classify, normalize
from .store import SnapshotStore, TelemetryState

LOGGER = logging.getLogger(__name__)


class TelemetryPoller:
    """Sole writer of the shared telemetry state."""

    HEALTH_COMPONENT = "telemetry"

    def __init__(
        self,
        backend: UpsBackend,
        store: SnapshotStore,
        *,
        calibration: BatteryCalibration = DEFAULT_CALIBRATION,
        min_operational_keys: int = constants.DEFAULT_MIN_OPERATIONAL_KEYS,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._calibration = calibration
        self._min_operational_keys = min_operational_keys
        self._health = health
        self._last_classification: Optional[SnapshotClassification] = None

    async def tick(self) -> TelemetryState:
        raw = await self._fetch()

        if raw:
            snapshot = normalize(raw, self._calibration)
            classification = classify(
                snapshot, min_operational_keys=self._min_operational_keys
            )
            state = self._store.publish(classification, snapshot)
        else:
            state = self._store.publish(SnapshotClassification.NO_DATA)

        self._log_transition(state.classification)
        await self._store.notify(state)
        await self._report_health(state)
        return state

    async def _fetch(self) -> Optional[TelemetrySnapshot]:
        try:
            return await self._backend.fetch_telemetry()
        except asyncio.CancelledError:
            raise
        except TransportError as exc:
            LOGGER.debug("Telemetry fetch failed: %s", exc)
        except Exception:
            LOGGER.exception("Unexpected error fetching telemetry")
        return None

    def _log_transition(self, classification: SnapshotClassification) -> None:
        previous = self._last_classification
        self._last_classification = classification
        if previous == classification:
            return
        level = (
            logging.WARNING
            if classification == SnapshotClassification.NO_DATA
            and previous is not None
            else logging.INFO
        )
        LOGGER.log(
            level,
            "UPS telemetry %s -> %s",
            previous.value if previous is not None else "unknown",
            classification.value,
        )

    async def _report_health(self, state: TelemetryState) -> None:
        if self._health is None:
            return
        await self._health.update(
            self.HEALTH_COMPONENT,
            state.classification == SnapshotClassification.OPERATIONAL,
            state.classification.value,
        )
