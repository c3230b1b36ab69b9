"""Single-writer store for the published telemetry state.

The poller is the only writer. Each poll replaces the whole
:class:`TelemetryState` record, so readers holding a reference keep a
consistent view and never observe a half-updated snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.models import (
    EMPTY_SNAPSHOT,
    SnapshotClassification,
    TelemetrySnapshot,
)

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class TelemetryState:
    """Latest poll classification plus the latest good snapshot.

    ``snapshot`` keeps the last successfully fetched reading even when the most
    recent poll produced no data; ``classification`` tells consumers whether it
    is fresh.
    """

    classification: SnapshotClassification = SnapshotClassification.NO_DATA
    snapshot: TelemetrySnapshot = field(default_factory=lambda: EMPTY_SNAPSHOT)
    updated_at: datetime = field(default_factory=_utcnow)
    last_good_at: Optional[datetime] = None

    @property
    def has_snapshot(self) -> bool:
        return bool(self.snapshot)

    @property
    def is_fresh(self) -> bool:
        return self.classification != SnapshotClassification.NO_DATA

    def as_dict(self) -> Dict[str, Any]:
        return {
            "classification": self.classification.value,
            "snapshot": dict(self.snapshot),
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
            "lastGoodAt": (
                self.last_good_at.isoformat(timespec="seconds")
                if self.last_good_at is not None
                else None
            ),
        }


SnapshotListener = Callable[[TelemetryState], Awaitable[None]]


class SnapshotStore:
    """Holds the current :class:`TelemetryState` and notifies listeners."""

    def __init__(self) -> None:
        self._state = TelemetryState()
        self._listeners: List[SnapshotListener] = []

    @property
    def current(self) -> TelemetryState:
        return self._state

    def register_listener(self, listener: SnapshotListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unregister_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(
        self,
        classification: SnapshotClassification,
        snapshot: Optional[TelemetrySnapshot] = None,
    ) -> TelemetryState:
        """Swap in a new state record.

        Passing ``snapshot=None`` keeps the previously published snapshot and
        only updates the classification.
        """
        previous = self._state
        now = _utcnow()
        if snapshot is None:
            state = TelemetryState(
                classification=classification,
                snapshot=previous.snapshot,
                updated_at=now,
                last_good_at=previous.last_good_at,
            )
        else:
            state = TelemetryState(
                classification=classification,
                snapshot=snapshot,
                updated_at=now,
                last_good_at=now,
            )
        self._state = state
        return state

    async def notify(self, state: Optional[TelemetryState] = None) -> None:
        """Deliver ``state`` (default: current) to every listener.

        A failing listener is logged and does not affect the others.
        """
        target = state or self._state
        for listener in list(self._listeners):
            try:
                await listener(target)
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Snapshot listener %r failed", listener)
