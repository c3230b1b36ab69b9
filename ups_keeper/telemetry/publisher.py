"""MQTT bridge for tray/UI consumers.

Publishes every telemetry state change as a retained JSON document and maps
screen lock/unlock messages published by a desktop agent onto the power-event
hub.

Topics (relative to ``[mqtt] base_topic``):
- ``status``: retained ``{classification, snapshot, updatedAt, lastGoodAt}``
- ``availability``: retained ``online`` / ``offline`` (last will)
- ``events/screen``: inbound ``locked`` / ``unlocked``
"""

from __future__ import annotations

import logging
from typing import Optional

from ..adapters.mqtt import MQTTClient, MQTTConnectionError
from ..control.power_events import PowerEventHub
from .store import SnapshotStore, TelemetryState

LOGGER = logging.getLogger(__name__)

ONLINE = b"online"
OFFLINE = b"offline"


class MqttStatusBridge:
    """Connects the snapshot store and power-event hub to an MQTT broker."""

    def __init__(
        self,
        client: MQTTClient,
        store: SnapshotStore,
        *,
        base_topic: str,
        events: Optional[PowerEventHub] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._events = events
        self._base_topic = base_topic.rstrip("/")
        self._started = False

    @property
    def status_topic(self) -> str:
        return f"{self._base_topic}/status"

    @property
    def availability_topic(self) -> str:
        return f"{self._base_topic}/availability"

    @property
    def screen_topic(self) -> str:
        return f"{self._base_topic}/events/screen"

    async def start(self) -> None:
        """Connect and begin relaying.

        Raises:
            MQTTConnectionError: If the broker cannot be reached.
        """
        if self._started:
            return

        if self._events is not None:
            self._client.subscribe(self.screen_topic, self._handle_screen, qos=1)
        self._client.register_connect_handler(self._announce)
        await self._client.connect(
            will_topic=self.availability_topic, will_payload=OFFLINE
        )

        self._store.register_listener(self.publish_state)
        self._started = True
        await self.publish_state(self._store.current)

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self._store.unregister_listener(self.publish_state)
        try:
            self._client.publish(self.availability_topic, OFFLINE, retain=True)
        except MQTTConnectionError as exc:
            LOGGER.debug("Could not publish offline availability: %s", exc)
        await self._client.disconnect()

    async def publish_state(self, state: TelemetryState) -> None:
        try:
            self._client.publish_json(self.status_topic, state.as_dict(), retain=True)
        except MQTTConnectionError as exc:
            LOGGER.debug("Status publish skipped: %s", exc)

    def _announce(self, rc: int) -> None:
        # Runs on every (re)connect, including the first.
        try:
            self._client.publish(self.availability_topic, ONLINE, retain=True)
        except MQTTConnectionError as exc:
            LOGGER.warning("Failed to announce availability: %s", exc)

    async def _handle_screen(self, topic: str, payload: bytes) -> None:
        if self._events is None:
            return
        value = payload.decode("utf-8", errors="replace").strip().lower()
        if value == "locked":
            await self._events.fire_locked()
        elif value == "unlocked":
            await self._events.fire_unlocked()
        else:
            LOGGER.warning("Ignoring unknown screen event payload: %r", value)
