"""Tests for the MQTT status bridge."""

import json

import pytest

from ups_keeper.adapters import MQTTConnectionError
from ups_keeper.control import PowerEventHub
from ups_keeper.core import SnapshotClassification
from ups_keeper.telemetry import SnapshotStore
from ups_keeper.telemetry.publisher import MqttStatusBridge

BASE = "ups-keeper/ups"


class FakeClient:
    """Stands in for MQTTClient; connect fires the connect handlers."""

    def __init__(self) -> None:
        self.published = []
        self.handlers = {}
        self.connect_kwargs = None
        self.disconnected = False
        self.connect_handlers = []
        self.publish_error = None

    async def connect(self, timeout: float = 30.0, **kwargs) -> None:
        self.connect_kwargs = kwargs
        for handler in self.connect_handlers:
            handler(0)

    async def disconnect(self) -> None:
        self.disconnected = True

    def publish(self, topic, payload, qos=1, retain=False):
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((topic, payload, qos, retain))

    def publish_json(self, topic, document, qos=0, retain=False):
        self.publish(topic, json.dumps(document).encode("utf-8"), qos=qos, retain=retain)

    def subscribe(self, topic, handler, qos=1):
        self.handlers[topic] = (handler, qos)

    def register_connect_handler(self, handler):
        self.connect_handlers.append(handler)


def _status_payloads(client: FakeClient):
    return [
        json.loads(payload)
        for topic, payload, _, retain in client.published
        if topic == f"{BASE}/status" and retain
    ]


@pytest.mark.asyncio
async def test_start_announces_and_publishes_current_state():
    client = FakeClient()
    store = SnapshotStore()
    bridge = MqttStatusBridge(client, store, base_topic=BASE + "/", events=PowerEventHub())

    await bridge.start()

    assert client.connect_kwargs == {
        "will_topic": f"{BASE}/availability",
        "will_payload": b"offline",
    }
    assert client.published[0] == (f"{BASE}/availability", b"online", 1, True)
    assert list(client.handlers) == [f"{BASE}/events/screen"]
    assert _status_payloads(client)[0]["classification"] == "no_data"


@pytest.mark.asyncio
async def test_snapshot_updates_are_published_retained():
    client = FakeClient()
    store = SnapshotStore()
    bridge = MqttStatusBridge(client, store, base_topic=BASE)
    await bridge.start()

    state = store.publish(SnapshotClassification.OPERATIONAL, {"ups.load": 18})
    await store.notify(state)

    latest = _status_payloads(client)[-1]
    assert latest["classification"] == "operational"
    assert latest["snapshot"] == {"ups.load": 18}
    assert client.handlers == {}


@pytest.mark.asyncio
async def test_screen_messages_fire_power_events():
    client = FakeClient()
    hub = PowerEventHub()
    received = []

    async def locked() -> None:
        received.append("locked")

    async def unlocked() -> None:
        received.append("unlocked")

    hub.subscribe(locked, unlocked)
    bridge = MqttStatusBridge(client, SnapshotStore(), base_topic=BASE, events=hub)
    await bridge.start()
    handler, qos = client.handlers[f"{BASE}/events/screen"]

    await handler(f"{BASE}/events/screen", b"locked")
    await handler(f"{BASE}/events/screen", b" UNLOCKED\n")
    await handler(f"{BASE}/events/screen", b"dimmed")

    assert qos == 1
    assert received == ["locked", "unlocked"]


@pytest.mark.asyncio
async def test_publish_errors_do_not_escape():
    client = FakeClient()
    store = SnapshotStore()
    bridge = MqttStatusBridge(client, store, base_topic=BASE)
    await bridge.start()

    client.publish_error = MQTTConnectionError("Publish to status failed (rc=4)")
    await store.notify(store.publish(SnapshotClassification.NO_DATA))

    assert len(_status_payloads(client)) == 1


@pytest.mark.asyncio
async def test_stop_unregisters_and_marks_offline():
    client = FakeClient()
    store = SnapshotStore()
    bridge = MqttStatusBridge(client, store, base_topic=BASE)
    await bridge.start()

    await bridge.stop()
    await store.notify(store.publish(SnapshotClassification.OPERATIONAL, {"a": 1}))

    assert client.disconnected is True
    assert client.published[-1] == (f"{BASE}/availability", b"offline", 1, True)
    assert len(_status_payloads(client)) == 1


@pytest.mark.asyncio
async def test_reconnect_announces_availability_again():
    client = FakeClient()
    bridge = MqttStatusBridge(client, SnapshotStore(), base_topic=BASE)
    await bridge.start()

    for handler in client.connect_handlers:
        handler(0)

    online = [entry for entry in client.published if entry[1] == b"online"]
    assert len(online) == 2
