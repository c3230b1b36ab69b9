"""paho-mqtt wrapper used by the status bridge.

paho runs its network loop on a background thread; every callback is handed
over to the asyncio loop with ``call_soon_threadsafe`` before touching any
state. Subscriptions are remembered and replayed after paho reconnects, so
callers subscribe once.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

import paho.mqtt.client as mqtt

from ..config import MqttConfig

LOGGER = logging.getLogger(__name__)

TopicHandler = Callable[[str, bytes], Optional[Awaitable[None]]]
ConnectionHandler = Callable[[int], None]

RECONNECT_MIN_DELAY = 1
RECONNECT_MAX_DELAY = 30


class MQTTConnectionError(RuntimeError):
    """Raised when the broker cannot be reached or rejects a request."""


class MQTTClient:
    """Async-facing MQTT session for one broker."""

    def __init__(self, config: MqttConfig, *, client_id: str) -> None:
        self.config = config
        self.client_id = client_id

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ack: Optional[asyncio.Future[int]] = None
        self._closed: Optional[asyncio.Event] = None
        self._connected = False
        self._subscriptions: Dict[str, int] = {}
        self._handlers: Dict[str, TopicHandler] = {}
        self._connect_handlers: List[ConnectionHandler] = []
        self._disconnect_handlers: List[ConnectionHandler] = []
        self._pending: Set[asyncio.Task[None]] = set()

    def is_connected(self) -> bool:
        return self._connected

    def register_connect_handler(self, handler: ConnectionHandler) -> None:
        self._connect_handlers.append(handler)

    def register_disconnect_handler(self, handler: ConnectionHandler) -> None:
        self._disconnect_handlers.append(handler)

    async def connect(
        self,
        timeout: float = 30.0,
        *,
        will_topic: Optional[str] = None,
        will_payload: Optional[bytes] = None,
    ) -> None:
        """Open the session and wait for the broker's CONNACK.

        Raises:
            MQTTConnectionError: On timeout or when the broker refuses us.
        """
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._ack = loop.create_future()
        self._closed = asyncio.Event()

        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        client.enable_logger(LOGGER)
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)
        if will_topic is not None:
            client.will_set(will_topic, will_payload, qos=1, retain=True)
        client.reconnect_delay_set(RECONNECT_MIN_DELAY, RECONNECT_MAX_DELAY)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client

        LOGGER.info(
            "Connecting to MQTT broker %s:%s",
            self.config.broker_host,
            self.config.broker_port,
        )
        client.connect_async(
            self.config.broker_host, self.config.broker_port, self.config.keepalive
        )
        client.loop_start()

        try:
            rc = await asyncio.wait_for(self._ack, timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._teardown()
            raise MQTTConnectionError(
                f"No answer from {self.config.broker_host}:{self.config.broker_port}"
            ) from exc
        if rc != 0:
            self._teardown()
            raise MQTTConnectionError(f"MQTT broker refused connection (rc={rc})")

    async def disconnect(self, timeout: float = 5.0) -> None:
        client = self._client
        if client is None:
            return
        assert self._closed is not None

        client.disconnect()
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.debug("Broker did not confirm disconnect within %.1fs", timeout)
        finally:
            self._teardown()

    def publish(
        self, topic: str, payload: bytes, qos: int = 1, retain: bool = False
    ) -> None:
        client = self._require_client()
        info = client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Publish to {topic} failed (rc={info.rc})")

    def publish_json(
        self,
        topic: str,
        document: Mapping[str, Any],
        qos: int = 0,
        retain: bool = False,
    ) -> None:
        payload = json.dumps(document, separators=(",", ":")).encode("utf-8")
        self.publish(topic, payload, qos=qos, retain=retain)

    def subscribe(self, topic: str, handler: TopicHandler, qos: int = 1) -> None:
        """Route messages matching ``topic`` (wildcards allowed) to ``handler``."""
        self._handlers[topic] = handler
        self._subscriptions[topic] = qos
        self._send_subscribe(topic, qos)

    # ------------------------------------------------------------------
    # paho thread -> event loop
    # ------------------------------------------------------------------
    def _on_connect(
        self, client: mqtt.Client, userdata, flags, reason_code, properties=None
    ) -> None:
        self._call_soon(self._handle_connect, _rc_value(reason_code))

    def _on_disconnect(
        self, client: mqtt.Client, userdata, flags, reason_code, properties=None
    ) -> None:
        self._call_soon(self._handle_disconnect, _rc_value(reason_code))

    def _on_message(
        self, client: mqtt.Client, userdata, message: mqtt.MQTTMessage
    ) -> None:
        self._call_soon(self._route, message.topic, message.payload)

    def _call_soon(self, callback: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    def _handle_connect(self, rc: int) -> None:
        ack = self._ack
        if ack is not None and not ack.done():
            ack.set_result(rc)
        if rc != 0:
            LOGGER.error("MQTT broker refused connection (rc=%s)", rc)
            self._connected = False
            return

        self._connected = True
        LOGGER.info("Connected to MQTT broker")
        if self._closed is not None:
            self._closed.clear()
        # paho does not restore subscriptions on a clean session.
        for topic, qos in self._subscriptions.items():
            try:
                self._send_subscribe(topic, qos)
            except MQTTConnectionError as exc:
                LOGGER.warning("Resubscribe to %s failed: %s", topic, exc)
        for handler in list(self._connect_handlers):
            handler(rc)

    def _handle_disconnect(self, rc: int) -> None:
        self._connected = False
        if self._closed is not None:
            self._closed.set()
        if rc != 0:
            LOGGER.warning("Lost MQTT connection (rc=%s); paho will reconnect", rc)
        for handler in list(self._disconnect_handlers):
            handler(rc)

    def _route(self, topic: str, payload: bytes) -> None:
        for pattern, handler in list(self._handlers.items()):
            if not mqtt.topic_matches_sub(pattern, topic):
                continue
            try:
                result = handler(topic, payload)
            except Exception:
                LOGGER.exception("Handler for %s failed", topic)
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._finish_handler)

    def _finish_handler(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error("MQTT message handler failed", exc_info=task.exception())

    def _send_subscribe(self, topic: str, qos: int) -> None:
        client = self._client
        if client is None:
            return
        result, _ = client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Subscribe to {topic} failed (rc={result})")

    def _require_client(self) -> mqtt.Client:
        if self._client is None:
            raise MQTTConnectionError("MQTT client is not connected")
        return self._client

    def _teardown(self) -> None:
        if self._client is not None:
            self._client.loop_stop()
        self._client = None
        self._connected = False


def _rc_value(reason_code) -> int:
    """paho v2 passes ``ReasonCode`` objects; older paths pass plain ints."""
    value = getattr(reason_code, "value", reason_code)
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1
