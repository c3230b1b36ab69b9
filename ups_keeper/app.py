"""Main application entry-point for ups-keeper."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from enum import Enum
from typing import Optional

from . import constants
from .adapters.logind import LogindWatcher
from .adapters.mqtt import MQTTClient, MQTTConnectionError
from .backends import NutBackend
from .config import KeeperConfig, load_config
from .control import (
    DriverSupervisor,
    FanHysteresisController,
    FanSettings,
    PowerEventHub,
    PowerEventReactor,
)
from .core import DaemonStartError, TickScheduler, TickSpec, UpsBackend
from .health import HealthReporter, StatusServer
from .logging import configure_logging
from .policy import PolicyStore
from .telemetry import BatteryCalibration, SnapshotStore, TelemetryPoller
from .telemetry.publisher import MqttStatusBridge

LOGGER = logging.getLogger(__name__)


class AgentState(str, Enum):
    COLD_START = "cold_start"
    ACTIVE = "active"
    DEGRADED = "degraded"
    STOPPING = "stopping"


class UpsKeeperApp:
    """Coordinates service startup and shutdown.

    Owns the shared state (snapshot store, policy, power-event hub), the
    three periodic controllers and the optional outer surfaces:
    - the aiohttp status endpoint
    - the MQTT status bridge
    - the logind screen-lock watcher

    The UPS backend can be injected for testing.
    """

    def __init__(
        self,
        config: Optional[KeeperConfig] = None,
        *,
        backend: Optional[UpsBackend] = None,
        persist_policy: bool = True,
    ) -> None:
        self._config = config or load_config()
        self._backend: UpsBackend = backend or NutBackend(self._config)
        self._health = HealthReporter()
        self._state = AgentState.COLD_START
        self._state_detail: Optional[str] = None

        self._store = SnapshotStore()
        self._policy = PolicyStore.from_config(self._config, persist=persist_policy)
        self._events = PowerEventHub()

        battery = self._config.battery
        self._poller = TelemetryPoller(
            self._backend,
            self._store,
            calibration=BatteryCalibration(battery.voltage_low, battery.voltage_high),
            min_operational_keys=self._config.telemetry.min_operational_keys,
            health=self._health,
        )
        self._driver = DriverSupervisor(
            self._backend,
            driver_process=self._config.ups.driver_process,
            health=self._health,
        )
        fan = self._config.fan
        self._fan = FanHysteresisController(
            self._backend,
            self._store,
            self._policy,
            settings=FanSettings(
                load_threshold=fan.load_threshold,
                resend_seconds=fan.resend_seconds,
                outlet=fan.outlet,
            ),
            health=self._health,
        )
        self._reactor = PowerEventReactor(
            self._backend, self._policy, health=self._health
        )
        self._reactor.attach(self._events)

        self._scheduler = TickScheduler(self._build_tick_specs())
        self._status_server: Optional[StatusServer] = None
        self._mqtt_bridge: Optional[MqttStatusBridge] = None
        self._logind: Optional[LogindWatcher] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def health(self) -> HealthReporter:
        return self._health

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def events(self) -> PowerEventHub:
        return self._events

    @property
    def scheduler(self) -> TickScheduler:
        return self._scheduler

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def run(self) -> None:
        """Run until :meth:`request_shutdown` is called or the task is cancelled."""

        loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGTERM, self.request_shutdown)

        LOGGER.info("ups-keeper starting with config: %s", self._config.path)
        try:
            await self._start_services()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("ups-keeper received shutdown signal")
            raise
        finally:
            await self._stop_services()
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGTERM)

    @classmethod
    def start(cls, config: Optional[KeeperConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("ups-keeper received shutdown signal")

    def _build_tick_specs(self) -> list[TickSpec]:
        scheduler = self._config.scheduler
        timeout = scheduler.tick_timeout_seconds or None
        return [
            TickSpec("telemetry", self._poller.tick, scheduler.tick_seconds, timeout),
            TickSpec("driver", self._driver.tick, scheduler.tick_seconds, timeout),
            TickSpec("fan", self._fan.tick, scheduler.tick_seconds, timeout),
        ]

    async def _transition_state(
        self, state: AgentState, *, detail: Optional[str] = None
    ) -> None:
        if state == self._state and detail == self._state_detail:
            return

        previous = self._state
        self._state = state
        self._state_detail = detail

        message_detail = detail or state.value
        LOGGER.info(
            "Agent state transition %s -> %s (%s)",
            previous.value,
            state.value,
            message_detail,
        )
        await self._health.set_agent_state(
            state.value,
            healthy=state == AgentState.ACTIVE,
            detail=message_detail,
        )

    async def _start_services(self) -> None:
        await self._transition_state(AgentState.COLD_START, detail="initialising")

        try:
            await self._backend.start_daemon_if_not_started()
        except DaemonStartError as exc:
            LOGGER.error("Failed to start UPS daemon: %s", exc)

        failures: list[str] = []
        if not await self._start_status_server():
            failures.append("status endpoint unavailable")
        if not await self._start_mqtt_bridge():
            failures.append("mqtt unavailable")
        self._start_logind_watcher()

        self._scheduler.start()

        if failures:
            await self._transition_state(
                AgentState.DEGRADED, detail="; ".join(failures)
            )
        else:
            await self._transition_state(AgentState.ACTIVE, detail="running")

    async def _start_status_server(self) -> bool:
        status = self._config.status
        if not status.enabled or status.port <= 0:
            return True

        server = StatusServer(
            self._health,
            status.host,
            status.port,
            store=self._store,
            policy=self._policy,
            events=self._events,
        )
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start status endpoint: %s", exc)
            await self._health.update("status-endpoint", False, str(exc))
            return False

        self._status_server = server
        await self._health.update("status-endpoint", True, None)
        return True

    async def _start_mqtt_bridge(self) -> bool:
        mqtt_config = self._config.mqtt
        if not mqtt_config.enabled:
            return True

        client = MQTTClient(mqtt_config, client_id=_build_client_id(self._config))
        client.register_disconnect_handler(self._on_mqtt_disconnect)
        client.register_connect_handler(self._on_mqtt_connect)
        bridge = MqttStatusBridge(
            client,
            self._store,
            base_topic=mqtt_config.base_topic,
            events=self._events,
        )
        try:
            await bridge.start()
        except MQTTConnectionError as exc:
            LOGGER.error("Failed to connect MQTT status bridge: %s", exc)
            await self._health.update("mqtt", False, str(exc))
            return False

        self._mqtt_bridge = bridge
        await self._health.update("mqtt", True, None)
        return True

    def _start_logind_watcher(self) -> None:
        if not self._config.power_events.logind:
            return
        watcher = LogindWatcher(self._events)
        watcher.start()
        self._logind = watcher

    def _on_mqtt_disconnect(self, rc: int) -> None:
        if rc == 0:
            return
        LOGGER.warning("MQTT connection lost (rc=%s)", rc)
        asyncio.create_task(self._health.update("mqtt", False, f"disconnected rc={rc}"))

    def _on_mqtt_connect(self, rc: int) -> None:
        asyncio.create_task(self._health.update("mqtt", True, None))

    async def _stop_services(self) -> None:
        await self._transition_state(AgentState.STOPPING, detail="shutdown requested")

        await self._scheduler.stop()

        if self._logind is not None:
            await self._logind.stop()
            self._logind = None

        if self._mqtt_bridge is not None:
            await self._mqtt_bridge.stop()
            self._mqtt_bridge = None
            await self._health.update("mqtt", False, "shutdown")

        if self._status_server is not None:
            await self._status_server.stop()
            self._status_server = None

        if self._shutdown_event is not None:
            self._shutdown_event.set()


def _build_client_id(config: KeeperConfig) -> str:
    return f"{constants.APP_NAME}-{config.ups.name}-{os.getpid()}"
