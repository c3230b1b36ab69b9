"""Configuration loader for ups-keeper."""

from __future__ import annotations

import shlex
from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from . import constants
from .core.errors import ConfigurationError


@dataclass(slots=True)
class UpsConfig:
    name: str = constants.DEFAULT_UPS_NAME
    host: str = constants.DEFAULT_UPSD_HOST
    username: Optional[str] = None
    password: Optional[str] = None
    driver_process: str = constants.DEFAULT_DRIVER_PROCESS
    daemon_process: str = constants.DEFAULT_DAEMON_PROCESS
    usb_vendor_id: str = constants.DEFAULT_USB_VENDOR_ID
    usb_product_id: Optional[str] = constants.DEFAULT_USB_PRODUCT_ID
    sysfs_root: Path = constants.DEFAULT_SYSFS_USB_ROOT

    @property
    def target(self) -> str:
        """UPS address in NUT ``name@host`` form."""
        return f"{self.name}@{self.host}" if self.host else self.name


@dataclass(slots=True)
class NutConfig:
    upsc: str = "upsc"
    upscmd: str = "upscmd"
    driver_start_command: List[str] = field(
        default_factory=lambda: ["upsdrvctl", "start"]
    )
    daemon_start_command: List[str] = field(default_factory=lambda: ["upsd"])
    daemon_restart_command: List[str] = field(
        default_factory=lambda: ["upsd", "-c", "reload"]
    )
    command_timeout_seconds: float = 5.0


@dataclass(slots=True)
class BatteryConfig:
    voltage_low: float = constants.DEFAULT_BATTERY_VOLTAGE_LOW
    voltage_high: float = constants.DEFAULT_BATTERY_VOLTAGE_HIGH


@dataclass(slots=True)
class TelemetryConfig:
    min_operational_keys: int = constants.DEFAULT_MIN_OPERATIONAL_KEYS


@dataclass(slots=True)
class FanConfig:
    load_threshold: float = constants.DEFAULT_FAN_LOAD_THRESHOLD
    resend_seconds: int = constants.DEFAULT_FAN_RESEND_SECONDS
    outlet: int = constants.DEFAULT_FAN_OUTLET


@dataclass(slots=True)
class PolicyConfig:
    auto_fan: bool = True
    auto_shutdown: bool = False


@dataclass(slots=True)
class SchedulerConfig:
    tick_seconds: float = 1.0
    tick_timeout_seconds: float = 10.0


@dataclass(slots=True)
class MqttConfig:
    enabled: bool = False
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    base_topic: str = constants.DEFAULT_BASE_TOPIC
    keepalive: int = 60


@dataclass(slots=True)
class StatusConfig:
    enabled: bool = True
    host: str = constants.DEFAULT_STATUS_HOST
    port: int = constants.DEFAULT_STATUS_PORT


@dataclass(slots=True)
class PowerEventsConfig:
    logind: bool = False


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class KeeperConfig:
    ups: UpsConfig
    nut: NutConfig
    battery: BatteryConfig
    telemetry: TelemetryConfig
    fan: FanConfig
    policy: PolicyConfig
    scheduler: SchedulerConfig
    mqtt: MqttConfig
    status: StatusConfig
    power_events: PowerEventsConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _parse_command(value: str, *, option: str) -> List[str]:
    try:
        parts = shlex.split(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid command for {option}: {exc}") from exc
    if not parts:
        raise ConfigurationError(f"Command for {option} must not be empty")
    return parts


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _lower(value: Optional[str]) -> Optional[str]:
    value = _optional(value)
    return value.lower() if value else None


def load_config(path: Optional[Path] = None) -> KeeperConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "ups": {
                "name": constants.DEFAULT_UPS_NAME,
                "host": constants.DEFAULT_UPSD_HOST,
                "driver_process": constants.DEFAULT_DRIVER_PROCESS,
                "daemon_process": constants.DEFAULT_DAEMON_PROCESS,
                "usb_vendor_id": constants.DEFAULT_USB_VENDOR_ID,
                "usb_product_id": constants.DEFAULT_USB_PRODUCT_ID,
                "sysfs_root": str(constants.DEFAULT_SYSFS_USB_ROOT),
            },
            "nut": {
                "upsc": "upsc",
                "upscmd": "upscmd",
                "driver_start_command": "upsdrvctl start",
                "daemon_start_command": "upsd",
                "daemon_restart_command": "upsd -c reload",
                "command_timeout_seconds": "5.0",
            },
            "battery": {
                "voltage_low": str(constants.DEFAULT_BATTERY_VOLTAGE_LOW),
                "voltage_high": str(constants.DEFAULT_BATTERY_VOLTAGE_HIGH),
            },
            "telemetry": {
                "min_operational_keys": str(constants.DEFAULT_MIN_OPERATIONAL_KEYS),
            },
            "fan": {
                "load_threshold": str(constants.DEFAULT_FAN_LOAD_THRESHOLD),
                "resend_seconds": str(constants.DEFAULT_FAN_RESEND_SECONDS),
                "outlet": str(constants.DEFAULT_FAN_OUTLET),
            },
            "policy": {
                "auto_fan": "true",
                "auto_shutdown": "false",
            },
            "scheduler": {
                "tick_seconds": "1.0",
                "tick_timeout_seconds": "10.0",
            },
            "mqtt": {
                "enabled": "false",
                "broker_host": constants.DEFAULT_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_BROKER_PORT),
                "base_topic": constants.DEFAULT_BASE_TOPIC,
                "keepalive": "60",
            },
            "status": {
                "enabled": "true",
                "host": constants.DEFAULT_STATUS_HOST,
                "port": str(constants.DEFAULT_STATUS_PORT),
            },
            "power_events": {
                "logind": "false",
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    ups = UpsConfig(
        name=parser.get("ups", "name"),
        host=parser.get("ups", "host", fallback=""),
        username=_optional(parser.get("ups", "username", fallback=None)),
        password=_optional(parser.get("ups", "password", fallback=None)),
        driver_process=parser.get("ups", "driver_process"),
        daemon_process=parser.get("ups", "daemon_process"),
        usb_vendor_id=parser.get("ups", "usb_vendor_id").strip().lower(),
        usb_product_id=_lower(parser.get("ups", "usb_product_id", fallback=None)),
        sysfs_root=Path(parser.get("ups", "sysfs_root")),
    )

    nut = NutConfig(
        upsc=parser.get("nut", "upsc"),
        upscmd=parser.get("nut", "upscmd"),
        driver_start_command=_parse_command(
            parser.get("nut", "driver_start_command"), option="driver_start_command"
        ),
        daemon_start_command=_parse_command(
            parser.get("nut", "daemon_start_command"), option="daemon_start_command"
        ),
        daemon_restart_command=_parse_command(
            parser.get("nut", "daemon_restart_command"),
            option="daemon_restart_command",
        ),
        command_timeout_seconds=max(
            0.1, parser.getfloat("nut", "command_timeout_seconds", fallback=5.0)
        ),
    )

    battery = BatteryConfig(
        voltage_low=parser.getfloat("battery", "voltage_low"),
        voltage_high=parser.getfloat("battery", "voltage_high"),
    )
    if battery.voltage_high <= battery.voltage_low:
        raise ConfigurationError(
            "battery.voltage_high must be greater than battery.voltage_low "
            f"(got low={battery.voltage_low}, high={battery.voltage_high})"
        )

    telemetry = TelemetryConfig(
        min_operational_keys=max(
            0,
            parser.getint(
                "telemetry",
                "min_operational_keys",
                fallback=constants.DEFAULT_MIN_OPERATIONAL_KEYS,
            ),
        ),
    )

    fan = FanConfig(
        load_threshold=parser.getfloat("fan", "load_threshold"),
        resend_seconds=max(1, parser.getint("fan", "resend_seconds")),
        outlet=parser.getint("fan", "outlet"),
    )
    if fan.outlet not in (1, 2):
        raise ConfigurationError(f"fan.outlet must be 1 or 2 (got {fan.outlet})")

    policy = PolicyConfig(
        auto_fan=parser.getboolean("policy", "auto_fan", fallback=True),
        auto_shutdown=parser.getboolean("policy", "auto_shutdown", fallback=False),
    )

    scheduler = SchedulerConfig(
        tick_seconds=max(0.1, parser.getfloat("scheduler", "tick_seconds")),
        tick_timeout_seconds=max(
            0.0, parser.getfloat("scheduler", "tick_timeout_seconds")
        ),
    )

    mqtt = MqttConfig(
        enabled=parser.getboolean("mqtt", "enabled", fallback=False),
        broker_host=parser.get("mqtt", "broker_host"),
        broker_port=parser.getint(
            "mqtt", "broker_port", fallback=constants.DEFAULT_BROKER_PORT
        ),
        username=_optional(parser.get("mqtt", "username", fallback=None)),
        password=_optional(parser.get("mqtt", "password", fallback=None)),
        base_topic=parser.get("mqtt", "base_topic").rstrip("/"),
        keepalive=max(5, parser.getint("mqtt", "keepalive", fallback=60)),
    )

    broker_host_value = mqtt.broker_host
    if ":" in broker_host_value:
        host_part, port_part = broker_host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            mqtt.broker_host = host_part
            mqtt.broker_port = parsed_port
            parser.set("mqtt", "broker_host", host_part)
            parser.set("mqtt", "broker_port", str(parsed_port))

    status = StatusConfig(
        enabled=parser.getboolean("status", "enabled", fallback=True),
        host=parser.get("status", "host"),
        port=parser.getint("status", "port", fallback=constants.DEFAULT_STATUS_PORT),
    )

    power_events = PowerEventsConfig(
        logind=parser.getboolean("power_events", "logind", fallback=False),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return KeeperConfig(
        ups=ups,
        nut=nut,
        battery=battery,
        telemetry=telemetry,
        fan=fan,
        policy=policy,
        scheduler=scheduler,
        mqtt=mqtt,
        status=status,
        power_events=power_events,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def save_config(config: KeeperConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
