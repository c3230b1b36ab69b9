from pathlib import Path

import pytest

from ups_keeper import constants
from ups_keeper.config import load_config, save_config
from ups_keeper.core import ConfigurationError


def test_load_config_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "ups-keeper.cfg"
    config = load_config(config_path)

    assert config.path == config_path
    assert config.ups.name == "ups"
    assert config.ups.target == "ups@localhost"
    assert config.ups.usb_vendor_id == "0592"
    assert config.ups.usb_product_id == "0002"
    assert config.ups.driver_process == "bcmxcp_usb"
    assert config.nut.driver_start_command == ["upsdrvctl", "start"]
    assert config.nut.daemon_restart_command == ["upsd", "-c", "reload"]
    assert config.battery.voltage_low == constants.DEFAULT_BATTERY_VOLTAGE_LOW
    assert config.battery.voltage_high == constants.DEFAULT_BATTERY_VOLTAGE_HIGH
    assert config.telemetry.min_operational_keys == 10
    assert config.fan.load_threshold == 20.0
    assert config.fan.resend_seconds == 120
    assert config.fan.outlet == 1
    assert config.policy.auto_fan is True
    assert config.policy.auto_shutdown is False
    assert config.scheduler.tick_seconds == 1.0
    assert config.scheduler.tick_timeout_seconds == 10.0
    assert config.mqtt.enabled is False
    assert config.status.enabled is True
    assert config.status.port == constants.DEFAULT_STATUS_PORT
    assert config.power_events.logind is False
    assert config.logging.level == "INFO"


def test_load_config_overrides_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / "ups-keeper.cfg"
    config_file.write_text(
        """
[ups]
name = eaton
host =
username = monuser
password = secret
usb_product_id = 0003

[nut]
driver_start_command = /usr/lib/nut/upsdrvctl -u root start

[battery]
voltage_low = 21.0
voltage_high = 27.3

[fan]
load_threshold = 35.5
resend_seconds = 30
outlet = 2

[scheduler]
tick_seconds = 2

[logging]
path =
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.ups.name == "eaton"
    assert config.ups.target == "eaton"
    assert config.ups.username == "monuser"
    assert config.ups.password == "secret"
    assert config.ups.usb_product_id == "0003"
    assert config.nut.driver_start_command == [
        "/usr/lib/nut/upsdrvctl",
        "-u",
        "root",
        "start",
    ]
    assert config.battery.voltage_low == 21.0
    assert config.battery.voltage_high == 27.3
    assert config.fan.load_threshold == 35.5
    assert config.fan.resend_seconds == 30
    assert config.fan.outlet == 2
    assert config.scheduler.tick_seconds == 2.0
    assert config.logging.path is None


def test_load_config_parses_broker_host_with_port(tmp_path: Path) -> None:
    config_path = tmp_path / "ups-keeper.cfg"
    config_path.write_text(
        "[mqtt]\nenabled = true\nbroker_host = localhost:61198\n", encoding="utf-8"
    )

    config = load_config(config_path)

    assert config.mqtt.enabled is True
    assert config.mqtt.broker_host == "localhost"
    assert config.mqtt.broker_port == 61198
    assert config.raw.get("mqtt", "broker_host") == "localhost"
    assert config.raw.get("mqtt", "broker_port") == "61198"


def test_inverted_battery_calibration_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "ups-keeper.cfg"
    config_path.write_text(
        "[battery]\nvoltage_low = 41.1\nvoltage_high = 30.5\n", encoding="utf-8"
    )

    with pytest.raises(ConfigurationError):
        load_config(config_path)


def test_unknown_outlet_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "ups-keeper.cfg"
    config_path.write_text("[fan]\noutlet = 3\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(config_path)


def test_empty_command_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "ups-keeper.cfg"
    config_path.write_text("[nut]\ndaemon_start_command =\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(config_path)


def test_save_config_round_trips_raw_values(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "ups-keeper.cfg"
    config = load_config(config_path)
    config.raw.set("fan", "load_threshold", "42.0")

    save_config(config)

    assert load_config(config_path).fan.load_threshold == 42.0
