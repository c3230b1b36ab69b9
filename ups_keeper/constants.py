"""Constants used across the ups-keeper package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "ups-keeper"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path.home() / ".local" / "state" / APP_NAME / f"{APP_NAME}.log"

DEFAULT_UPS_NAME = "ups"
DEFAULT_UPSD_HOST = "localhost"

# Powerware / Eaton serial-over-USB (bcmxcp_usb driver)
DEFAULT_USB_VENDOR_ID = "0592"
DEFAULT_USB_PRODUCT_ID = "0002"
DEFAULT_SYSFS_USB_ROOT = Path("/sys/bus/usb/devices")

DEFAULT_DRIVER_PROCESS = "bcmxcp_usb"
DEFAULT_DAEMON_PROCESS = "upsd"

# Battery voltage calibration for the reference 36V pack.
DEFAULT_BATTERY_VOLTAGE_LOW = 30.5
DEFAULT_BATTERY_VOLTAGE_HIGH = 41.1

DEFAULT_FAN_LOAD_THRESHOLD = 20.0
DEFAULT_FAN_RESEND_SECONDS = 120
DEFAULT_FAN_OUTLET = 1

# Snapshots smaller than this while the UPS reports WAIT are still initializing.
DEFAULT_MIN_OPERATIONAL_KEYS = 10

DEFAULT_STATUS_HOST = "127.0.0.1"
DEFAULT_STATUS_PORT = 8321

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_BASE_TOPIC = f"{APP_NAME}/{DEFAULT_UPS_NAME}"
