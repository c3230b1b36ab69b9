"""Adapter modules for external integrations."""

from .host import process_running, usb_device_present
from .mqtt import MQTTClient, MQTTConnectionError
from .nut import NutClient, ProcessOutput, parse_upsc_output, run_command

__all__ = [
    "MQTTClient",
    "MQTTConnectionError",
    "NutClient",
    "ProcessOutput",
    "parse_upsc_output",
    "process_running",
    "run_command",
    "usb_device_present",
]
