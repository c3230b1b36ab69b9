"""Host checks: USB presence via sysfs and process liveness via psutil."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import psutil

LOGGER = logging.getLogger(__name__)


def _read_id(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="ascii").strip().lower()
    except OSError:
        return None


def usb_device_present(
    vendor_id: str, product_id: Optional[str] = None, *, root: Path
) -> bool:
    """Return True when a USB device with the given ids is enumerated.

    Scans ``<root>/*/idVendor`` (``/sys/bus/usb/devices`` on Linux). Entries
    that vanish during the scan are ignored.
    """
    vendor = vendor_id.lower()
    product = product_id.lower() if product_id else None
    if not root.is_dir():
        return False

    for entry in root.iterdir():
        if _read_id(entry / "idVendor") != vendor:
            continue
        if product is None or _read_id(entry / "idProduct") == product:
            return True
    return False


def process_running(name: str) -> bool:
    """Return True when a process named ``name`` is alive."""
    for proc in psutil.process_iter(["name"]):
        try:
            if proc.info["name"] == name:
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return False
