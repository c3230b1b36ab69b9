"""Logging setup for the ups-keeper service and CLI."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# journald stamps every line itself.
JOURNAL_FORMAT = "%(levelname)s | %(name)s | %(message)s"

LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3

NETWORK_LOGGERS = ("paho", "aiohttp.access", "aiohttp.server")


def _under_journald() -> bool:
    return bool(os.environ.get("JOURNAL_STREAM") or os.environ.get("INVOCATION_ID"))


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Install console (and optionally file) handlers on the root logger.

    Parameters
    ----------
    level:
        Log level name, e.g. "DEBUG" to see per-tick controller output.
    log_path:
        Size-rotated log file. ``None`` keeps logging on the console only.
    log_network:
        Leave the MQTT client and HTTP access logs at the root level instead
        of limiting them to warnings.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    console = logging.StreamHandler()
    console.setFormatter(
        logging.Formatter(JOURNAL_FORMAT if _under_journald() else LOG_FORMAT)
    )
    root.addHandler(console)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
