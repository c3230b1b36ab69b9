"""Command-line interface for ups-keeper."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import UpsKeeperApp
from .backends import NutBackend
from .config import KeeperConfig, load_config
from .core import ConfigurationError, TransportError
from .policy import PolicyStore
from .telemetry import BatteryCalibration, classify, normalize

LOGGER = logging.getLogger(__name__)

_SWITCH = {"on": True, "off": False}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ups-keeper", description="UPS automation service for NUT-managed devices"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the ups-keeper service")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    policy_parser = subparsers.add_parser(
        "set-policy", help="Persist the automation policy"
    )
    policy_parser.add_argument("--auto-fan", choices=sorted(_SWITCH))
    policy_parser.add_argument("--auto-shutdown", choices=sorted(_SWITCH))

    subparsers.add_parser(
        "status", help="Fetch one telemetry snapshot and print it as JSON"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if args.command == "start":
        UpsKeeperApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    if args.command == "set-policy":
        return _set_policy(config, args.auto_fan, args.auto_shutdown)

    if args.command == "status":
        return asyncio.run(_print_status(config))

    LOGGER.error("Unknown command: %s", args.command)
    return 1


def _set_policy(
    config: KeeperConfig, auto_fan: Optional[str], auto_shutdown: Optional[str]
) -> int:
    values = {}
    if auto_fan is not None:
        values["auto_fan"] = _SWITCH[auto_fan]
    if auto_shutdown is not None:
        values["auto_shutdown"] = _SWITCH[auto_shutdown]
    if not values:
        LOGGER.error("Nothing to update; pass --auto-fan and/or --auto-shutdown")
        return 1

    store = PolicyStore.from_config(config)
    try:
        policy = store.update(values)
    except OSError as exc:
        LOGGER.error("Failed to write %s: %s", config.path, exc)
        return 1
    print(json.dumps(policy.as_dict(), indent=2))
    return 0


async def _print_status(config: KeeperConfig) -> int:
    backend = NutBackend(config)
    try:
        raw = await backend.fetch_telemetry()
    except TransportError as exc:
        LOGGER.error("Telemetry unavailable: %s", exc)
        return 1
    if not raw:
        LOGGER.error("UPS %s returned no telemetry", backend.device_name)
        return 1

    calibration = BatteryCalibration(
        config.battery.voltage_low, config.battery.voltage_high
    )
    snapshot = normalize(raw, calibration)
    payload = {
        "classification": classify(
            snapshot, min_operational_keys=config.telemetry.min_operational_keys
        ).value,
        "snapshot": dict(snapshot),
    }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
