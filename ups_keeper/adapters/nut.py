"""Thin asyncio wrapper around the NUT command line tools.

``upsc`` lists variables, ``upscmd`` sends instant commands and the driver and
daemon lifecycle commands are configurable argv lists. Every call is bounded
by a timeout; failures surface as the transport-level errors of the error
taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from ..config import NutConfig, UpsConfig
from ..core.errors import CommandDeliveryError, DaemonStartError, TransportError
from ..core.models import Scalar

LOGGER = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^-?(?:0|[1-9]\d*)(?:\.\d+)?$")


@dataclass(slots=True, frozen=True)
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        text = (self.stderr or self.stdout).strip()
        return text.splitlines()[-1] if text else f"exit status {self.returncode}"


def coerce_value(raw: str) -> Scalar:
    """Convert numeric NUT values to int/float, keep everything else as text.

    Values with leading zeros (serial numbers, firmware ids) stay strings.
    """
    value = raw.strip()
    if not _NUMBER_RE.match(value):
        return value
    if "." in value:
        return float(value)
    return int(value)


def parse_upsc_output(text: str) -> Dict[str, Scalar]:
    """Parse ``upsc`` output (``name: value`` per line) preserving order."""
    variables: Dict[str, Scalar] = {}
    for line in text.splitlines():
        if not line.strip() or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip()
        if not key or " " in key:
            continue
        variables[key] = coerce_value(value)
    return variables


async def run_command(argv: Sequence[str], *, timeout: float) -> ProcessOutput:
    """Run ``argv`` and collect its output.

    Raises:
        FileNotFoundError: If the executable does not exist.
        asyncio.TimeoutError: If the process does not finish in time; the
            process is killed first.
    """
    LOGGER.debug("Running %s", " ".join(argv))
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        raise
    return ProcessOutput(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class NutClient:
    """Invokes the NUT tools for one configured UPS."""

    def __init__(self, ups: UpsConfig, nut: NutConfig) -> None:
        self._ups = ups
        self._nut = nut

    @property
    def target(self) -> str:
        return self._ups.target

    async def list_variables(self) -> Dict[str, Scalar]:
        """Return all variables reported by ``upsc``.

        Raises:
            TransportError: If ``upsc`` cannot run or reports an error
                (driver not connected, data stale, unknown UPS, ...).
        """
        argv = [self._nut.upsc, self.target]
        try:
            output = await run_command(argv, timeout=self._nut.command_timeout_seconds)
        except FileNotFoundError as exc:
            raise TransportError(f"{self._nut.upsc} not found") from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{self._nut.upsc} timed out") from exc
        except OSError as exc:
            raise TransportError(f"{self._nut.upsc} failed: {exc}") from exc

        if not output.ok:
            raise TransportError(output.message)
        return parse_upsc_output(output.stdout)

    async def instant_command(self, command: str, device: Optional[str] = None) -> None:
        """Send an instant command through ``upscmd``.

        Raises:
            CommandDeliveryError: If ``upscmd`` fails or rejects the command.
        """
        target = self._target_for(device)
        argv = [self._nut.upscmd]
        if self._ups.username:
            argv += ["-u", self._ups.username]
        if self._ups.password:
            argv += ["-p", self._ups.password]
        argv += [target, command]

        try:
            output = await run_command(argv, timeout=self._nut.command_timeout_seconds)
        except FileNotFoundError as exc:
            raise CommandDeliveryError(f"{self._nut.upscmd} not found") from exc
        except asyncio.TimeoutError as exc:
            raise CommandDeliveryError(f"{self._nut.upscmd} timed out") from exc
        except OSError as exc:
            raise CommandDeliveryError(f"{self._nut.upscmd} failed: {exc}") from exc

        if not output.ok or "ERR" in output.stdout.upper():
            raise CommandDeliveryError(output.message)

    async def start_driver(self) -> None:
        await self._lifecycle(
            [*self._nut.driver_start_command, self._ups.name], action="start driver"
        )

    async def start_daemon(self) -> None:
        await self._lifecycle(list(self._nut.daemon_start_command), action="start daemon")

    async def restart_daemon(self) -> None:
        await self._lifecycle(
            list(self._nut.daemon_restart_command), action="restart daemon"
        )

    async def _lifecycle(self, argv: Sequence[str], *, action: str) -> None:
        try:
            output = await run_command(argv, timeout=self._nut.command_timeout_seconds)
        except FileNotFoundError as exc:
            raise DaemonStartError(f"cannot {action}: {argv[0]} not found") from exc
        except asyncio.TimeoutError as exc:
            raise DaemonStartError(f"cannot {action}: timed out") from exc
        except OSError as exc:
            raise DaemonStartError(f"cannot {action}: {exc}") from exc

        if not output.ok:
            raise DaemonStartError(f"cannot {action}: {output.message}")

    def _target_for(self, device: Optional[str]) -> str:
        if not device or device == self._ups.name:
            return self.target
        if "@" in device or not self._ups.host:
            return device
        return f"{device}@{self._ups.host}"
