"""Health reporting and the local status endpoint for ups-keeper.

Components fall into two groups. The control loop (``telemetry``, ``driver``,
``fan``, ``commands``) is core; the outer surfaces (``mqtt``,
``status-endpoint``) are optional and only ever degrade the service.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional

from aiohttp import web

from .core.errors import ConfigurationError

if TYPE_CHECKING:
    from .control.power_events import PowerEventHub
    from .policy import PolicyStore
    from .telemetry.store import SnapshotStore

LOGGER = logging.getLogger(__name__)

CORE_COMPONENTS = ("telemetry", "driver", "fan", "commands")
OPTIONAL_COMPONENTS = ("mqtt", "status-endpoint")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class ComponentStatus:
    """Latest report for one component.

    ``since`` marks the last healthy/unhealthy flip; ``failures`` counts the
    unhealthy reports received since then (0 while healthy).
    """

    name: str
    healthy: bool
    detail: Optional[str] = None
    failures: int = 0
    since: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def optional(self) -> bool:
        return self.name in OPTIONAL_COMPONENTS

    def following(self, healthy: bool, detail: Optional[str]) -> "ComponentStatus":
        now = _utcnow()
        if healthy:
            since = self.since if self.healthy else now
            return replace(
                self, healthy=True, detail=detail, failures=0, since=since, updated_at=now
            )
        since = now if self.healthy else self.since
        return replace(
            self,
            healthy=False,
            detail=detail,
            failures=self.failures + 1,
            since=since,
            updated_at=now,
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "optional": self.optional,
            "detail": self.detail,
            "failures": self.failures,
            "since": self.since.isoformat(timespec="seconds"),
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Collects component reports and the agent lifecycle state."""

    def __init__(self) -> None:
        self._status: Dict[str, ComponentStatus] = {}
        self._agent: Optional[ComponentStatus] = None
        self._lock = asyncio.Lock()

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            previous = self._status.get(name)
            if previous is None:
                current = ComponentStatus(
                    name=name, healthy=healthy, detail=detail, failures=0 if healthy else 1
                )
            else:
                current = previous.following(healthy, detail)
            self._status[name] = current
        if previous is not None and previous.healthy != healthy:
            LOGGER.info(
                "Component %s is now %s%s",
                name,
                "healthy" if healthy else "unhealthy",
                f" ({detail})" if detail else "",
            )

    async def set_agent_state(
        self, state: str, *, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            self._agent = ComponentStatus(
                name="agent", healthy=healthy, detail=detail if detail is not None else state
            )

    async def get(self, name: str) -> Optional[ComponentStatus]:
        async with self._lock:
            return self._status.get(name)

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            entries = sorted(self._status.values(), key=lambda status: status.name)
            agent = self._agent

        failing_core: List[str] = []
        failing_optional: List[str] = []
        for status in entries:
            if status.healthy:
                continue
            (failing_optional if status.optional else failing_core).append(status.name)

        healthy = not failing_core and not failing_optional
        if agent is not None and not agent.healthy:
            healthy = False

        payload: Dict[str, object] = {
            "status": "ok" if healthy else "degraded",
            "components": [status.as_dict() for status in entries],
            "failing": {"core": failing_core, "optional": failing_optional},
        }
        if agent is not None:
            payload["agentState"] = {
                "state": agent.detail,
                "healthy": agent.healthy,
                "updatedAt": agent.updated_at.isoformat(timespec="seconds"),
            }
        return payload


class StatusServer:
    """Local HTTP surface for tray/UI collaborators.

    Routes:
    - ``GET /healthz``: component health (503 when degraded)
    - ``GET /status``: latest classification and normalized snapshot
    - ``POST /events/screen-locked`` / ``POST /events/screen-unlocked``:
      power events from desktop session hooks
    - ``GET /policy`` / ``PUT /policy``: operator automation preferences
    """

    def __init__(
        self,
        reporter: HealthReporter,
        host: str,
        port: int,
        *,
        store: Optional["SnapshotStore"] = None,
        policy: Optional["PolicyStore"] = None,
        events: Optional["PowerEventHub"] = None,
    ) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._store = store
        self._policy = policy
        self._events = events
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        if self._store is not None:
            app.router.add_get("/status", self._handle_status)
        if self._events is not None:
            app.router.add_post("/events/screen-locked", self._handle_locked)
            app.router.add_post("/events/screen-unlocked", self._handle_unlocked)
        if self._policy is not None:
            app.router.add_get("/policy", self._handle_get_policy)
            app.router.add_put("/policy", self._handle_put_policy)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info("Status endpoint listening on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = await self._reporter.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)

    async def _handle_status(self, request: web.Request) -> web.Response:
        assert self._store is not None
        return web.json_response(self._store.current.as_dict())

    async def _handle_locked(self, request: web.Request) -> web.Response:
        assert self._events is not None
        await self._events.fire_locked()
        return web.json_response({"event": "screen-locked"}, status=202)

    async def _handle_unlocked(self, request: web.Request) -> web.Response:
        assert self._events is not None
        await self._events.fire_unlocked()
        return web.json_response({"event": "screen-unlocked"}, status=202)

    async def _handle_get_policy(self, request: web.Request) -> web.Response:
        assert self._policy is not None
        return web.json_response(self._policy.as_dict())

    async def _handle_put_policy(self, request: web.Request) -> web.Response:
        assert self._policy is not None
        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"error": "invalid JSON body"}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"error": "expected a JSON object"}, status=400)

        try:
            updated = self._policy.update(body)
        except ConfigurationError as exc:
            return web.json_response({"error": str(exc)}, status=400)
        except OSError as exc:
            LOGGER.error("Failed to persist policy: %s", exc)
            return web.json_response({"error": "failed to persist policy"}, status=500)
        return web.json_response(updated.as_dict())
