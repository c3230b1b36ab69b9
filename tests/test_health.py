import aiohttp
import pytest

from ups_keeper.control import PowerEventHub
from ups_keeper.core import SnapshotClassification
from ups_keeper.health import HealthReporter, StatusServer
from ups_keeper.policy import Policy, PolicyStore
from ups_keeper.telemetry import SnapshotStore

HOST = "127.0.0.1"


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("telemetry", True)
    await reporter.update("driver", False, "start failed")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    component_list = snapshot.get("components", [])
    assert isinstance(component_list, list)
    components = {item["name"]: item for item in component_list}
    assert components["telemetry"]["healthy"] is True
    assert components["driver"]["healthy"] is False
    assert components["driver"]["detail"] == "start failed"


@pytest.mark.asyncio
async def test_health_reporter_agent_state_affects_status():
    reporter = HealthReporter()

    await reporter.update("telemetry", True)
    await reporter.set_agent_state("degraded", healthy=False)

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    agent = snapshot.get("agentState")
    assert agent is not None
    assert agent["state"] == "degraded"
    assert agent["healthy"] is False


@pytest.mark.asyncio
async def test_failures_count_until_component_recovers():
    reporter = HealthReporter()

    await reporter.update("driver", False, "upsdrvctl exited 1")
    first = await reporter.get("driver")
    await reporter.update("driver", False, "upsdrvctl exited 1")
    second = await reporter.get("driver")

    assert first is not None and second is not None
    assert second.failures == 2
    assert second.since == first.since

    await reporter.update("driver", True, "initialized")
    recovered = await reporter.get("driver")

    assert recovered is not None
    assert recovered.failures == 0
    assert recovered.since >= second.updated_at


@pytest.mark.asyncio
async def test_snapshot_separates_core_and_optional_failures():
    reporter = HealthReporter()

    await reporter.update("telemetry", True)
    await reporter.update("mqtt", False, "disconnected rc=7")
    await reporter.update("fan", False, "outlet.1.load.on: ERR")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    assert snapshot["failing"] == {"core": ["fan"], "optional": ["mqtt"]}
    components = {item["name"]: item for item in snapshot["components"]}
    assert components["mqtt"]["optional"] is True
    assert components["fan"]["optional"] is False
    assert components["fan"]["failures"] == 1
    assert "agentState" not in snapshot


@pytest.mark.asyncio
async def test_healthz_reflects_component_health(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("telemetry", True)

    server = StatusServer(reporter, HOST, unused_tcp_port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            url = f"http://{HOST}:{unused_tcp_port}/healthz"
            async with session.get(url) as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"

            await reporter.update("telemetry", False, "no_data")
            async with session.get(url) as response:
                assert response.status == 503
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_status_route_serves_latest_state(unused_tcp_port):
    store = SnapshotStore()
    store.publish(
        SnapshotClassification.OPERATIONAL, {"ups.load": 12, "battery.charge": 90}
    )
    server = StatusServer(HealthReporter(), HOST, unused_tcp_port, store=store)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{HOST}:{unused_tcp_port}/status") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["classification"] == "operational"
                assert payload["snapshot"] == {"ups.load": 12, "battery.charge": 90}
                assert "updatedAt" in payload
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_event_routes_fire_hub(unused_tcp_port):
    hub = PowerEventHub()
    received = []

    async def locked() -> None:
        received.append("locked")

    async def unlocked() -> None:
        received.append("unlocked")

    hub.subscribe(locked, unlocked)
    server = StatusServer(HealthReporter(), HOST, unused_tcp_port, events=hub)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            base = f"http://{HOST}:{unused_tcp_port}"
            async with session.post(f"{base}/events/screen-locked") as response:
                assert response.status == 202
                assert (await response.json()) == {"event": "screen-locked"}
            async with session.post(f"{base}/events/screen-unlocked") as response:
                assert response.status == 202
    finally:
        await server.stop()

    assert received == ["locked", "unlocked"]


@pytest.mark.asyncio
async def test_policy_routes_read_and_update(unused_tcp_port):
    policy = PolicyStore(Policy(auto_fan=True, auto_shutdown=False))
    server = StatusServer(HealthReporter(), HOST, unused_tcp_port, policy=policy)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            url = f"http://{HOST}:{unused_tcp_port}/policy"
            async with session.get(url) as response:
                assert (await response.json()) == {
                    "auto_fan": True,
                    "auto_shutdown": False,
                }

            async with session.put(url, json={"auto_shutdown": True}) as response:
                assert response.status == 200
                assert (await response.json())["auto_shutdown"] is True

            async with session.put(url, json={"auto_reboot": True}) as response:
                assert response.status == 400

            async with session.put(url, json={"auto_fan": "yes"}) as response:
                assert response.status == 400

            async with session.put(url, json=[True]) as response:
                assert response.status == 400

            async with session.put(url, data=b"not json") as response:
                assert response.status == 400
    finally:
        await server.stop()

    assert policy.auto_shutdown_enabled() is True
    assert policy.auto_fan_enabled() is True


@pytest.mark.asyncio
async def test_optional_routes_absent_without_collaborators(unused_tcp_port):
    server = StatusServer(HealthReporter(), HOST, unused_tcp_port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            base = f"http://{HOST}:{unused_tcp_port}"
            async with session.get(f"{base}/status") as response:
                assert response.status == 404
            async with session.post(f"{base}/events/screen-locked") as response:
                assert response.status == 404
    finally:
        await server.stop()
