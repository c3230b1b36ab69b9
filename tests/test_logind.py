"""Tests for the logind screen-lock watcher."""

import asyncio

import pytest

from ups_keeper.adapters.logind import LogindWatcher, parse_signal_member
from ups_keeper.control import PowerEventHub

LOCK_LINE = (
    "signal time=1718000000.123 sender=:1.3 -> destination=(null destination) "
    "serial=812 path=/org/freedesktop/login1/session/_32; "
    "interface=org.freedesktop.login1.Session; member=Lock"
)
UNLOCK_LINE = LOCK_LINE.replace("member=Lock", "member=Unlock")


def test_parse_signal_member_recognises_lock_and_unlock():
    assert parse_signal_member(LOCK_LINE) == "Lock"
    assert parse_signal_member(UNLOCK_LINE) == "Unlock"


def test_parse_signal_member_ignores_other_lines():
    assert parse_signal_member('   string "Lock"') is None
    assert parse_signal_member(LOCK_LINE.replace("member=Lock", "member=PauseDevice")) is None
    assert (
        parse_signal_member(
            LOCK_LINE.replace(
                "org.freedesktop.login1.Session", "org.freedesktop.DBus.Properties"
            )
        )
        is None
    )


def _recording_hub():
    hub = PowerEventHub()
    received = []

    async def locked() -> None:
        received.append("locked")

    async def unlocked() -> None:
        received.append("unlocked")

    hub.subscribe(locked, unlocked)
    return hub, received


@pytest.mark.asyncio
async def test_handle_line_fires_hub():
    hub, received = _recording_hub()
    watcher = LogindWatcher(hub)

    await watcher.handle_line(LOCK_LINE)
    await watcher.handle_line("method call time=1718000000.2 sender=:1.9")
    await watcher.handle_line(UNLOCK_LINE)

    assert received == ["locked", "unlocked"]


@pytest.mark.asyncio
async def test_watcher_follows_monitor_output():
    hub, received = _recording_hub()
    script = f"printf '%s\\n' '{LOCK_LINE}' '{UNLOCK_LINE}'; sleep 5"
    watcher = LogindWatcher(hub, argv=["sh", "-c", script])

    watcher.start()
    for _ in range(100):
        if len(received) == 2:
            break
        await asyncio.sleep(0.02)
    await watcher.stop()

    assert received == ["locked", "unlocked"]


@pytest.mark.asyncio
async def test_missing_monitor_binary_disables_watcher():
    hub, received = _recording_hub()
    watcher = LogindWatcher(hub, argv=["/nonexistent/dbus-monitor"])

    watcher.start()
    await asyncio.sleep(0.05)
    await watcher.stop()

    assert received == []
