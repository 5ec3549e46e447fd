from __future__ import annotations

import asyncio

from conftest import BATTERY_IFACE, DEVICE_IFACE, FakePrompter, FakeTransport

from btsync.core.registry import DeviceRegistry
from btsync.plugins import AVAILABLE, BATTERY
from btsync.plugins.battery import BatteryPlugin

DEV = "dev_AA_AA_AA_AA_AA_01"


def _plugin(transport: FakeTransport, prompter: FakePrompter | None = None) -> BatteryPlugin:
    plugin = BatteryPlugin(DeviceRegistry(transport), prompter, warning_level=30)
    plugin.register()
    return plugin


def test_battery_is_available_by_name() -> None:
    assert AVAILABLE[BATTERY] is BatteryPlugin


def test_level_read_on_connect_and_followed(transport: FakeTransport) -> None:
    path = transport.add_device(DEV, Alias="Headphones", Paired=True, Connected=True, battery=80)
    plugin = _plugin(transport)
    rows: list[tuple[str, str]] = []

    async def scenario() -> None:
        await plugin.registry.update_all()
        transport.emit(path, BATTERY_IFACE, {"Percentage": 75})

    asyncio.run(scenario())
    device = plugin.registry.get(DEV)
    plugin.registry.plugins.insert_infos(device, lambda label, text: rows.append((label, text)))
    assert rows == [("Battery", "75%")]
    assert plugin.summary() == "Headphones 75%"


def test_low_level_notice_once_per_crossing(transport: FakeTransport) -> None:
    path = transport.add_device(DEV, Alias="Headphones", Paired=True, Connected=True, battery=40)
    prompter = FakePrompter()
    plugin = _plugin(transport, prompter)

    async def scenario() -> None:
        await plugin.registry.update_all()
        for level in (30, 25, 50, 10):
            transport.emit(path, BATTERY_IFACE, {"Percentage": level})

    asyncio.run(scenario())
    assert prompter.messages == [
        "Bluetooth: battery of Headphones is low (30%)",
        "Bluetooth: battery of Headphones is low (10%)",
    ]


def test_disconnect_releases_battery_subscription(transport: FakeTransport) -> None:
    path = transport.add_device(DEV, Paired=True, Connected=True, battery=60)
    plugin = _plugin(transport)

    async def scenario() -> None:
        await plugin.registry.update_all()
        transport.emit(path, DEVICE_IFACE, {"Connected": False})

    asyncio.run(scenario())
    assert transport.active(path) != []
    assert [s.interface for s in transport.unsubscribed] == [BATTERY_IFACE]
    assert plugin.levels == {}


def test_cleanup_releases_all_subscriptions(transport: FakeTransport) -> None:
    transport.add_device(DEV, Paired=True, Connected=True, battery=60)
    transport.add_device("dev_AA_AA_AA_AA_AA_02", Connected=True, battery=90)
    plugin = _plugin(transport)

    asyncio.run(plugin.registry.update_all())
    plugin.registry.plugins.unregister(BATTERY)
    assert [s.interface for s in transport.unsubscribed] == [BATTERY_IFACE, BATTERY_IFACE]
    assert plugin.summary() == ""


def test_disconnect_during_attach_leaves_no_state(transport: FakeTransport) -> None:
    path = transport.add_device(DEV, Paired=True, battery=60)
    plugin = _plugin(transport)

    async def scenario() -> None:
        await plugin.registry.update_all()
        transport.emit(path, DEVICE_IFACE, {"Connected": True})
        transport.emit(path, DEVICE_IFACE, {"Connected": False})
        await plugin.registry.settle()

    asyncio.run(scenario())
    entry = plugin.registry.plugins.entry(BATTERY)
    assert DEV not in entry.dev_ids
    assert plugin.levels == {}
    assert [s.interface for s in transport.active(path)] == [DEVICE_IFACE]
