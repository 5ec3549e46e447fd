from __future__ import annotations

import asyncio

from conftest import FakePrompter, FakeTransport

from btsync import api


def test_public_names_resolve() -> None:
    for name in api.__all__:
        assert getattr(api, name) is not None
    assert api.AGENT_CAPABILITY == "KeyboardDisplay"
    assert issubclass(api.TransportTimeoutError, api.RemoteUnavailable)
    assert issubclass(api.RemoteCallError, api.BtsyncError)


def test_public_service_as_context_manager(transport: FakeTransport) -> None:
    transport.add_device("dev_AA_AA_AA_AA_AA_01", Alias="Speaker", Paired=True)

    async def scenario() -> list[str]:
        service = api.BluetoothService(transport=transport, settings=api.Settings(), prompter=FakePrompter())
        async with service:
            return [device.alias for device in service.list_devices()]

    assert asyncio.run(scenario()) == ["Speaker"]
    assert transport.active() == []
