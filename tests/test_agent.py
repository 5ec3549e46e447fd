from __future__ import annotations

import asyncio

import pytest
from conftest import FakePrompter, FakeTransport

from btsync.core.agent import CAPABILITY, PairingAgent, clamp_passkey, normalize_pin
from btsync.core.errors import PairingCanceled, PairingRejected, RemoteCallError, RemoteUnavailable
from btsync.core.prompt import PromptInterrupted
from btsync.core.registry import DeviceRegistry

DEV = "dev_AA_BB_CC_DD_EE_FF"
AGENT_PATH = "/org/btsync/agent"
MANAGER = ("/org/bluez", "org.bluez.AgentManager1")


def _agent(transport: FakeTransport, *answers: object, **kwargs: object) -> PairingAgent:
    return PairingAgent(DeviceRegistry(transport), FakePrompter(*answers), **kwargs)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1234", "1234"),
        ("  0000  ", "0000"),
        ("abcd1234efgh5678extra", "abcd1234efgh5678"),
        ("", None),
        ("12-34", None),
        ("   ", None),
    ],
)
def test_normalize_pin(raw: str, expected: str | None) -> None:
    assert normalize_pin(raw) == expected


@pytest.mark.parametrize(("value", "expected"), [(-5, 0), (0, 0), (4242, 4242), (1000000, 999999)])
def test_clamp_passkey(value: int, expected: int) -> None:
    assert clamp_passkey(value) == expected


def test_request_pin_code_uses_cached_alias(transport: FakeTransport) -> None:
    device_path = transport.add_device(DEV, Alias="Headphones")
    agent = _agent(transport, " 1234 ")

    async def scenario() -> str:
        await agent.registry.add(DEV, "hci0")
        return await agent.request_pin_code(device_path)

    assert asyncio.run(scenario()) == "1234"
    assert agent.prompter.prompts == ["Enter PIN code for Headphones: "]


def test_alias_falls_back_to_address_for_unknown_device(transport: FakeTransport) -> None:
    agent = _agent(transport)
    assert agent.device_alias(transport.path("hci0", DEV)) == "AA:BB:CC:DD:EE:FF"


def test_invalid_pin_is_rejected(transport: FakeTransport) -> None:
    agent = _agent(transport, "12-34")

    with pytest.raises(PairingRejected):
        asyncio.run(agent.request_pin_code(transport.path("hci0", DEV)))


def test_empty_pin_is_rejected(transport: FakeTransport) -> None:
    agent = _agent(transport, "")

    with pytest.raises(PairingRejected):
        asyncio.run(agent.request_pin_code(transport.path("hci0", DEV)))


@pytest.mark.parametrize(("answer", "expected"), [("-5", 0), ("1000000", 999999), ("4242", 4242)])
def test_request_passkey_is_clamped(transport: FakeTransport, answer: str, expected: int) -> None:
    agent = _agent(transport, answer)

    assert asyncio.run(agent.request_passkey(transport.path("hci0", DEV))) == expected


def test_interrupted_prompt_cancels(transport: FakeTransport) -> None:
    agent = _agent(transport, PromptInterrupted())

    with pytest.raises(PairingCanceled):
        asyncio.run(agent.request_passkey(transport.path("hci0", DEV)))


def test_daemon_cancel_beats_rejection(transport: FakeTransport) -> None:
    agent = _agent(transport, None)

    async def scenario() -> None:
        pending = asyncio.ensure_future(agent.request_pin_code(transport.path("hci0", DEV)))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        agent.cancel()
        await pending

    with pytest.raises(PairingCanceled):
        asyncio.run(scenario())
    assert agent.prompter.messages == ["Bluetooth: pairing cancelled"]
    assert agent._pending == set()


def test_outer_cancellation_propagates(transport: FakeTransport) -> None:
    agent = _agent(transport, None)

    async def scenario() -> None:
        pending = asyncio.ensure_future(agent.request_authorization(transport.path("hci0", DEV)))
        await asyncio.sleep(0)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

    asyncio.run(scenario())


def test_confirmation_declined_is_rejected(transport: FakeTransport) -> None:
    agent = _agent(transport, False)

    with pytest.raises(PairingRejected):
        asyncio.run(agent.request_confirmation(transport.path("hci0", DEV), 42))
    assert agent.prompter.prompts == ["Confirm passkey 000042 for AA:BB:CC:DD:EE:FF?"]


def test_confirmation_accepted(transport: FakeTransport) -> None:
    agent = _agent(transport, True)

    assert asyncio.run(agent.request_confirmation(transport.path("hci0", DEV), 123456)) is None


def test_authorize_service_names_the_profile(transport: FakeTransport) -> None:
    agent = _agent(transport, True)

    asyncio.run(agent.authorize_service(transport.path("hci0", DEV), "0000110b-0000-1000-8000-00805f9b34fb"))
    assert agent.prompter.prompts == ["Authorize AA:BB:CC:DD:EE:FF to access Audio Sink?"]


def test_display_operations_only_notify(transport: FakeTransport) -> None:
    agent = _agent(transport)
    device_path = transport.path("hci0", DEV)

    agent.display_pin_code(device_path, "0000")
    agent.display_passkey(device_path, 42, 3)
    assert agent.prompter.messages == [
        "Bluetooth: PIN code for AA:BB:CC:DD:EE:FF: 0000",
        "Bluetooth: passkey for AA:BB:CC:DD:EE:FF: 000042, entered 3",
    ]
    assert agent.prompter.prompts == []


def test_register_and_unregister(transport: FakeTransport) -> None:
    agent = _agent(transport, bus_name="org.btsync.Agent")

    async def scenario() -> None:
        await agent.register()
        assert transport.exported == {AGENT_PATH: agent}
        assert transport.names == ["org.btsync.Agent"]
        await agent.unregister()

    asyncio.run(scenario())
    assert [call[:3] for call in transport.calls] == [
        (*MANAGER, "RegisterAgent"),
        (*MANAGER, "RequestDefaultAgent"),
        (*MANAGER, "UnregisterAgent"),
    ]
    assert transport.calls[0][3] == (AGENT_PATH, CAPABILITY)
    assert transport.exported == {}
    assert transport.names == []
    assert not agent.registered


def test_register_without_default_request(transport: FakeTransport) -> None:
    agent = _agent(transport, default=False)

    asyncio.run(agent.register())
    assert [call[2] for call in transport.calls] == ["RegisterAgent"]


def test_failed_registration_releases_export(transport: FakeTransport) -> None:
    transport.fail_methods["RegisterAgent"] = RemoteCallError("org.bluez.Error.AlreadyExists", "Already Exists")
    agent = _agent(transport)

    with pytest.raises(RemoteCallError):
        asyncio.run(agent.register())
    assert transport.exported == {}
    assert not agent.registered


def test_unregister_cleans_up_when_daemon_is_gone(transport: FakeTransport) -> None:
    agent = _agent(transport)

    async def scenario() -> None:
        await agent.register()
        transport.fail_methods["UnregisterAgent"] = RemoteUnavailable("bluetoothd went away")
        await agent.unregister()

    asyncio.run(scenario())
    assert transport.exported == {}
    assert not agent.registered
