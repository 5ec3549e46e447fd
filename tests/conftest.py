from __future__ import annotations

import asyncio
from typing import Any

import pytest

from btsync.core.errors import CapabilityUnsupported, RemoteUnavailable, SubscriptionError
from btsync.core.model import Capability, Settings, Subscription
from btsync.transports import base

DEVICE_IFACE = "org.bluez.Device1"
BATTERY_IFACE = "org.bluez.Battery1"
ADAPTER_IFACE = "org.bluez.Adapter1"


class FakeTransport:
    """In-memory BlueZ: objects keyed by path, each a mapping of interface to properties."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, str, tuple[Any, ...]]] = []
        self.subscriptions: list[Subscription] = []
        self.unsubscribed: list[Subscription] = []
        self.exported: dict[str, Any] = {}
        self.names: list[str] = []
        self.failing_paths: set[str] = set()
        self.fail_methods: dict[str, Exception] = {}
        self.connected = False

    # -- fixture helpers ----------------------------------------------------

    def add_adapter(self, name: str = "hci0", **props: Any) -> str:
        object_path = base.path(name)
        defaults = {"Powered": True, "Discoverable": False, "Pairable": True, "Discovering": False}
        defaults.update(props)
        self.objects[object_path] = {ADAPTER_IFACE: defaults}
        return object_path

    def add_device(self, dev_id: str, adapter: str = "hci0", *, battery: int | None = None, **props: Any) -> str:
        object_path = base.path(adapter, dev_id)
        defaults = {
            "Address": dev_id[4:].replace("_", ":"),
            "Alias": dev_id,
            "Adapter": base.path(adapter),
            "Paired": False,
            "Connected": False,
        }
        defaults.update(props)
        self.objects[object_path] = {DEVICE_IFACE: defaults}
        if battery is not None:
            self.objects[object_path][BATTERY_IFACE] = {"Percentage": battery}
        return object_path

    def drop(self, object_path: str) -> None:
        self.objects.pop(object_path, None)

    def active(self, object_path: str | None = None) -> list[Subscription]:
        return [s for s in self.subscriptions if s.active and (object_path is None or s.path == object_path)]

    def emit(self, object_path: str, interface: str, changed: dict[str, Any], invalidated: list[str] | None = None) -> None:
        for handle in list(self.subscriptions):
            if handle.active and handle.path == object_path and handle.interface == interface:
                handle.handler(dict(changed), list(invalidated or []))

    # -- transport interface ------------------------------------------------

    async def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.connected = False

    def path(self, *nodes: str) -> str:
        return base.path(*nodes)

    def _props(self, object_path: str, capability: Capability | str) -> dict[str, Any]:
        interface = base.interface_for(capability)
        if interface is None:
            raise CapabilityUnsupported(str(capability))
        if object_path in self.failing_paths or object_path not in self.objects:
            raise RemoteUnavailable(f"No object at {object_path}")
        try:
            return self.objects[object_path][interface]
        except KeyError:
            raise RemoteUnavailable(f"{object_path} has no {interface}") from None

    async def adapter_names(self) -> list[str]:
        return [
            p.rsplit("/", 1)[-1]
            for p, ifaces in self.objects.items()
            if ADAPTER_IFACE in ifaces
        ]

    async def device_ids(self, adapter: str) -> list[str]:
        prefix = base.path(adapter) + "/"
        if base.path(adapter) in self.failing_paths:
            raise RemoteUnavailable(f"No object at {base.path(adapter)}")
        return [p[len(prefix):] for p in self.objects if p.startswith(prefix)]

    async def interfaces_of(self, object_path: str) -> list[str]:
        if object_path not in self.objects:
            raise RemoteUnavailable(f"No object at {object_path}")
        return list(self.objects[object_path])

    async def query_properties(self, object_path: str, capability: Capability | str) -> dict[str, Any]:
        return dict(self._props(object_path, capability))

    async def get_property(self, object_path: str, capability: Capability | str, name: str) -> Any:
        return self._props(object_path, capability).get(name)

    async def set_property(self, object_path: str, capability: Capability | str, name: str, value: Any) -> None:
        self.calls.append((object_path, "Set", name, (value,)))
        self._props(object_path, capability)[name] = value

    async def toggle_property(self, object_path: str, capability: Capability | str, name: str) -> bool:
        value = not bool(await self.get_property(object_path, capability, name))
        await self.set_property(object_path, capability, name, value)
        return value

    async def call_method(
        self,
        object_path: str,
        capability: Capability | str,
        method: str,
        *args: Any,
        signature: str = "",
        timeout_s: float | None = None,
    ) -> Any:
        self.calls.append((object_path, base.interface_for(capability) or str(capability), method, args))
        if method in self.fail_methods:
            raise self.fail_methods[method]
        return None

    def call_method_async(
        self,
        object_path: str,
        capability: Capability | str,
        method: str,
        *args: Any,
        signature: str = "",
        callback=None,
    ) -> asyncio.Future[None]:
        async def _run() -> None:
            result = await self.call_method(object_path, capability, method, *args, signature=signature)
            if callback is not None:
                callback(result)

        return asyncio.ensure_future(_run())

    def register_property_signal(self, object_path, capability, handler, *, sender=None) -> Subscription:
        interface = base.interface_for(capability)
        if interface is None:
            raise CapabilityUnsupported(str(capability))
        handle = Subscription(path=object_path, interface=interface, handler=handler)
        self.subscriptions.append(handle)
        return handle

    def unsubscribe(self, handle: Subscription) -> None:
        if not handle.active:
            raise SubscriptionError(f"Subscription for {handle.path} was already released")
        handle.active = False
        self.unsubscribed.append(handle)

    def export_agent(self, object_path: str, agent: Any) -> None:
        self.exported[object_path] = agent

    def unexport_agent(self, object_path: str) -> None:
        self.exported.pop(object_path, None)

    async def request_name(self, name: str) -> None:
        self.names.append(name)

    async def release_name(self, name: str) -> None:
        self.names.remove(name)


class FakePrompter:
    """Scripted answers; ``None`` blocks until cancelled, an exception is raised."""

    def __init__(self, *answers: Any) -> None:
        self.answers = list(answers)
        self.prompts: list[str] = []
        self.messages: list[str] = []

    async def _answer(self, prompt: str) -> Any:
        self.prompts.append(prompt)
        answer = self.answers.pop(0)
        if answer is None:
            await asyncio.Event().wait()
        if isinstance(answer, BaseException):
            raise answer
        return answer

    async def read_string(self, prompt: str) -> str:
        return await self._answer(prompt)

    async def read_number(self, prompt: str) -> int:
        return int(await self._answer(prompt))

    async def confirm(self, prompt: str) -> bool:
        return bool(await self._answer(prompt))

    def message(self, text: str) -> None:
        self.messages.append(text)


@pytest.fixture
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.add_adapter("hci0")
    return fake


@pytest.fixture
def settings() -> Settings:
    return Settings(update_interval_s=60.0)
