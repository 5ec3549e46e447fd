"""In-memory mirror of the daemon's devices, kept current by push updates and sweeps."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterator
from typing import Any

from btsync.core.errors import TransportError
from btsync.core.model import Capability, Device, PropertyHook
from btsync.core.plugins import PluginRegistry
from btsync.transports.base import PropertyHandler, Transport, interface_for

LOGGER = logging.getLogger(__name__)

ChangeCallback = Callable[[Device], None]

# Changes to these properties mean the device's services came or went.
_CONNECTION_PROPERTIES = ("Connected", "ServicesResolved")


class DeviceRegistry:
    """Keyed store of device records.

    Only paired devices carry a property subscription; every other record is
    refreshed by ``update_all`` sweeps alone.
    """

    def __init__(self, transport: Transport, plugins: PluginRegistry | None = None) -> None:
        self.transport = transport
        self.plugins = plugins if plugins is not None else PluginRegistry(self.implements)
        self._devices: dict[str, Device] = {}
        self._tasks: set[asyncio.Future[Any]] = set()

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def __contains__(self, dev_id: object) -> bool:
        return dev_id in self._devices

    def ids(self) -> set[str]:
        return set(self._devices)

    def get(self, dev_id: str) -> Device | None:
        return self._devices.get(dev_id)

    def path_of(self, device: Device) -> str | None:
        adapter = device.properties.get("Adapter")
        if not adapter:
            return None
        return f"{adapter}/{device.id}"

    def map(
        self,
        fn: Callable[..., Any],
        filter_fn: Callable[..., bool] | None = None,
        *args: Any,
    ) -> list[Any]:
        return [
            fn(device, *args)
            for device in self
            if filter_fn is None or filter_fn(device, *args)
        ]

    # -- adapters -----------------------------------------------------------

    async def adapter_names(self) -> list[str]:
        return await self.transport.adapter_names()

    async def adapter_properties(self, adapter: str) -> dict[str, Any]:
        return await self.transport.query_properties(self.transport.path(adapter), Capability.ADAPTER)

    # -- records ------------------------------------------------------------

    async def add(self, dev_id: str, adapter: str, on_change: ChangeCallback | None = None) -> Device:
        properties = await self.transport.query_properties(self.transport.path(adapter, dev_id), Capability.DEVICE)
        device = self._devices.get(dev_id)
        if device is None:
            device = Device(id=dev_id)
            self._devices[dev_id] = device
        device.properties = dict(properties)
        self._sync_subscription(device, on_change)
        await self._sync_plugins(device)
        return device

    async def update(
        self,
        dev_id: str,
        snapshot: dict[str, Any],
        on_change: ChangeCallback | None = None,
    ) -> Device | None:
        device = self._devices.get(dev_id)
        if device is None:
            return None
        device.properties = dict(snapshot)
        self._sync_subscription(device, on_change)
        await self._sync_plugins(device)
        return device

    def remove(self, dev_id: str) -> None:
        device = self._devices.get(dev_id)
        if device is None:
            return
        self._release(device)
        self.plugins.dev_remove(device)
        del self._devices[dev_id]

    def clear(self) -> None:
        for dev_id in list(self._devices):
            self.remove(dev_id)
        for task in list(self._tasks):
            task.cancel()

    async def reconcile(self, adapter: str, on_change: ChangeCallback | None = None) -> None:
        adapter_path = self.transport.path(adapter)
        fresh = set(await self.transport.device_ids(adapter))
        cached = {
            dev_id
            for dev_id, device in self._devices.items()
            if device.properties.get("Adapter") in (adapter_path, None)
        }

        for dev_id in sorted(cached - fresh):
            LOGGER.debug("Device %s is gone from %s", dev_id, adapter)
            self.remove(dev_id)

        for dev_id in sorted(fresh):
            try:
                if dev_id in self._devices:
                    snapshot = await self.transport.query_properties(
                        self.transport.path(adapter, dev_id), Capability.DEVICE
                    )
                    await self.update(dev_id, snapshot, on_change)
                else:
                    await self.add(dev_id, adapter, on_change)
            except TransportError as exc:
                LOGGER.warning("Skipping %s on %s: %s", dev_id, adapter, exc)

    async def update_all(self, on_change: ChangeCallback | None = None) -> None:
        for adapter in await self.transport.adapter_names():
            try:
                await self.reconcile(adapter, on_change)
            except TransportError as exc:
                LOGGER.warning("Skipping adapter %s: %s", adapter, exc)

    async def implements(self, device: Device, capability: Capability | str) -> str | None:
        interface = interface_for(capability)
        object_path = self.path_of(device)
        if interface is None or object_path is None:
            return None
        try:
            interfaces = await self.transport.interfaces_of(object_path)
        except TransportError as exc:
            LOGGER.debug("Could not introspect %s: %s", object_path, exc)
            return None
        return interface if interface in interfaces else None

    # -- property hooks -----------------------------------------------------

    def add_property_hook(self, device: Device, prop: str, hook: PropertyHook) -> None:
        hooks = device.property_hooks.setdefault(prop, [])
        if hook not in hooks:
            hooks.append(hook)

    def remove_property_hook(self, device: Device, prop: str, hook: PropertyHook) -> None:
        hooks = device.property_hooks.get(prop)
        if not hooks or hook not in hooks:
            return
        hooks.remove(hook)
        if not hooks:
            del device.property_hooks[prop]

    # -- subscriptions ------------------------------------------------------

    def _sync_subscription(self, device: Device, on_change: ChangeCallback | None) -> None:
        if device.paired:
            if device.subscription is None:
                object_path = self.path_of(device)
                if object_path is None:
                    return
                device.subscription = self.transport.register_property_signal(
                    object_path,
                    Capability.DEVICE,
                    self._make_handler(device.id, on_change),
                )
        else:
            self._release(device)

    def _release(self, device: Device) -> None:
        subscription, device.subscription = device.subscription, None
        if subscription is not None:
            self.transport.unsubscribe(subscription)

    def _make_handler(self, dev_id: str, on_change: ChangeCallback | None) -> PropertyHandler:
        def handle(changed: dict[str, Any], invalidated: list[str]) -> None:
            device = self._devices.get(dev_id)
            if device is None:
                return
            for key, value in changed.items():
                device.properties[key] = value
                if key in _CONNECTION_PROPERTIES:
                    if value:
                        self._spawn(self.plugins.dev_update(device))
                    else:
                        self.plugins.dev_remove(device)
                for hook in list(device.property_hooks.get(key, ())):
                    hook(device, value)
            for key in invalidated:
                device.properties.pop(key, None)
            if "Paired" in changed and not changed["Paired"] and device.subscription is not None:
                # Released on the next loop turn: the bus is still
                # dispatching this signal to its handler list.
                subscription, device.subscription = device.subscription, None
                asyncio.get_running_loop().call_soon(self.transport.unsubscribe, subscription)
            if on_change is not None:
                on_change(device)

        return handle

    async def _sync_plugins(self, device: Device) -> None:
        if device.services_available:
            await self.plugins.dev_update(device)
        else:
            self.plugins.dev_remove(device)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def settle(self) -> None:
        """Wait for plugin notifications scheduled by push updates."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
