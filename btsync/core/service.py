"""Service layer tying transport, device cache, plugins, and agent together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from btsync.core.agent import PairingAgent
from btsync.core.config import load_settings
from btsync.core.decode import describe_class, describe_uuid
from btsync.core.errors import DeviceSelectionError, RemoteUnavailable, TransportError
from btsync.core.model import AdapterStatus, Capability, Device, Settings
from btsync.core.prompt import ConsolePrompter, Prompter
from btsync.core.registry import ChangeCallback, DeviceRegistry
from btsync.plugins import AVAILABLE
from btsync.transports.base import Transport
from btsync.transports.dbus import DBusTransport

LOGGER = logging.getLogger(__name__)


def _yes_no(value: Any) -> str:
    return "yes" if value else "no"


class BluetoothService:
    def __init__(
        self,
        *,
        transport: Transport | None = None,
        settings: Settings | None = None,
        prompter: Prompter | None = None,
    ) -> None:
        if settings is None:
            loaded = load_settings()
            settings = loaded.settings
            self.load_warnings = loaded.warnings
        else:
            self.load_warnings = ()
        self.settings = settings
        self.transport = transport or DBusTransport(
            bus_type=settings.bus,
            service=settings.service,
            root=settings.root,
            timeout_s=settings.timeout_s,
        )
        self.prompter = prompter or ConsolePrompter()
        self.registry = DeviceRegistry(self.transport)
        self.plugins = self.registry.plugins
        self.agent = PairingAgent(
            self.registry,
            self.prompter,
            path=settings.agent.path,
            bus_name=settings.agent.bus_name,
            default=settings.agent.default,
        )
        self.loaded_plugins: dict[str, Any] = {}
        self.on_change: ChangeCallback | None = None
        self._update_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> BluetoothService:
        await self.start(run_agent=False, updates=False)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -- lifecycle ----------------------------------------------------------

    async def start(self, *, run_agent: bool | None = None, updates: bool = True) -> None:
        await self.transport.connect()
        self._load_plugins()
        if run_agent is None:
            run_agent = self.settings.agent.enabled
        if run_agent:
            await self.agent.register()
        await self.registry.update_all(self.on_change)
        if updates:
            self._update_task = asyncio.ensure_future(self._update_loop())

    async def stop(self) -> None:
        if self._update_task is not None:
            self._update_task.cancel()
            try:
                await self._update_task
            except asyncio.CancelledError:
                pass
            self._update_task = None
        await self.agent.unregister()
        self.plugins.shutdown()
        self.loaded_plugins.clear()
        self.registry.clear()
        self.transport.close()

    def _load_plugins(self) -> None:
        for name in self.settings.plugins:
            if name in self.loaded_plugins:
                continue
            plugin = AVAILABLE[name](
                self.registry,
                self.prompter,
                warning_level=self.settings.battery.warning_level,
            )
            plugin.register()
            self.loaded_plugins[name] = plugin

    async def _update_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.update_interval_s)
            try:
                await self.registry.update_all(self.on_change)
            except TransportError as exc:
                LOGGER.warning("Device sweep failed: %s", exc)

    # -- lookups ------------------------------------------------------------

    async def adapter(self) -> str:
        names = await self.registry.adapter_names()
        if not names:
            raise RemoteUnavailable("No Bluetooth adapter found")
        return names[0]

    async def adapter_status(self, adapter: str | None = None) -> AdapterStatus:
        adapter = adapter or await self.adapter()
        props = await self.registry.adapter_properties(adapter)
        return AdapterStatus(
            name=adapter,
            powered=bool(props.get("Powered")),
            discoverable=bool(props.get("Discoverable")),
            pairable=bool(props.get("Pairable")),
            discovering=bool(props.get("Discovering")),
        )

    async def status_line(self) -> str:
        status = await self.adapter_status()
        flags = [
            name
            for name, enabled in (
                ("discoverable", status.discoverable),
                ("pairable", status.pairable),
                ("scanning", status.discovering),
            )
            if enabled
        ]
        line = f"{status.name}: {'on' if status.powered else 'off'}"
        if flags:
            line += f" [{' '.join(flags)}]"
        summaries = [
            plugin.summary()
            for plugin in self.loaded_plugins.values()
            if hasattr(plugin, "summary") and plugin.summary()
        ]
        if summaries:
            line += " " + " ".join(summaries)
        return line

    def list_devices(self) -> list[Device]:
        return sorted(self.registry, key=lambda d: (d.alias.lower(), d.id))

    def find_device(self, hint: str) -> Device:
        device = self.registry.get(hint)
        if device is not None:
            return device
        needle = hint.lower()
        matches = [
            d
            for d in self.registry
            if d.address.lower() == needle or needle in d.alias.lower() or needle in d.address.lower()
        ]
        exact = [d for d in matches if d.address.lower() == needle or d.alias.lower() == needle]
        if len(exact) == 1:
            return exact[0]
        if not matches:
            raise DeviceSelectionError(f"No device found matching '{hint}'")
        if len(matches) > 1:
            candidates = ", ".join(f"{d.address} ({d.alias})" for d in matches)
            raise DeviceSelectionError(
                f"Multiple devices match '{hint}': {candidates}. Use the address to choose one."
            )
        return matches[0]

    def describe(self, device: Device) -> list[tuple[str, str]]:
        props = device.properties
        rows: list[tuple[str, str]] = [
            ("Alias", device.alias),
            ("Address", device.address),
        ]
        if "Class" in props:
            rows.append(("Class", describe_class(int(props["Class"]))))
        rows.extend(
            [
                ("Paired", _yes_no(props.get("Paired"))),
                ("Trusted", _yes_no(props.get("Trusted"))),
                ("Blocked", _yes_no(props.get("Blocked"))),
                ("Connected", _yes_no(props.get("Connected"))),
            ]
        )
        uuids = props.get("UUIDs") or []
        if uuids:
            rows.append(("Services", ", ".join(sorted(describe_uuid(u) for u in uuids))))
        self.plugins.insert_infos(device, lambda label, text: rows.append((label, text)))
        return rows

    # -- device commands ----------------------------------------------------

    def _device_path(self, device: Device) -> str:
        object_path = self.registry.path_of(device)
        if object_path is None:
            raise DeviceSelectionError(f"Device {device.id} has no known adapter yet")
        return object_path

    async def connect(self, device: Device) -> None:
        await self.transport.call_method(self._device_path(device), Capability.DEVICE, "Connect")

    async def disconnect(self, device: Device) -> None:
        await self.transport.call_method(self._device_path(device), Capability.DEVICE, "Disconnect")

    async def connect_profile(self, device: Device, uuid: str) -> None:
        await self.transport.call_method(
            self._device_path(device), Capability.DEVICE, "ConnectProfile", uuid, signature="s"
        )

    async def disconnect_profile(self, device: Device, uuid: str) -> None:
        await self.transport.call_method(
            self._device_path(device), Capability.DEVICE, "DisconnectProfile", uuid, signature="s"
        )

    async def pair(self, device: Device) -> None:
        await self.transport.call_method(
            self._device_path(device),
            Capability.DEVICE,
            "Pair",
            timeout_s=self.settings.pair_timeout_s,
        )

    async def remove_device(self, device: Device) -> None:
        object_path = self._device_path(device)
        adapter_path = object_path.rsplit("/", 1)[0]
        await self.transport.call_method(
            adapter_path, Capability.ADAPTER, "RemoveDevice", object_path, signature="o"
        )
        self.registry.remove(device.id)

    async def toggle_trusted(self, device: Device) -> bool:
        return await self.transport.toggle_property(self._device_path(device), Capability.DEVICE, "Trusted")

    async def toggle_blocked(self, device: Device) -> bool:
        return await self.transport.toggle_property(self._device_path(device), Capability.DEVICE, "Blocked")

    async def set_alias(self, device: Device, alias: str) -> None:
        await self.transport.set_property(self._device_path(device), Capability.DEVICE, "Alias", alias)
        device.properties["Alias"] = alias

    # -- adapter commands ---------------------------------------------------

    async def _toggle_adapter(self, name: str, adapter: str | None) -> bool:
        adapter = adapter or await self.adapter()
        return await self.transport.toggle_property(self.transport.path(adapter), Capability.ADAPTER, name)

    async def toggle_powered(self, adapter: str | None = None) -> bool:
        return await self._toggle_adapter("Powered", adapter)

    async def toggle_discoverable(self, adapter: str | None = None) -> bool:
        return await self._toggle_adapter("Discoverable", adapter)

    async def toggle_pairable(self, adapter: str | None = None) -> bool:
        return await self._toggle_adapter("Pairable", adapter)

    async def start_discovery(self, adapter: str | None = None) -> asyncio.Future[None]:
        adapter = adapter or await self.adapter()
        return self.transport.call_method_async(
            self.transport.path(adapter),
            Capability.ADAPTER,
            "StartDiscovery",
            callback=lambda _: LOGGER.info("Discovery started on %s", adapter),
        )

    async def stop_discovery(self, adapter: str | None = None) -> None:
        adapter = adapter or await self.adapter()
        await self.transport.call_method(self.transport.path(adapter), Capability.ADAPTER, "StopDiscovery")
