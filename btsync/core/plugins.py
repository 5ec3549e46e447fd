"""Capability-keyed plugin table notified by the device registry."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from btsync.core.errors import AlreadyRegistered, BtsyncError
from btsync.core.model import Capability, Device, InfoSink, PluginEntry, PluginHook

LOGGER = logging.getLogger(__name__)

ImplementsFn = Callable[[Device, str], Awaitable[str | None]]


def _key(capability: Capability | str) -> str:
    return capability.value if isinstance(capability, Capability) else str(capability)


class PluginRegistry:
    """One entry per capability; hooks run in registration order.

    ``implements`` decides whether a device offers a capability. It is the
    device registry's introspection check, so this table never talks to the
    transport itself.
    """

    def __init__(self, implements: ImplementsFn) -> None:
        self._implements = implements
        self._entries: dict[str, PluginEntry] = {}

    def __contains__(self, capability: object) -> bool:
        return isinstance(capability, (str, Capability)) and _key(capability) in self._entries

    def entry(self, capability: Capability | str) -> PluginEntry | None:
        return self._entries.get(_key(capability))

    def capabilities(self) -> list[str]:
        return list(self._entries)

    def register(
        self,
        capability: Capability | str,
        new_fn: PluginHook | None,
        info_fn: Callable[[Device, InfoSink], None] | None = None,
        cleanup_fn: Callable[[], None] | None = None,
        remove_fn: Callable[[Device], None] | None = None,
    ) -> PluginEntry:
        key = _key(capability)
        if key in self._entries:
            raise AlreadyRegistered(f"A plugin is already registered for capability '{key}'")
        entry = PluginEntry(
            capability=key,
            new_fn=new_fn,
            info_fn=info_fn,
            cleanup_fn=cleanup_fn,
            remove_fn=remove_fn,
        )
        self._entries[key] = entry
        LOGGER.debug("Registered plugin for %s", key)
        return entry

    def unregister(self, capability: Capability | str) -> None:
        entry = self._entries.pop(_key(capability), None)
        if entry is None:
            LOGGER.debug("No plugin registered for %s", capability)
            return
        if entry.cleanup_fn is not None:
            entry.cleanup_fn()

    def shutdown(self) -> None:
        for capability in list(self._entries):
            self.unregister(capability)

    async def dev_update(self, device: Device) -> None:
        for key, entry in list(self._entries.items()):
            if device.id in entry.dev_ids:
                continue
            interface = await self._implements(device, key)
            # The table and the device may have changed while introspection
            # was in flight; a disconnect in between already ran dev_remove.
            if not interface or self._entries.get(key) is not entry or device.id in entry.dev_ids:
                continue
            if not device.services_available:
                LOGGER.debug("%s went away before %s could attach", device.id, key)
                return
            entry.dev_ids.add(device.id)
            if entry.new_fn is None:
                continue
            try:
                result = entry.new_fn(device)
                if inspect.isawaitable(result):
                    await result
            except BtsyncError as exc:
                LOGGER.warning("Plugin %s failed for %s: %s", key, device.id, exc)

    def dev_remove(self, device: Device) -> None:
        for key, entry in list(self._entries.items()):
            if device.id not in entry.dev_ids:
                continue
            if entry.remove_fn is not None:
                try:
                    entry.remove_fn(device)
                except BtsyncError as exc:
                    LOGGER.warning("Plugin %s removal failed for %s: %s", key, device.id, exc)
            entry.dev_ids.discard(device.id)

    def insert_infos(self, device: Device, sink: InfoSink) -> None:
        if not device.connected:
            return
        for entry in self._entries.values():
            if entry.info_fn is not None and device.id in entry.dev_ids:
                entry.info_fn(device, sink)
