"""Battery level plugin backed by org.bluez.Battery1."""

from __future__ import annotations

import logging
from typing import Any

from btsync.core.model import Capability, Device, InfoSink, Subscription
from btsync.core.prompt import Prompter
from btsync.core.registry import DeviceRegistry

LOGGER = logging.getLogger(__name__)

NAME = "battery"


class BatteryPlugin:
    def __init__(self, registry: DeviceRegistry, prompter: Prompter | None = None, *, warning_level: int = 30) -> None:
        self.registry = registry
        self.prompter = prompter
        self.warning_level = warning_level
        self.levels: dict[str, int] = {}
        self._subscriptions: dict[str, Subscription] = {}

    def register(self) -> None:
        self.registry.plugins.register(
            Capability.BATTERY,
            self.on_new,
            info_fn=self.insert_info,
            cleanup_fn=self.cleanup,
            remove_fn=self.on_remove,
        )

    async def on_new(self, device: Device) -> None:
        object_path = self.registry.path_of(device)
        if object_path is None:
            return
        transport = self.registry.transport
        properties = await transport.query_properties(object_path, Capability.BATTERY)
        if not self._tracked(device):
            return
        if "Percentage" in properties:
            self._set_level(device, properties["Percentage"])
        if device.id not in self._subscriptions:
            self._subscriptions[device.id] = transport.register_property_signal(
                object_path,
                Capability.BATTERY,
                lambda changed, _invalidated: self._on_change(device.id, changed),
            )

    def _tracked(self, device: Device) -> bool:
        entry = self.registry.plugins.entry(Capability.BATTERY)
        return entry is not None and device.id in entry.dev_ids

    def _on_change(self, dev_id: str, changed: dict[str, Any]) -> None:
        device = self.registry.get(dev_id)
        if device is None or "Percentage" not in changed:
            return
        self._set_level(device, changed["Percentage"])

    def _set_level(self, device: Device, value: Any) -> None:
        level = int(value)
        previous = self.levels.get(device.id)
        self.levels[device.id] = level
        if level <= self.warning_level and (previous is None or previous > self.warning_level):
            LOGGER.info("Battery of %s is low: %d%%", device.id, level)
            if self.prompter is not None:
                self.prompter.message(f"Bluetooth: battery of {device.alias} is low ({level}%)")

    def on_remove(self, device: Device) -> None:
        self.levels.pop(device.id, None)
        subscription = self._subscriptions.pop(device.id, None)
        if subscription is not None:
            self.registry.transport.unsubscribe(subscription)

    def insert_info(self, device: Device, sink: InfoSink) -> None:
        level = self.levels.get(device.id)
        if level is not None:
            sink("Battery", f"{level}%")

    def cleanup(self) -> None:
        for dev_id in list(self._subscriptions):
            self.registry.transport.unsubscribe(self._subscriptions.pop(dev_id))
        self.levels.clear()

    def summary(self) -> str:
        parts = []
        for dev_id, level in sorted(self.levels.items()):
            device = self.registry.get(dev_id)
            parts.append(f"{device.alias if device else dev_id} {level}%")
        return ", ".join(parts)
