"""Addressing helpers and the transport interface."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

from btsync.core.model import Capability, Subscription

ROOT = "/org/bluez"

INTERFACES: dict[str, str] = {
    Capability.ADAPTER.value: "org.bluez.Adapter1",
    Capability.DEVICE.value: "org.bluez.Device1",
    Capability.AGENT.value: "org.bluez.Agent1",
    Capability.AGENT_MANAGER.value: "org.bluez.AgentManager1",
    Capability.PROPERTIES.value: "org.freedesktop.DBus.Properties",
    Capability.INTROSPECTABLE.value: "org.freedesktop.DBus.Introspectable",
    Capability.OBJECT_MANAGER.value: "org.freedesktop.DBus.ObjectManager",
    Capability.BATTERY.value: "org.bluez.Battery1",
    Capability.INPUT.value: "org.bluez.Input1",
    Capability.NETWORK.value: "org.bluez.Network1",
    Capability.MEDIA_CONTROL.value: "org.bluez.MediaControl1",
    Capability.MEDIA_PLAYER.value: "org.bluez.MediaPlayer1",
    Capability.PROFILE_MANAGER.value: "org.bluez.ProfileManager1",
}

PropertyHandler = Callable[[dict[str, Any], list[str]], None]


def path(*nodes: str, root: str = ROOT) -> str:
    """Join ``root`` and ``nodes`` into an object path."""
    parts = [root.rstrip("/")]
    parts.extend(node.strip("/") for node in nodes if node)
    return "/".join(parts) or "/"


def interface_for(capability: Capability | str) -> str | None:
    """Interface name for ``capability``, or None when it is not in the table."""
    key = capability.value if isinstance(capability, Capability) else str(capability)
    return INTERFACES.get(key)


def last_segment(object_path: str) -> str:
    return object_path.rstrip("/").rsplit("/", 1)[-1]


class Transport(Protocol):
    async def connect(self) -> None:
        """Open the bus connection."""

    def close(self) -> None:
        """Drop the bus connection and abandon in-flight background calls."""

    def path(self, *nodes: str) -> str:
        """Object path below the daemon root."""

    async def adapter_names(self) -> list[str]:
        """Adapter node names in the daemon's introspection order."""

    async def device_ids(self, adapter: str) -> list[str]:
        """Device node names below ``adapter``."""

    async def interfaces_of(self, object_path: str) -> list[str]:
        """Interfaces advertised by the object at ``object_path``."""

    async def query_properties(self, object_path: str, capability: Capability | str) -> dict[str, Any]:
        """Fetch every property of ``capability`` at ``object_path``."""

    async def get_property(self, object_path: str, capability: Capability | str, name: str) -> Any:
        """Fetch a single property."""

    async def set_property(self, object_path: str, capability: Capability | str, name: str, value: Any) -> None:
        """Write a single property."""

    async def toggle_property(self, object_path: str, capability: Capability | str, name: str) -> bool:
        """Negate a boolean property and return the written value."""

    async def call_method(
        self,
        object_path: str,
        capability: Capability | str,
        method: str,
        *args: Any,
        signature: str = "",
        timeout_s: float | None = None,
    ) -> Any:
        """Invoke a method and return its single reply value."""

    def call_method_async(
        self,
        object_path: str,
        capability: Capability | str,
        method: str,
        *args: Any,
        signature: str = "",
        callback: Callable[[Any], None] | None = None,
    ) -> asyncio.Future[None]:
        """Invoke a method without waiting; ``callback`` receives the reply value."""

    def register_property_signal(
        self,
        object_path: str,
        capability: Capability | str,
        handler: PropertyHandler,
        *,
        sender: str | None = None,
    ) -> Subscription:
        """Install a PropertiesChanged handler for ``capability`` at ``object_path``."""

    def unsubscribe(self, handle: Subscription) -> None:
        """Release a subscription returned by ``register_property_signal``."""

    def export_agent(self, object_path: str, agent: Any) -> None:
        """Expose the pairing agent's methods at ``object_path``."""

    def unexport_agent(self, object_path: str) -> None:
        """Withdraw the pairing agent exported at ``object_path``."""

    async def request_name(self, name: str) -> None:
        """Own a well-known bus name."""

    async def release_name(self, name: str) -> None:
        """Give up a well-known bus name."""
