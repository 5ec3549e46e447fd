"""Core data models used across the cache, plugins, agent, and CLI."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Capability(str, Enum):
    ADAPTER = "adapter"
    DEVICE = "device"
    AGENT = "agent"
    AGENT_MANAGER = "agent-manager"
    PROPERTIES = "properties"
    INTROSPECTABLE = "introspectable"
    OBJECT_MANAGER = "object-manager"
    BATTERY = "battery"
    INPUT = "input"
    NETWORK = "network"
    MEDIA_CONTROL = "media-control"
    MEDIA_PLAYER = "media-player"
    PROFILE_MANAGER = "profile-manager"


@dataclass(eq=False)
class Subscription:
    """Live property-change registration; released exactly once."""

    path: str
    interface: str
    handler: Callable[..., Any]
    rule: str = ""
    active: bool = True


@dataclass(eq=False)
class Device:
    id: str
    properties: dict[str, Any] = field(default_factory=dict)
    subscription: Subscription | None = None
    property_hooks: dict[str, list[PropertyHook]] = field(default_factory=dict)

    @property
    def alias(self) -> str:
        return str(self.properties.get("Alias") or self.properties.get("Name") or self.address)

    @property
    def address(self) -> str:
        address = self.properties.get("Address")
        if address:
            return str(address)
        return address_from_id(self.id)

    @property
    def paired(self) -> bool:
        return bool(self.properties.get("Paired"))

    @property
    def connected(self) -> bool:
        return bool(self.properties.get("Connected"))

    @property
    def services_available(self) -> bool:
        """Connected, or with services resolved; plugins only track such devices."""
        return self.connected or bool(self.properties.get("ServicesResolved"))


PropertyHook = Callable[[Device, Any], None]
InfoSink = Callable[[str, str], None]


def address_from_id(dev_id: str) -> str:
    """Render ``dev_AA_BB_CC_DD_EE_FF`` as ``AA:BB:CC:DD:EE:FF``."""
    if dev_id.startswith("dev_"):
        dev_id = dev_id[4:]
    return dev_id.replace("_", ":")


PluginHook = Callable[..., Awaitable[None] | None]


@dataclass(eq=False)
class PluginEntry:
    capability: str
    new_fn: PluginHook | None = None
    info_fn: Callable[[Device, InfoSink], None] | None = None
    cleanup_fn: Callable[[], None] | None = None
    remove_fn: Callable[[Device], None] | None = None
    dev_ids: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class AgentSettings:
    enabled: bool = True
    path: str = "/org/btsync/agent"
    bus_name: str | None = None
    default: bool = True


@dataclass(frozen=True)
class BatterySettings:
    warning_level: int = 30


@dataclass(frozen=True)
class Settings:
    bus: str = "system"
    service: str = "org.bluez"
    root: str = "/org/bluez"
    timeout_s: float = 5.0
    pair_timeout_s: float = 60.0
    update_interval_s: float = 2.0
    agent: AgentSettings = field(default_factory=AgentSettings)
    plugins: tuple[str, ...] = ("battery",)
    battery: BatterySettings = field(default_factory=BatterySettings)


@dataclass(frozen=True)
class AdapterStatus:
    name: str
    powered: bool
    discoverable: bool
    pairable: bool
    discovering: bool
