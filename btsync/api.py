"""Stable public API for building tooling on top of btsync.

This module is the supported integration surface for third-party callers
(status bars, desktop applets, scripts). Avoid importing from internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from btsync.core.agent import CAPABILITY as AGENT_CAPABILITY, PairingAgent
from btsync.core.config import LoadedSettings, load_settings
from btsync.core.decode import describe_class, describe_uuid
from btsync.core.errors import (
    AlreadyRegistered,
    BtsyncError,
    CapabilityUnsupported,
    ConfigLoadError,
    ConfigValidationError,
    DeviceSelectionError,
    PairingCanceled,
    PairingRejected,
    RemoteCallError,
    RemoteUnavailable,
    SubscriptionError,
    TransportError,
    TransportTimeoutError,
)
from btsync.core.model import (
    AdapterStatus,
    AgentSettings,
    BatterySettings,
    Capability,
    Device,
    PluginEntry,
    Settings,
    Subscription,
)
from btsync.core.plugins import PluginRegistry
from btsync.core.prompt import ConsolePrompter, Prompter, PromptInterrupted
from btsync.core.registry import DeviceRegistry
from btsync.core.service import BluetoothService
from btsync.transports.base import Transport, interface_for, path
from btsync.transports.dbus import DBusTransport

__all__ = [
    "AGENT_CAPABILITY",
    "AdapterStatus",
    "AgentSettings",
    "AlreadyRegistered",
    "BatterySettings",
    "BluetoothService",
    "BtsyncError",
    "Capability",
    "CapabilityUnsupported",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConsolePrompter",
    "DBusTransport",
    "Device",
    "DeviceRegistry",
    "DeviceSelectionError",
    "LoadedSettings",
    "PairingAgent",
    "PairingCanceled",
    "PairingRejected",
    "PluginEntry",
    "PluginRegistry",
    "PromptInterrupted",
    "Prompter",
    "RemoteCallError",
    "RemoteUnavailable",
    "Settings",
    "Subscription",
    "SubscriptionError",
    "Transport",
    "TransportError",
    "TransportTimeoutError",
    "describe_class",
    "describe_uuid",
    "interface_for",
    "load_settings",
    "path",
]
