"""D-Bus transport implementation using dbus-fast."""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Coroutine
from typing import Any

from dbus_fast import BusType, Message, MessageType, Variant
from dbus_fast.aio import MessageBus
from dbus_fast.errors import DBusError, InvalidIntrospectionError
from dbus_fast.introspection import Node

from btsync.core.errors import (
    CapabilityUnsupported,
    RemoteCallError,
    RemoteUnavailable,
    SubscriptionError,
    TransportError,
    TransportTimeoutError,
)
from btsync.core.model import Capability, Subscription
from btsync.transports import base
from btsync.transports.base import PropertyHandler
from btsync.transports.dbus_agent import AgentInterface

LOGGER = logging.getLogger(__name__)

BLUEZ_SERVICE = "org.bluez"
DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
INTROSPECTABLE_INTERFACE = "org.freedesktop.DBus.Introspectable"

_UNAVAILABLE_ERRORS = frozenset(
    {
        "org.freedesktop.DBus.Error.ServiceUnknown",
        "org.freedesktop.DBus.Error.UnknownObject",
        "org.freedesktop.DBus.Error.UnknownInterface",
        "org.freedesktop.DBus.Error.UnknownMethod",
        "org.freedesktop.DBus.Error.NoReply",
        "org.freedesktop.DBus.Error.Disconnected",
        "org.freedesktop.DBus.Error.NameHasNoOwner",
    }
)


def unwrap(value: Any) -> Any:
    """Strip dbus-fast variants from a reply value, recursively."""
    if isinstance(value, Variant):
        return unwrap(value.value)
    if isinstance(value, dict):
        return {key: unwrap(item) for key, item in value.items()}
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    return value


def variant_for(value: Any) -> Variant:
    if isinstance(value, Variant):
        return value
    if isinstance(value, bool):
        return Variant("b", value)
    if isinstance(value, int):
        return Variant("u" if value >= 0 else "i", value)
    if isinstance(value, str):
        return Variant("s", value)
    raise TypeError(f"Cannot infer a D-Bus signature for {value!r}")


def _reply_error(reply: Message, context: str) -> TransportError:
    name = reply.error_name or "org.freedesktop.DBus.Error.Failed"
    detail = reply.body[0] if reply.body else name
    if name in _UNAVAILABLE_ERRORS:
        return RemoteUnavailable(f"{context}: {detail}")
    return RemoteCallError(name, f"{context}: {detail}")


class DBusTransport:
    def __init__(
        self,
        *,
        bus_type: str = "system",
        service: str = BLUEZ_SERVICE,
        root: str = base.ROOT,
        timeout_s: float = 5.0,
    ) -> None:
        self.bus_type = BusType.SESSION if bus_type == "session" else BusType.SYSTEM
        self.service = service
        self.root = root
        self.timeout_s = timeout_s
        self._bus: MessageBus | None = None
        self._tasks: set[asyncio.Future[Any]] = set()
        self._exported: dict[str, AgentInterface] = {}

    async def connect(self) -> None:
        if self._bus is not None:
            return
        try:
            self._bus = await MessageBus(bus_type=self.bus_type).connect()
        except (OSError, DBusError) as exc:
            raise RemoteUnavailable(f"Could not connect to the {self.bus_type.name.lower()} bus: {exc}") from exc

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._bus is not None:
            self._bus.disconnect()
            self._bus = None

    @property
    def bus(self) -> MessageBus:
        if self._bus is None:
            raise RemoteUnavailable("D-Bus transport is not connected")
        return self._bus

    def path(self, *nodes: str) -> str:
        return base.path(*nodes, root=self.root)

    def _interface(self, capability: Capability | str) -> str:
        interface = base.interface_for(capability)
        if interface is None:
            raise CapabilityUnsupported(f"No interface known for capability '{capability}'")
        return interface

    async def _call(
        self,
        object_path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: list[Any] | tuple[Any, ...] = (),
        *,
        destination: str | None = None,
        timeout_s: float | None = None,
    ) -> list[Any]:
        message = Message(
            destination=destination or self.service,
            path=object_path,
            interface=interface,
            member=member,
            signature=signature,
            body=list(body),
        )
        context = f"{interface}.{member} on {object_path}"
        timeout = self.timeout_s if timeout_s is None else timeout_s
        try:
            reply = await asyncio.wait_for(self.bus.call(message), timeout)
        except asyncio.TimeoutError as exc:
            raise TransportTimeoutError(f"{context} timed out after {timeout}s") from exc
        except (OSError, EOFError) as exc:
            raise RemoteUnavailable(f"{context} failed: {exc}") from exc
        if reply is None:
            return []
        if reply.message_type == MessageType.ERROR:
            raise _reply_error(reply, context)
        return list(reply.body)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Future[None]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _introspect(self, object_path: str) -> Node:
        body = await self._call(object_path, INTROSPECTABLE_INTERFACE, "Introspect")
        try:
            return Node.parse(body[0])
        except (IndexError, ET.ParseError, InvalidIntrospectionError) as exc:
            raise RemoteCallError(
                "org.freedesktop.DBus.Error.InvalidArgs",
                f"Unreadable introspection data for {object_path}",
            ) from exc

    async def adapter_names(self) -> list[str]:
        node = await self._introspect(self.path())
        return [child.name for child in node.nodes if child.name]

    async def device_ids(self, adapter: str) -> list[str]:
        node = await self._introspect(self.path(adapter))
        return [child.name for child in node.nodes if child.name and child.name.startswith("dev_")]

    async def interfaces_of(self, object_path: str) -> list[str]:
        node = await self._introspect(object_path)
        return [interface.name for interface in node.interfaces]

    async def query_properties(self, object_path: str, capability: Capability | str) -> dict[str, Any]:
        interface = self._interface(capability)
        body = await self._call(object_path, PROPERTIES_INTERFACE, "GetAll", "s", [interface])
        return unwrap(body[0]) if body else {}

    async def get_property(self, object_path: str, capability: Capability | str, name: str) -> Any:
        interface = self._interface(capability)
        body = await self._call(object_path, PROPERTIES_INTERFACE, "Get", "ss", [interface, name])
        return unwrap(body[0]) if body else None

    async def set_property(self, object_path: str, capability: Capability | str, name: str, value: Any) -> None:
        interface = self._interface(capability)
        await self._call(
            object_path,
            PROPERTIES_INTERFACE,
            "Set",
            "ssv",
            [interface, name, variant_for(value)],
        )

    async def toggle_property(self, object_path: str, capability: Capability | str, name: str) -> bool:
        # Read-modify-write: a change made by another client between the two
        # calls is overwritten.
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
        interface = self._interface(capability)
        body = await self._call(object_path, interface, method, signature, args, timeout_s=timeout_s)
        return unwrap(body[0]) if body else None

    def call_method_async(
        self,
        object_path: str,
        capability: Capability | str,
        method: str,
        *args: Any,
        signature: str = "",
        callback: Callable[[Any], None] | None = None,
    ) -> asyncio.Future[None]:
        interface = self._interface(capability)

        async def _run() -> None:
            try:
                body = await self._call(object_path, interface, method, signature, args)
            except TransportError as exc:
                LOGGER.warning("%s", exc)
                return
            if callback is not None:
                callback(unwrap(body[0]) if body else None)

        return self._spawn(_run())

    async def _bus_daemon_call(self, member: str, rule: str) -> None:
        try:
            await self._call(DBUS_PATH, DBUS_SERVICE, member, "s", [rule], destination=DBUS_SERVICE)
        except TransportError as exc:
            LOGGER.warning("%s for '%s' failed: %s", member, rule, exc)

    def register_property_signal(
        self,
        object_path: str,
        capability: Capability | str,
        handler: PropertyHandler,
        *,
        sender: str | None = None,
    ) -> Subscription:
        interface = self._interface(capability)
        rule = (
            f"type='signal',interface='{PROPERTIES_INTERFACE}',member='PropertiesChanged',"
            f"path='{object_path}',arg0='{interface}'"
        )
        if sender:
            rule += f",sender='{sender}'"

        def _on_message(message: Message) -> None:
            if message.message_type is not MessageType.SIGNAL:
                return
            if message.member != "PropertiesChanged" or message.interface != PROPERTIES_INTERFACE:
                return
            if message.path != object_path or not message.body or message.body[0] != interface:
                return
            _, changed, invalidated = message.body
            try:
                handler(unwrap(changed), list(invalidated))
            except Exception:
                LOGGER.exception("PropertiesChanged handler for %s failed", object_path)

        self.bus.add_message_handler(_on_message)
        self._spawn(self._bus_daemon_call("AddMatch", rule))
        return Subscription(path=object_path, interface=interface, handler=_on_message, rule=rule)

    def unsubscribe(self, handle: Subscription) -> None:
        if not handle.active:
            raise SubscriptionError(f"Subscription for {handle.path} was already released")
        handle.active = False
        if self._bus is None:
            return
        self._bus.remove_message_handler(handle.handler)
        self._spawn(self._bus_daemon_call("RemoveMatch", handle.rule))

    def export_agent(self, object_path: str, agent: Any) -> None:
        interface = AgentInterface(agent)
        self.bus.export(object_path, interface)
        self._exported[object_path] = interface

    def unexport_agent(self, object_path: str) -> None:
        interface = self._exported.pop(object_path, None)
        if interface is not None and self._bus is not None:
            self._bus.unexport(object_path, interface)

    async def request_name(self, name: str) -> None:
        try:
            await self.bus.request_name(name)
        except DBusError as exc:
            raise RemoteCallError(exc.type, f"Could not own bus name {name}: {exc.text}") from exc

    async def release_name(self, name: str) -> None:
        try:
            await self.bus.release_name(name)
        except DBusError as exc:
            raise RemoteCallError(exc.type, f"Could not release bus name {name}: {exc.text}") from exc
