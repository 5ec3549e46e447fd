"""Pairing agent: answers the daemon's PIN, passkey, and authorization challenges.

Each request is independent. The agent resolves a display name for the
requesting device, asks the user through a ``Prompter``, and turns the answer
into a reply value or one of two errors:

* ``PairingCanceled`` when the read was interrupted, either by the user
  quitting the prompt or by the daemon calling ``Cancel``;
* ``PairingRejected`` when the answer is a refusal or is unusable.

Cancellation wins over rejection: an interrupted read never produces
``PairingRejected``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable
from typing import Any, TypeVar

from btsync.core.decode import describe_uuid
from btsync.core.errors import PairingCanceled, PairingRejected, TransportError
from btsync.core.model import Capability, address_from_id
from btsync.core.prompt import Prompter, PromptInterrupted
from btsync.core.registry import DeviceRegistry
from btsync.transports.base import last_segment

LOGGER = logging.getLogger(__name__)

CAPABILITY = "KeyboardDisplay"
MAX_PIN_LENGTH = 16
MAX_PASSKEY = 999999

_PIN_RE = re.compile(r"^[0-9A-Za-z]+$")

T = TypeVar("T")


def clamp_passkey(value: int) -> int:
    return min(max(value, 0), MAX_PASSKEY)


def normalize_pin(raw: str) -> str | None:
    """Trimmed PIN cut to 16 characters, or None when it is not alphanumeric."""
    pin = raw.strip()[:MAX_PIN_LENGTH]
    if not _PIN_RE.match(pin):
        return None
    return pin


class PairingAgent:
    def __init__(
        self,
        registry: DeviceRegistry,
        prompter: Prompter,
        *,
        path: str = "/org/btsync/agent",
        bus_name: str | None = None,
        default: bool = True,
    ) -> None:
        self.registry = registry
        self.prompter = prompter
        self.path = path
        self.bus_name = bus_name
        self.default = default
        self.registered = False
        self._pending: set[asyncio.Future[Any]] = set()

    # -- lifecycle ----------------------------------------------------------

    async def register(self) -> None:
        transport = self.registry.transport
        transport.export_agent(self.path, self)
        try:
            if self.bus_name:
                await transport.request_name(self.bus_name)
            manager = transport.path()
            await transport.call_method(
                manager, Capability.AGENT_MANAGER, "RegisterAgent", self.path, CAPABILITY, signature="os"
            )
            if self.default:
                await transport.call_method(
                    manager, Capability.AGENT_MANAGER, "RequestDefaultAgent", self.path, signature="o"
                )
        except TransportError:
            await self._release_local()
            raise
        self.registered = True
        LOGGER.info("Pairing agent registered at %s (capability: %s)", self.path, CAPABILITY)

    async def unregister(self) -> None:
        if not self.registered:
            return
        transport = self.registry.transport
        try:
            await transport.call_method(
                transport.path(), Capability.AGENT_MANAGER, "UnregisterAgent", self.path, signature="o"
            )
        except TransportError as exc:
            LOGGER.debug("Agent unregister failed (may already be gone): %s", exc)
        finally:
            await self._release_local()
            self.registered = False
        LOGGER.info("Pairing agent unregistered")

    async def _release_local(self) -> None:
        transport = self.registry.transport
        self.cancel(notify=False)
        transport.unexport_agent(self.path)
        if self.bus_name:
            try:
                await transport.release_name(self.bus_name)
            except TransportError as exc:
                LOGGER.debug("Releasing %s failed: %s", self.bus_name, exc)

    # -- helpers ------------------------------------------------------------

    def device_alias(self, object_path: str) -> str:
        """Display name for the device at ``object_path``; never raises."""
        dev_id = last_segment(str(object_path))
        device = self.registry.get(dev_id)
        if device is not None:
            alias = device.properties.get("Alias")
            if alias:
                return str(alias)
        return address_from_id(dev_id)

    async def _cancel_or_reject(self, action: Awaitable[T]) -> T:
        task = asyncio.ensure_future(action)
        self._pending.add(task)
        try:
            result = await task
        except PromptInterrupted as exc:
            raise PairingCanceled() from exc
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not task.cancelled() or (current is not None and current.cancelling()):
                raise
            raise PairingCanceled() from None
        finally:
            self._pending.discard(task)
        if result is None or result is False or result == "":
            raise PairingRejected()
        return result

    # -- Agent1 operations --------------------------------------------------

    def release(self) -> None:
        LOGGER.debug("Agent released by the daemon")

    async def request_pin_code(self, device: str) -> str:
        alias = self.device_alias(device)

        async def ask() -> str | None:
            return normalize_pin(await self.prompter.read_string(f"Enter PIN code for {alias}: "))

        return await self._cancel_or_reject(ask())

    def display_pin_code(self, device: str, pincode: str) -> None:
        self.prompter.message(f"Bluetooth: PIN code for {self.device_alias(device)}: {pincode}")

    async def request_passkey(self, device: str) -> int:
        alias = self.device_alias(device)

        async def ask() -> int:
            return clamp_passkey(await self.prompter.read_number(f"Enter passkey for {alias}: "))

        return await self._cancel_or_reject(ask())

    def display_passkey(self, device: str, passkey: int, entered: int) -> None:
        self.prompter.message(
            f"Bluetooth: passkey for {self.device_alias(device)}: {passkey:06d}, entered {entered}"
        )

    async def request_confirmation(self, device: str, passkey: int) -> None:
        alias = self.device_alias(device)
        await self._cancel_or_reject(self.prompter.confirm(f"Confirm passkey {passkey:06d} for {alias}?"))

    async def request_authorization(self, device: str) -> None:
        alias = self.device_alias(device)
        await self._cancel_or_reject(self.prompter.confirm(f"Authorize pairing with {alias}?"))

    async def authorize_service(self, device: str, uuid: str) -> None:
        alias = self.device_alias(device)
        service = describe_uuid(uuid)
        await self._cancel_or_reject(self.prompter.confirm(f"Authorize {alias} to access {service}?"))

    def cancel(self, *, notify: bool = True) -> None:
        for task in list(self._pending):
            task.cancel()
        if notify:
            self.prompter.message("Bluetooth: pairing cancelled")
