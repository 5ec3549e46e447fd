"""org.bluez.Agent1 surface exported on the bus for the pairing agent.

dbus-fast reads D-Bus signatures from the annotations below, so this module
must not postpone annotation evaluation.
"""

import logging
from typing import TYPE_CHECKING

from dbus_fast.service import ServiceInterface, method

if TYPE_CHECKING:
    from btsync.core.agent import PairingAgent

LOGGER = logging.getLogger(__name__)

AGENT_INTERFACE = "org.bluez.Agent1"


class AgentInterface(ServiceInterface):
    """Forwards every Agent1 call to a ``btsync.core.agent.PairingAgent``.

    Pairing errors raised by the agent are ``DBusError`` subclasses and are
    sent back to the daemon as error replies.
    """

    def __init__(self, agent: "PairingAgent") -> None:
        super().__init__(AGENT_INTERFACE)
        self._agent = agent

    @method()
    def Release(self) -> None:  # noqa: N802
        self._agent.release()

    @method()
    async def RequestPinCode(self, device: "o") -> "s":  # noqa: N802
        return await self._agent.request_pin_code(device)

    @method()
    def DisplayPinCode(self, device: "o", pincode: "s") -> None:  # noqa: N802
        self._agent.display_pin_code(device, pincode)

    @method()
    async def RequestPasskey(self, device: "o") -> "u":  # noqa: N802
        return await self._agent.request_passkey(device)

    @method()
    def DisplayPasskey(self, device: "o", passkey: "u", entered: "q") -> None:  # noqa: N802
        self._agent.display_passkey(device, passkey, entered)

    @method()
    async def RequestConfirmation(self, device: "o", passkey: "u") -> None:  # noqa: N802
        await self._agent.request_confirmation(device, passkey)

    @method()
    async def RequestAuthorization(self, device: "o") -> None:  # noqa: N802
        await self._agent.request_authorization(device)

    @method()
    async def AuthorizeService(self, device: "o", uuid: "s") -> None:  # noqa: N802
        await self._agent.authorize_service(device, uuid)

    @method()
    def Cancel(self) -> None:  # noqa: N802
        LOGGER.debug("Cancel received from the daemon")
        self._agent.cancel()
