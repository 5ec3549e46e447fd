"""Domain-specific errors for btsync."""

from dbus_fast.errors import DBusError


class BtsyncError(Exception):
    """Base error for btsync."""


class ConfigLoadError(BtsyncError):
    """Raised when the configuration file cannot be read."""


class ConfigValidationError(BtsyncError):
    """Raised when the configuration does not conform to schema or semantics."""


class DeviceSelectionError(BtsyncError):
    """Raised when a device hint cannot be resolved to a single cached device."""


class CapabilityUnsupported(BtsyncError):
    """Raised when a capability has no interface in the addressing table."""


class AlreadyRegistered(BtsyncError):
    """Raised when a plugin capability already has an owner."""


class TransportError(BtsyncError):
    """Base transport error."""


class RemoteUnavailable(TransportError):
    """Raised when the daemon or the addressed object cannot be reached."""


class TransportTimeoutError(RemoteUnavailable):
    """Raised when a remote call exceeds its timeout."""


class RemoteCallError(TransportError):
    """Raised when the daemon answers a call with an error reply."""

    def __init__(self, error_name: str, message: str) -> None:
        super().__init__(message)
        self.error_name = error_name


class SubscriptionError(TransportError):
    """Raised when a subscription handle is released twice."""


# The daemon's pairing state machine branches on these two error names.
CANCELED_ERROR = "org.bluez.Error.Canceled"
REJECTED_ERROR = "org.bluez.Error.Rejected"


class PairingCanceled(DBusError):
    """Answer to a pairing request interrupted by the user or the daemon."""

    def __init__(self, text: str = "Pairing canceled") -> None:
        super().__init__(CANCELED_ERROR, text)


class PairingRejected(DBusError):
    """Answer to a pairing request the user declined or answered invalidly."""

    def __init__(self, text: str = "Pairing rejected") -> None:
        super().__init__(REJECTED_ERROR, text)
