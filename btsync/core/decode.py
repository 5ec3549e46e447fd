"""Human-readable labels for service UUIDs and Class-of-Device values."""

from __future__ import annotations

import re

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_SHORT_UUID_RE = re.compile(r"^(?:0x)?([0-9a-f]{4}|[0-9a-f]{8})$")

SERVICE_LABELS: dict[int, str] = {
    0x1101: "Serial Port",
    0x1103: "Dialup Networking",
    0x1104: "IrMC Sync",
    0x1105: "OBEX Object Push",
    0x1106: "OBEX File Transfer",
    0x1108: "Headset",
    0x110A: "Audio Source",
    0x110B: "Audio Sink",
    0x110C: "A/V Remote Control Target",
    0x110D: "Advanced Audio Distribution",
    0x110E: "A/V Remote Control",
    0x110F: "A/V Remote Control Controller",
    0x1112: "Headset Audio Gateway",
    0x1115: "PAN User",
    0x1116: "Network Access Point",
    0x1117: "Group Ad-hoc Network",
    0x111E: "Handsfree",
    0x111F: "Handsfree Audio Gateway",
    0x1124: "Human Interface Device",
    0x112D: "SIM Access",
    0x112F: "Phonebook Access Server",
    0x1132: "Message Access Server",
    0x1133: "Message Notification Server",
    0x1200: "PnP Information",
    0x1203: "Generic Audio",
    0x1800: "Generic Access",
    0x1801: "Generic Attribute",
    0x180A: "Device Information",
    0x180D: "Heart Rate",
    0x180F: "Battery Service",
    0x1812: "Human Interface Device over GATT",
    0x1844: "Volume Control",
    0x184E: "Audio Stream Control",
    0x1850: "Published Audio Capabilities",
}

MAJOR_CLASSES: dict[int, str] = {
    0x00: "Miscellaneous",
    0x01: "Computer",
    0x02: "Phone",
    0x03: "Network Access Point",
    0x04: "Audio/Video",
    0x05: "Peripheral",
    0x06: "Imaging",
    0x07: "Wearable",
    0x08: "Toy",
    0x09: "Health",
    0x1F: "Uncategorized",
}

SERVICE_CLASS_BITS: tuple[tuple[int, str], ...] = (
    (13, "Limited Discoverable"),
    (16, "Positioning"),
    (17, "Networking"),
    (18, "Rendering"),
    (19, "Capturing"),
    (20, "Object Transfer"),
    (21, "Audio"),
    (22, "Telephony"),
    (23, "Information"),
)


def short_uuid(uuid: str) -> int | None:
    """Assigned number of a 16/32-bit or base-derived 128-bit UUID."""
    normalized = uuid.strip().lower()
    if normalized.endswith(_BASE_UUID_SUFFIX) and len(normalized) == 36:
        return int(normalized[:8], 16)
    match = _SHORT_UUID_RE.match(normalized)
    if match:
        return int(match.group(1), 16)
    return None


def describe_uuid(uuid: str) -> str:
    number = short_uuid(uuid)
    if number is None:
        return uuid
    return SERVICE_LABELS.get(number, uuid)


def describe_class(value: int) -> str:
    major = (value >> 8) & 0x1F
    label = MAJOR_CLASSES.get(major, f"Reserved (0x{major:02x})")
    services = [name for bit, name in SERVICE_CLASS_BITS if value & (1 << bit)]
    if services:
        return f"{label} ({', '.join(services)})"
    return label
