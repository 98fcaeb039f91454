"""Device lists and attach/detach notifications of the USB multiplexer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .lockdown import _parse_plist


@dataclass
class DeviceProperties:
    """Connection details of a device; the serial number is its UDID."""

    connection_speed: int = 0
    connection_type: str = ""
    device_id: int = 0
    location_id: int = 0
    product_id: int = 0
    serial_number: str = ""


@dataclass
class DeviceEntry:
    """A connected device as reported by the multiplexer."""

    device_id: int = 0
    message_type: str = ""
    properties: DeviceProperties = field(default_factory=DeviceProperties)


@dataclass
class DeviceList:
    """All currently connected devices."""

    devices: list[DeviceEntry] = field(default_factory=list)

    def __str__(self) -> str:
        return "".join(f"{entry.properties.serial_number}\n" for entry in self.devices)

    def to_json_map(self) -> dict[str, Any]:
        """Return a JSON ready mapping holding the UDIDs of all devices."""
        return {"deviceList": [entry.properties.serial_number for entry in self.devices]}


def _properties_from_dict(raw: Any) -> DeviceProperties:
    if not isinstance(raw, dict):
        return DeviceProperties()
    return DeviceProperties(
        connection_speed=int(raw.get("ConnectionSpeed", 0)),
        connection_type=str(raw.get("ConnectionType", "")),
        device_id=int(raw.get("DeviceID", 0)),
        location_id=int(raw.get("LocationID", 0)),
        product_id=int(raw.get("ProductID", 0)),
        serial_number=str(raw.get("SerialNumber", "")),
    )


def device_list_from_bytes(data: bytes) -> DeviceList:
    """Parse a ListDevices reply; undecodable data yields an empty list."""
    try:
        parsed = _parse_plist(data)
    except ValueError:
        return DeviceList()
    if not isinstance(parsed, dict) or not isinstance(parsed.get("DeviceList"), list):
        return DeviceList()
    devices = []
    for raw in parsed["DeviceList"]:
        if not isinstance(raw, dict):
            continue
        try:
            devices.append(
                DeviceEntry(
                    device_id=int(raw.get("DeviceID", 0)),
                    message_type=str(raw.get("MessageType", "")),
                    properties=_properties_from_dict(raw.get("Properties")),
                )
            )
        except (TypeError, ValueError):
            continue
    return DeviceList(devices)


def read_devices_request() -> dict[str, Any]:
    """Build the request asking the multiplexer for its device list."""
    return {
        "MessageType": "ListDevices",
        "ProgName": "go-usbmux",
        "ClientVersionString": "go-usbmux-0.0.1",
    }


def listen_request() -> dict[str, Any]:
    """Build the request that subscribes to attach and detach notifications."""
    return {
        "MessageType": "Listen",
        "ProgName": "go-usbmux",
        "ClientVersionString": "usbmuxd-471.8.1",
        "ConnType": 1,
    }


@dataclass
class AttachedMessage:
    """Notification that a device was connected or disconnected."""

    message_type: str = ""
    device_id: int = 0
    properties: DeviceProperties = field(default_factory=DeviceProperties)

    def device_entry(self) -> DeviceEntry:
        """Return the device this notification is about as an attached entry."""
        return DeviceEntry(
            device_id=self.device_id, message_type="Attached", properties=self.properties
        )

    def attached(self) -> bool:
        """True if the notification is about a newly added device."""
        return self.message_type == "Attached"

    def detached(self) -> bool:
        """True if the notification is about a disconnected device."""
        return self.message_type == "Detached"


def attached_from_bytes(data: bytes) -> AttachedMessage:
    """Parse an attach/detach notification; raises ValueError for malformed data."""
    parsed = _parse_plist(data)
    if not isinstance(parsed, dict):
        raise ValueError(f"notification is not a dictionary: {parsed!r}")
    try:
        return AttachedMessage(
            message_type=str(parsed.get("MessageType", "")),
            device_id=int(parsed.get("DeviceID", 0)),
            properties=_properties_from_dict(parsed.get("Properties")),
        )
    except TypeError as exc:
        raise ValueError(f"unexpected notification: {parsed!r}") from exc