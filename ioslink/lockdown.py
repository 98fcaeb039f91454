"""Client for the lockdown service that exposes device values and settings."""

from __future__ import annotations

import logging
import plistlib
import struct
from dataclasses import dataclass
from typing import Any, BinaryIO
from xml.parsers.expat import ExpatError

from .dtx.connection import Transport

log = logging.getLogger(__name__)

LOCKDOWN_PORT = 32498
"""Port of the always running lockdownd on the device."""

_LABEL = "go.ios.control"
_LENGTH = struct.Struct(">I")


class LockdownError(Exception):
    """Raised when lockdown reports an error or sends an unexpected response."""


def _encode_plist(obj: Any) -> bytes:
    """Serialize ``obj`` as an XML plist preceded by a 4 byte length field."""
    body = plistlib.dumps(obj, fmt=plistlib.FMT_XML)
    return _LENGTH.pack(len(body)) + body


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    parts = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise EOFError(f"expected {size} bytes, got {size - remaining}")
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def _read_plist(stream: BinaryIO) -> bytes:
    """Read one length-prefixed plist message from ``stream``."""
    (length,) = _LENGTH.unpack(_read_exact(stream, _LENGTH.size))
    return _read_exact(stream, length)


def _parse_plist(data: bytes) -> Any:
    """Parse XML or binary plist bytes; raises ValueError for malformed data."""
    try:
        return plistlib.loads(bytes(data))
    except ExpatError as exc:
        raise ValueError(f"malformed plist: {exc}") from exc


def new_get_value(key: str = "", domain: str = "") -> dict[str, Any]:
    """Build a GetValue request; empty key or domain are left out."""
    request: dict[str, Any] = {"Label": _LABEL, "Request": "GetValue"}
    if key:
        request["Key"] = key
    if domain:
        request["Domain"] = domain
    return request


def new_set_value(key: str, domain: str, value: Any) -> dict[str, Any]:
    """Build a SetValue request; empty key or domain and a None value are left out."""
    request: dict[str, Any] = {"Label": _LABEL, "Request": "SetValue"}
    if key:
        request["Key"] = key
    if domain:
        request["Domain"] = domain
    if value is not None:
        request["Value"] = value
    return request


@dataclass
class ValueResponse:
    """The response to a GetValue or SetValue request."""

    key: str = ""
    request: str = ""
    error: str = ""
    domain: str = ""
    value: Any = None


def parse_value_response(data: bytes) -> ValueResponse:
    """Parse a value response; undecodable data yields an empty response."""
    try:
        parsed = _parse_plist(data)
    except ValueError:
        return ValueResponse()
    if not isinstance(parsed, dict):
        return ValueResponse()
    return ValueResponse(
        key=str(parsed.get("Key", "")),
        request=str(parsed.get("Request", "")),
        error=str(parsed.get("Error", "")),
        domain=str(parsed.get("Domain", "")),
        value=parsed.get("Value"),
    )


class LockdownClient:
    """Sends plist requests to lockdown over a transport and reads the replies."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    def __enter__(self) -> LockdownClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying transport."""
        self._transport.close()

    def _send(self, request: dict[str, Any]) -> None:
        try:
            data = _encode_plist(request)
        except (TypeError, OverflowError) as exc:
            log.error("failed lockdown send")
            raise LockdownError(f"could not encode request: {exc}") from exc
        self._transport.send(data)

    def _read(self) -> bytes:
        return _read_plist(self._transport.reader())

    def _exchange(self, request: dict[str, Any]) -> ValueResponse:
        self._send(request)
        return parse_value_response(self._read())

    def get_value(self, key: str) -> Any:
        """Return the value lockdown holds for ``key``."""
        return self._exchange(new_get_value(key)).value

    def get_value_for_domain(self, key: str, domain: str) -> Any:
        """Return the value lockdown holds for ``key`` in ``domain``."""
        return self._exchange(new_get_value(key, domain)).value

    def set_value_for_domain(self, key: str, domain: str, value: Any) -> None:
        """Set ``key`` in ``domain``; raises LockdownError if the device refuses."""
        response = self._exchange(new_set_value(key, domain, value))
        if response.error:
            raise LockdownError(
                f"Failed setting '{key}' to '{value}' with err: {response.error}"
            )

    def get_values(self) -> dict[str, Any]:
        """Return all values lockdown reports, keyed by their names."""
        self._send(new_get_value())
        data = self._read()
        try:
            parsed = _parse_plist(data)
        except ValueError as exc:
            raise LockdownError(f"Failed parsing lockdown response: {exc}") from exc
        values = parsed.get("Value") if isinstance(parsed, dict) else None
        if not isinstance(values, dict):
            raise LockdownError(f"Failed converting lockdown response:{parsed!r}")
        return values

    def get_product_version(self) -> str:
        """Return the OS version of the device, for example "10.3"."""
        try:
            value = self.get_value("ProductVersion")
        except (EOFError, OSError) as exc:
            raise LockdownError(f"Failed getting ProductVersion: {exc}") from exc
        if not isinstance(value, str):
            raise LockdownError(f"could not convert response to string: {value!r}")
        return value

    def get_wifi_mac(self) -> str:
        """Return the static MAC address of the device's WiFi."""
        value = self.get_value("WiFiAddress")
        if not isinstance(value, str):
            raise LockdownError(f"could not convert response to string: {value!r}")
        return value