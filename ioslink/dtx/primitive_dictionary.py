"""The DTX primitive dictionary used for auxiliary message data."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, NamedTuple

from .errors import DtxError

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


class EntryType(IntEnum):
    """Type codes of entries in a primitive dictionary."""

    NULL = 0x0A
    STRING = 0x01
    BYTEARRAY = 0x02
    UINT32 = 0x03
    INT64 = 0x06

    def __str__(self) -> str:
        return _TYPE_NAMES[self]


_TYPE_NAMES = {
    EntryType.NULL: "null",
    EntryType.BYTEARRAY: "binary",
    EntryType.STRING: "string",
    EntryType.UINT32: "uint32",
    EntryType.INT64: "int64",
}


def _type_name(code: int) -> str:
    try:
        return str(EntryType(code))
    except ValueError:
        return "unknown"


class _Pair(NamedTuple):
    key_type: int
    key: Any
    value_type: int
    value: Any


@dataclass
class PrimitiveDictionary:
    """Ordered key/value entries; in practice keys are null and values are arguments."""

    pairs: list[_Pair] = field(default_factory=list)

    def add_int32(self, value: int) -> None:
        """Append an unsigned 32 bit value (wrapped like a uint32 cast)."""
        self.pairs.append(_Pair(EntryType.NULL, None, EntryType.UINT32, value & 0xFFFFFFFF))

    def add_bytes(self, value: bytes) -> None:
        """Append a byte array value."""
        self.pairs.append(_Pair(EntryType.NULL, None, EntryType.BYTEARRAY, bytes(value)))

    def arguments(self) -> list[Any]:
        """Return the values of all entries in order."""
        return [pair.value for pair in self.pairs]

    def to_bytes(self) -> bytes:
        """Serialize the dictionary; raises DtxError for unsupported entries."""
        out = bytearray()
        for pair in self.pairs:
            if pair.key_type != EntryType.NULL:
                raise DtxError(
                    "Encoding primitive dictionary keys is not supported. "
                    f"Unknown type: {int(pair.key_type)}"
                )
            out += _U32.pack(EntryType.NULL)
            out += _encode_value(pair.value_type, pair.value)
        return bytes(out)

    def __str__(self) -> str:
        parts = []
        for pair in self.pairs:
            name = _type_name(pair.value_type)
            if pair.value_type == EntryType.BYTEARRAY:
                shown = bytes(pair.value).hex()
            elif pair.value_type == EntryType.NULL:
                shown = "null"
            else:
                shown = str(pair.value)
            parts.append(f"{{t:{name}, v:{shown}}},")
        return "[" + "".join(parts) + "]"


def _encode_value(value_type: int, value: Any) -> bytes:
    if value_type == EntryType.NULL:
        return _U32.pack(EntryType.NULL)
    if value_type == EntryType.UINT32:
        return _U32.pack(EntryType.UINT32) + _U32.pack(int(value) & 0xFFFFFFFF)
    if value_type == EntryType.BYTEARRAY:
        data = bytes(value)
        return _U32.pack(EntryType.BYTEARRAY) + _U32.pack(len(data)) + data
    raise DtxError(f"Unknown DtxPrimitiveDictionaryType: {int(value_type)} ")


def _read_entry(data: bytes, offset: int) -> tuple[int, Any, int]:
    try:
        (code,) = _U32.unpack_from(data, offset)
    except struct.error as exc:
        raise DtxError("auxiliary data truncated: missing entry type") from exc
    body = offset + 4
    try:
        if code == EntryType.NULL:
            return EntryType.NULL, None, body
        if code == EntryType.UINT32:
            return EntryType.UINT32, _U32.unpack_from(data, body)[0], body + 4
        if code == EntryType.INT64:
            return EntryType.INT64, _U64.unpack_from(data, body)[0], body + 8
        if code in (EntryType.BYTEARRAY, EntryType.STRING):
            (length,) = _U32.unpack_from(data, body)
    except struct.error as exc:
        raise DtxError(f"auxiliary data truncated in entry of type {code}") from exc
    if code in (EntryType.BYTEARRAY, EntryType.STRING):
        start = body + 4
        end = start + length
        if end > len(data):
            raise DtxError(f"auxiliary data truncated: entry needs {length} bytes")
        chunk = bytes(data[start:end])
        if code == EntryType.STRING:
            return EntryType.STRING, chunk.decode("utf-8", errors="replace"), end
        return EntryType.BYTEARRAY, chunk, end
    raise DtxError(
        f"Unknown DtxPrimitiveDictionaryType: {code}  rawbytes:{bytes(data[offset:]).hex()}"
    )


def decode_auxiliary(aux_bytes: bytes) -> PrimitiveDictionary:
    """Parse serialized auxiliary bytes into a PrimitiveDictionary."""
    result = PrimitiveDictionary()
    offset = 0
    while True:
        key_type, key, offset = _read_entry(aux_bytes, offset)
        value_type, value, offset = _read_entry(aux_bytes, offset)
        result.pairs.append(_Pair(key_type, key, value_type, value))
        if offset >= len(aux_bytes):
            break
    return result