"""The decoded form of a DTX message."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from .primitive_dictionary import PrimitiveDictionary

DTX_MESSAGE_MAGIC = 0x795B3D1F
DTX_MESSAGE_HEADER_LENGTH = 32
DTX_MESSAGE_PAYLOAD_HEADER_LENGTH = 16
DTX_RESERVED_BITS = 0x0


class MessageType(IntEnum):
    """Known DTX message types."""

    ACK = 0x0
    UNKNOWN_TYPE_ONE = 0x1
    METHOD_INVOCATION = 0x2
    RESPONSE_WITH_RETURN_VALUE_IN_PAYLOAD = 0x3
    ERROR = 0x4
    LZ4_COMPRESSED = 0x0707


_TYPE_NAMES = {
    MessageType.RESPONSE_WITH_RETURN_VALUE_IN_PAYLOAD: "ResponseWithReturnValueInPayload",
    MessageType.METHOD_INVOCATION: "Methodinvocation",
    MessageType.ACK: "Ack",
    MessageType.LZ4_COMPRESSED: "LZ4Compressed",
    MessageType.UNKNOWN_TYPE_ONE: "UnknownType1",
    MessageType.ERROR: "Error",
}


@dataclass
class PayloadHeader:
    """Message type and payload lengths."""

    message_type: int = 0
    auxiliary_length: int = 0
    total_payload_length: int = 0
    flags: int = 0


@dataclass
class AuxiliaryHeader:
    """Header preceding the auxiliary dictionary; only the size matters."""

    buffer_size: int = 0
    unknown: int = 0
    auxiliary_size: int = 0
    unknown2: int = 0

    def __str__(self) -> str:
        return (
            f"BufSiz:{self.buffer_size} Unknown:{self.unknown} "
            f"AuxSiz:{self.auxiliary_size} Unknown2:{self.unknown2}"
        )


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    return str(obj)


@dataclass
class Message:
    """A DTX message: 32 byte header, payload header, optional auxiliary, payload."""

    fragments: int = 0
    fragment_index: int = 0
    message_length: int = 0
    identifier: int = 0
    conversation_index: int = 0
    channel_code: int = 0
    expects_reply: bool = False
    payload_header: PayloadHeader = field(default_factory=PayloadHeader)
    payload: list[Any] = field(default_factory=list)
    auxiliary_header: AuxiliaryHeader = field(default_factory=AuxiliaryHeader)
    auxiliary: PrimitiveDictionary = field(default_factory=PrimitiveDictionary)
    raw_bytes: bytes = b""
    fragment_bytes: bytes = b""

    def payload_length(self) -> int:
        """Length of the payload without the auxiliary part."""
        return self.payload_header.total_payload_length - self.payload_header.auxiliary_length

    def has_auxiliary(self) -> bool:
        return self.payload_header.auxiliary_length > 0

    def has_payload(self) -> bool:
        return self.payload_length() > 0

    def is_first_fragment(self) -> bool:
        """True for the header-only first part of a fragmented message."""
        return self.fragments > 1 and self.fragment_index == 0

    def is_last_fragment(self) -> bool:
        return self.fragments > 1 and self.fragments - self.fragment_index == 1

    def is_fragment(self) -> bool:
        return self.fragments > 1

    def is_first_fragment_for(self, other: Message) -> bool:
        """True if this is the first fragment and ``other`` a later fragment of it."""
        if not self.is_first_fragment():
            return False
        return (
            self.identifier == other.identifier
            and self.fragments == other.fragments
            and other.fragment_index > 0
        )

    def has_error(self) -> bool:
        return self.payload_header.message_type == MessageType.ERROR

    def __str__(self) -> str:
        reply = "e" if self.expects_reply else ""
        code = self.payload_header.message_type
        try:
            type_name = _TYPE_NAMES[MessageType(code)]
        except ValueError:
            type_name = f"Unknown:{code}"
        return (
            f"i{self.identifier}.{self.conversation_index}{reply} c{self.channel_code} "
            f"t:{type_name} mlen:{self.message_length} "
            f"aux_len{self.payload_header.auxiliary_length} paylen{self.payload_length()}"
        )

    def string_debug(self) -> str:
        """Describe the message including payload, auxiliary and raw bytes."""
        if self.payload_header.message_type == MessageType.ACK:
            return str(self)
        payload = "none"
        if self.has_payload() and self.payload:
            payload = json.dumps(self.payload[0], separators=(",", ":"), default=_json_default)
        if self.has_auxiliary():
            return (
                f"auxheader:{self.auxiliary_header}\naux:{self.auxiliary}\n"
                f"payload: {payload} \nrawbytes:{self.raw_bytes.hex()}"
            )
        return f"no aux,payload: {payload} \nrawbytes:{self.raw_bytes.hex()}"