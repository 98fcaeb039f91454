"""Serialization of DTX messages."""

from __future__ import annotations

import struct

from .message import (
    DTX_MESSAGE_HEADER_LENGTH,
    DTX_MESSAGE_MAGIC,
    DTX_MESSAGE_PAYLOAD_HEADER_LENGTH,
    Message,
    MessageType,
)
from .primitive_dictionary import PrimitiveDictionary

_MAGIC = struct.Struct(">I")
_HEADER_TAIL = struct.Struct("<IHHIIIII")
_QUAD = struct.Struct("<IIII")
_AUX_BUFFER_SIZE = 496


def _u32(value: int) -> int:
    return value & 0xFFFFFFFF


def _header(
    message_length: int,
    identifier: int,
    conversation_index: int,
    channel_code: int,
    expects_reply: bool,
) -> bytes:
    return _MAGIC.pack(DTX_MESSAGE_MAGIC) + _HEADER_TAIL.pack(
        DTX_MESSAGE_HEADER_LENGTH,
        0,
        1,
        _u32(message_length),
        _u32(identifier),
        _u32(conversation_index),
        _u32(channel_code),
        1 if expects_reply else 0,
    )


def build_ack_message(msg: Message) -> bytes:
    """Build the 48 byte acknowledgement for a message that expects a reply."""
    return _header(
        DTX_MESSAGE_PAYLOAD_HEADER_LENGTH,
        msg.identifier,
        msg.conversation_index + 1,
        msg.channel_code,
        False,
    ) + _QUAD.pack(MessageType.ACK, 0, 0, 0)


def encode(
    identifier: int,
    conversation_index: int,
    channel_code: int,
    expects_reply: bool,
    message_type: int,
    payload_bytes: bytes,
    auxiliary: PrimitiveDictionary | None,
) -> bytes:
    """Encode a complete, unfragmented DTX message."""
    aux_bytes = auxiliary.to_bytes() if auxiliary is not None else b""
    payload_bytes = bytes(payload_bytes)
    aux_with_header = len(aux_bytes) + 16 if aux_bytes else 0
    message_length = DTX_MESSAGE_PAYLOAD_HEADER_LENGTH + aux_with_header + len(payload_bytes)

    parts = [
        _header(message_length, identifier, conversation_index, channel_code, expects_reply),
        _QUAD.pack(
            _u32(message_type),
            aux_with_header,
            _u32(len(payload_bytes) + aux_with_header),
            0,
        ),
    ]
    if aux_bytes:
        parts.append(_QUAD.pack(_AUX_BUFFER_SIZE, 0, len(aux_bytes), 0))
        parts.append(aux_bytes)
    parts.append(payload_bytes)
    return b"".join(parts)