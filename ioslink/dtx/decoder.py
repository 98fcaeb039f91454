"""Decoding of DTX messages from byte streams and buffers."""

from __future__ import annotations

import logging
import struct
from typing import Any, BinaryIO, Callable, Optional

from .compression import decompress
from .errors import DtxError, IncompleteError, OutOfSyncError
from .message import (
    DTX_MESSAGE_HEADER_LENGTH,
    DTX_MESSAGE_MAGIC,
    AuxiliaryHeader,
    Message,
    MessageType,
    PayloadHeader,
)
from .primitive_dictionary import decode_auxiliary

log = logging.getLogger(__name__)

Unarchiver = Callable[[bytes], "list[Any]"]

_MAGIC = struct.Struct(">I")
_HEADER_TAIL = struct.Struct("<IHHIIIII")
_QUAD = struct.Struct("<IIII")


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


def _parse_header(data: bytes) -> Message:
    (
        _header_length,
        fragment_index,
        fragments,
        message_length,
        identifier,
        conversation_index,
        channel_code,
        expects_reply,
    ) = _HEADER_TAIL.unpack_from(data, 4)
    return Message(
        fragments=fragments,
        fragment_index=fragment_index,
        message_length=message_length,
        identifier=identifier,
        conversation_index=conversation_index,
        channel_code=channel_code,
        expects_reply=expects_reply == 1,
    )


def _parse_payload_header(data: bytes) -> PayloadHeader:
    return PayloadHeader(*_QUAD.unpack_from(data, 0))


def _parse_auxiliary_header(data: bytes) -> AuxiliaryHeader:
    return AuxiliaryHeader(*_QUAD.unpack_from(data, 0))


def _unarchive(data: bytes, unarchiver: Optional[Unarchiver]) -> list[Any]:
    if unarchiver is None:
        return [data]
    return list(unarchiver(data))


def _check_magic(data: bytes) -> None:
    if _MAGIC.unpack_from(data, 0)[0] != DTX_MESSAGE_MAGIC:
        raise OutOfSyncError(f"Wrong Magic: {data[:4].hex()}")


def read_message(stream: BinaryIO, unarchiver: Optional[Unarchiver] = None) -> Message:
    """Read one complete message (or fragment) from a blocking binary stream.

    Raises EOFError when the stream ends before the message is complete.
    Without an unarchiver the payload is returned as a single bytes object.
    """
    header = _read_exact(stream, DTX_MESSAGE_HEADER_LENGTH)
    _check_magic(header)
    result = _parse_header(header)

    if result.is_fragment():
        if result.is_first_fragment():
            result.fragment_bytes = header
            return result
        result.fragment_bytes = _read_exact(stream, result.message_length)
        return result

    result.payload_header = _parse_payload_header(_read_exact(stream, 16))

    if result.has_auxiliary():
        result.auxiliary_header = _parse_auxiliary_header(_read_exact(stream, 16))
        aux_bytes = _read_exact(stream, result.auxiliary_header.auxiliary_size)
        result.auxiliary = decode_auxiliary(aux_bytes)

    result.raw_bytes = b""
    if result.has_payload():
        payload_bytes = _read_exact(stream, result.payload_length())
        result.payload = _unarchive(payload_bytes, unarchiver)
    return result


def _parse_payload_bytes(
    msg: Message, message_bytes: bytes, unarchiver: Optional[Unarchiver]
) -> list[Any]:
    offset = 0
    if msg.has_payload():
        offset = 48 + msg.payload_header.auxiliary_length if msg.has_auxiliary() else 48
    body = message_bytes[offset:]
    message_type = msg.payload_header.message_type
    if message_type == MessageType.UNKNOWN_TYPE_ONE:
        return [body]
    if message_type == MessageType.LZ4_COMPRESSED:
        try:
            uncompressed = decompress(body)
        except DtxError as exc:
            log.info(
                "skipping lz4 compressed msg with %d bytes, decompression error %s",
                len(body),
                exc,
            )
        else:
            log.info("lz4 compressed %d bytes/ %d uncompressed ", len(body), len(uncompressed))
        return [body]
    return _unarchive(body, unarchiver)


def decode_non_blocking(
    data: bytes, unarchiver: Optional[Unarchiver] = None
) -> tuple[Message, bytes]:
    """Decode the first message in ``data`` and return it with the remaining bytes.

    Raises IncompleteError when more bytes are needed and OutOfSyncError when
    the data does not start with the DTX magic.
    """
    data = bytes(data)
    if len(data) < 4:
        raise IncompleteError("Less than 4 bytes")
    _check_magic(data)
    if len(data) < DTX_MESSAGE_HEADER_LENGTH:
        raise IncompleteError("Less than 32 bytes")
    header_length = struct.unpack_from("<I", data, 4)[0]
    if header_length != DTX_MESSAGE_HEADER_LENGTH:
        raise DtxError(f"Incorrect Header length, should be 32: {data[4:8].hex()}")

    result = _parse_header(data)
    if result.is_first_fragment():
        result.fragment_bytes = data[:32]
        return result, data[32:]
    if result.is_fragment():
        end = result.message_length + 32
        if len(data) < end:
            raise IncompleteError("Fragment lacks bytes")
        result.fragment_bytes = data[32:end]
        return result, data[end:]

    if len(data) < 48:
        raise IncompleteError("Payload Header missing")
    result.payload_header = _parse_payload_header(data[32:48])

    if result.has_auxiliary():
        if len(data) < 64:
            raise IncompleteError("Aux Header missing")
        result.auxiliary_header = _parse_auxiliary_header(data[48:64])
        aux_end = 48 + result.payload_header.auxiliary_length
        if len(data) < aux_end:
            raise IncompleteError("Aux Payload missing")
        result.auxiliary = decode_auxiliary(data[64:aux_end])

    total = result.message_length + DTX_MESSAGE_HEADER_LENGTH
    if len(data) < total:
        raise IncompleteError("Payload missing")
    result.raw_bytes = data[:total]

    if result.has_payload():
        result.payload = _parse_payload_bytes(result, result.raw_bytes, unarchiver)

    return result, data[total:]