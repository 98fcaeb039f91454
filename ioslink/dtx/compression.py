"""Decompression of LZ4 payloads found in DTX messages."""

from __future__ import annotations

import struct

import lz4.block

from .errors import DtxError

_CHUNK_MAGIC = b"bv41"
_U32 = struct.Struct("<I")
_EXTRA_SPACE = 100


def decompress(data: bytes) -> bytes:
    """Decompress a DTX LZ4 payload.

    The payload starts with the total uncompressed size, followed by ``bv41``
    chunks whose compressed bytes are joined and decompressed as one block.
    """
    data = bytes(data)
    try:
        (total_uncompressed,) = _U32.unpack_from(data, 0)
    except struct.error as exc:
        raise DtxError("lz4 payload too short for its size field") from exc

    offset = 4
    chunks = []
    while data[offset:offset + 4] == _CHUNK_MAGIC:
        try:
            (compressed_size,) = _U32.unpack_from(data, offset + 8)
        except struct.error as exc:
            raise DtxError("lz4 chunk header truncated") from exc
        start = offset + 12
        end = start + compressed_size
        if end > len(data):
            raise DtxError(
                f"lz4 chunk needs {compressed_size} bytes, only {len(data) - start} left"
            )
        chunks.append(data[start:end])
        offset = end

    try:
        return lz4.block.decompress(
            b"".join(chunks), uncompressed_size=total_uncompressed + _EXTRA_SPACE
        )
    except (lz4.block.LZ4BlockError, ValueError) as exc:
        raise DtxError(f"lz4 decompression failed: {exc}") from exc