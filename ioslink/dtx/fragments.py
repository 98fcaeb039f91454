"""Reassembly of fragmented DTX messages."""

from __future__ import annotations

import struct
from typing import Optional

from .message import DTX_MESSAGE_HEADER_LENGTH, Message


class FragmentDecoder:
    """Collects fragments of one message and merges them into a single message.

    The first fragment is a bare 32 byte header announcing the total length.
    Later fragments carry parts of the body. The merged message is the first
    header, patched to index 0 of 1 fragment, followed by all fragment data.
    """

    def __init__(self, first_fragment: Message) -> None:
        if not first_fragment.is_first_fragment():
            raise ValueError("Illegalstate, need to pass in a firstFragment")
        self.first_fragment = first_fragment
        self.fragments: list[Optional[Message]] = [None] * (first_fragment.fragments - 1)
        self.finished = False

    def add_fragment(self, fragment: Message) -> bool:
        """Add a fragment; return False if it does not belong to this message."""
        if not self.first_fragment.is_first_fragment_for(fragment):
            return False
        position = fragment.fragment_index - 1
        if position >= len(self.fragments):
            return False
        self.fragments[position] = fragment
        if fragment.is_last_fragment():
            self.finished = True
        return True

    def extract(self) -> bytes:
        """Return the assembled message bytes; only valid once finished."""
        if not self.finished:
            raise RuntimeError("illegal state: not all fragments received")
        header = bytearray(self.first_fragment.fragment_bytes[:DTX_MESSAGE_HEADER_LENGTH])
        header.extend(bytes(DTX_MESSAGE_HEADER_LENGTH - len(header)))
        struct.pack_into("<HH", header, 8, 0, 1)
        body = b"".join(frag.fragment_bytes for frag in self.fragments if frag is not None)
        size = self.first_fragment.message_length + DTX_MESSAGE_HEADER_LENGTH
        assembled = bytes(header) + body
        return assembled[:size].ljust(size, b"\x00")