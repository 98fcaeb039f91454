import io
import struct

import lz4.block
import pytest

from ioslink.dtx.decoder import decode_non_blocking, read_message
from ioslink.dtx.encoder import encode
from ioslink.dtx.errors import DtxError, IncompleteError, is_incomplete, is_out_of_sync
from ioslink.dtx.fragments import FragmentDecoder
from ioslink.dtx.message import DTX_MESSAGE_MAGIC, MessageType
from ioslink.dtx.primitive_dictionary import PrimitiveDictionary


def _text(data):
    return [data.decode("utf-8")]


def _aux_with_bytes(size):
    aux = PrimitiveDictionary()
    aux.add_bytes(b"\x01" * size)
    return aux


def _capabilities_like():
    # Same shape as the captured _notifyOfPublishedCapabilities: message:
    # identifier 2, aux length 425, total payload 596, message length 612.
    return encode(2, 0, 0, False, 2, b"p" * 171, _aux_with_bytes(397))


def _frag_header(index, count, length, identifier):
    return struct.pack(">I", DTX_MESSAGE_MAGIC) + struct.pack(
        "<IHHIIIII", 32, index, count, length, identifier, 0, 0, 0
    )


def _fragmented():
    aux = PrimitiveDictionary()
    aux.add_int32(9)
    full = encode(7, 0, 0, False, 2, ("hello" * 40).encode(), aux)
    body = full[32:]
    stream = (
        _frag_header(0, 3, len(body), 7)
        + _frag_header(1, 3, 100, 7)
        + body[:100]
        + _frag_header(2, 3, len(body) - 100, 7)
        + body[100:]
    )
    return full, stream


def test_errors():
    with pytest.raises(DtxError) as exc:
        decode_non_blocking(bytes(5))
    assert is_out_of_sync(exc.value)

    with pytest.raises(DtxError) as exc:
        decode_non_blocking(bytes(2))
    assert is_incomplete(exc.value)

    data = _capabilities_like()
    for end in range(4, len(data)):
        with pytest.raises(IncompleteError):
            decode_non_blocking(data[:end])


def test_incorrect_header_length():
    data = bytearray(_capabilities_like())
    struct.pack_into("<I", data, 4, 31)
    with pytest.raises(DtxError) as exc:
        decode_non_blocking(bytes(data))
    assert not is_incomplete(exc.value)


def test_decoder():
    data = _capabilities_like()
    msg, remaining = decode_non_blocking(data)
    assert remaining == b""
    for decoded in (msg, read_message(io.BytesIO(data))):
        assert decoded.fragments == 1
        assert decoded.fragment_index == 0
        assert decoded.message_length == 612
        assert decoded.channel_code == 0
        assert decoded.expects_reply is False
        assert decoded.identifier == 2
        assert decoded.payload_header.message_type == 2
        assert decoded.payload_header.auxiliary_length == 425
        assert decoded.payload_header.total_payload_length == 596
        assert decoded.payload_header.flags == 0


def test_codec_round_trip():
    aux = PrimitiveDictionary()
    aux.add_int32(1)
    aux.add_bytes(b"identifier")
    original = encode(3, 0, 0, True, 2, b"_requestChannelWithCode:identifier:", aux)

    fixture, _ = decode_non_blocking(original, _text)
    payload = fixture.payload[0].encode()
    encoded = encode(
        fixture.identifier,
        fixture.conversation_index,
        fixture.channel_code,
        fixture.expects_reply,
        fixture.payload_header.message_type,
        payload,
        fixture.auxiliary,
    )
    msg, remaining = decode_non_blocking(encoded, _text)
    assert len(remaining) == 0
    assert msg.payload == fixture.payload
    assert encoded == original


def test_codec_reencode_from_raw_bytes():
    aux = PrimitiveDictionary()
    aux.add_int32(1)
    aux.add_bytes(b"identifier")
    data = encode(3, 0, 0, True, 2, b"selector", aux)
    remaining = data
    while remaining:
        msg, remaining = decode_non_blocking(remaining)
        offset = 48 + msg.payload_header.auxiliary_length
        assert encode(3, 0, 0, True, 2, msg.raw_bytes[offset:], msg.auxiliary) == data


def test_stream_of_messages():
    first = encode(1, 0, 5, False, 3, b"one", PrimitiveDictionary())
    second = encode(2, 1, 5, True, 2, b"two", PrimitiveDictionary())
    msg, remaining = decode_non_blocking(first + second, _text)
    assert msg.payload == ["one"]
    assert remaining == second
    msg, remaining = decode_non_blocking(remaining, _text)
    assert msg.payload == ["two"]
    assert msg.expects_reply is True
    assert remaining == b""


def test_payload_without_unarchiver_is_raw_bytes():
    msg, _ = decode_non_blocking(encode(1, 0, 0, False, 3, b"raw", None))
    assert msg.payload == [b"raw"]


def test_type_one_message_keeps_raw_payload():
    def refuse(_):
        raise AssertionError("must not unarchive")

    data = encode(4, 0, 1, False, MessageType.UNKNOWN_TYPE_ONE, b"\x00\x01\x02", None)
    msg, remaining = decode_non_blocking(data, refuse)
    assert msg.payload == [b"\x00\x01\x02"]
    assert remaining == b""


def test_lz4_compressed_message_keeps_raw_payload():
    raw = b"sample " * 40
    block = lz4.block.compress(raw, store_size=False)
    body = (
        struct.pack("<I", len(raw))
        + b"bv41"
        + struct.pack("<II", len(raw), len(block))
        + block
        + b"bv4$"
    )

    def refuse(_):
        raise AssertionError("must not unarchive")

    msg, _ = decode_non_blocking(encode(1, 0, 0, False, MessageType.LZ4_COMPRESSED, body, None), refuse)
    assert msg.payload == [body]


def test_lz4_message_with_broken_data_still_decodes():
    body = b"\x05\x00\x00\x00bv41\x05\x00\x00\x00\x02\x00\x00\x00\xff\xff"
    msg, _ = decode_non_blocking(encode(1, 0, 0, False, MessageType.LZ4_COMPRESSED, body, None))
    assert msg.payload == [body]


def test_fragmented_message():
    full, stream = _fragmented()

    msg, remaining = decode_non_blocking(stream)
    assert len(remaining) == len(stream) - 32
    assert msg.fragments == 3
    assert msg.fragment_index == 0
    assert msg.has_payload() is False
    defragmenter = FragmentDecoder(msg)

    msg, remaining = decode_non_blocking(remaining)
    assert msg.fragments == 3
    assert msg.fragment_index == 1
    assert msg.has_payload() is False
    assert defragmenter.add_fragment(msg)

    msg, remaining = decode_non_blocking(remaining)
    assert len(remaining) == 0
    assert msg.fragment_index == 2
    assert defragmenter.add_fragment(msg)
    assert defragmenter.finished
    nonblocking_full = defragmenter.extract()

    reader = io.BytesIO(stream)
    msg = read_message(reader)
    assert msg.fragments == 3
    assert msg.fragment_index == 0
    assert msg.is_first_fragment()
    defragmenter = FragmentDecoder(msg)
    msg = read_message(reader)
    assert msg.fragment_index == 1
    assert msg.is_fragment()
    defragmenter.add_fragment(msg)
    msg = read_message(reader)
    assert msg.fragment_index == 2
    assert msg.is_last_fragment()
    defragmenter.add_fragment(msg)
    assert defragmenter.finished
    defragged = defragmenter.extract()

    assert defragged == nonblocking_full
    assert defragged == full
    decoded = read_message(io.BytesIO(defragged), _text)
    assert decoded.payload == ["hello" * 40]
    assert decoded.auxiliary.arguments() == [9]


def test_read_message_wrong_magic():
    with pytest.raises(DtxError) as exc:
        read_message(io.BytesIO(bytes(48)))
    assert is_out_of_sync(exc.value)


def test_read_message_eof():
    with pytest.raises(EOFError):
        read_message(io.BytesIO(b""))
    data = _capabilities_like()
    with pytest.raises(EOFError):
        read_message(io.BytesIO(data[:100]))