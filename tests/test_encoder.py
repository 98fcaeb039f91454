import struct

import pytest

from ioslink.dtx.encoder import build_ack_message, encode
from ioslink.dtx.errors import DtxError
from ioslink.dtx.message import (
    DTX_MESSAGE_HEADER_LENGTH,
    DTX_MESSAGE_MAGIC,
    DTX_MESSAGE_PAYLOAD_HEADER_LENGTH,
    Message,
    MessageType,
    PayloadHeader,
)
from ioslink.dtx.primitive_dictionary import EntryType, PrimitiveDictionary, decode_auxiliary


def _header(data):
    (magic,) = struct.unpack_from(">I", data, 0)
    (hlen, frag_index, frags, mlen, ident, conv, chan, reply) = struct.unpack_from("<IHHIIIII", data, 4)
    (mtype, aux_len, total, flags) = struct.unpack_from("<IIII", data, 32)
    return {
        "magic": magic,
        "header_length": hlen,
        "fragment_index": frag_index,
        "fragments": frags,
        "message_length": mlen,
        "identifier": ident,
        "conversation_index": conv,
        "channel_code": chan,
        "expects_reply": reply == 1,
        "message_type": mtype,
        "auxiliary_length": aux_len,
        "total_payload_length": total,
        "flags": flags,
    }


def test_ack():
    msg = Message()
    ack = build_ack_message(msg)
    fields = _header(ack)
    assert len(ack) == DTX_MESSAGE_HEADER_LENGTH + DTX_MESSAGE_PAYLOAD_HEADER_LENGTH
    assert fields["message_type"] == MessageType.ACK
    assert fields["conversation_index"] == msg.conversation_index + 1


def test_ack_copies_identity():
    msg = Message(identifier=7, conversation_index=4, channel_code=3, expects_reply=True)
    fields = _header(build_ack_message(msg))
    assert fields["identifier"] == 7
    assert fields["channel_code"] == 3
    assert fields["conversation_index"] == 5
    assert fields["expects_reply"] is False
    assert fields["message_length"] == DTX_MESSAGE_PAYLOAD_HEADER_LENGTH
    assert fields["magic"] == DTX_MESSAGE_MAGIC


def _payload_only():
    return Message(fragment_index=1, conversation_index=2, payload=["test"], auxiliary=PrimitiveDictionary())


def _reply():
    msg = _payload_only()
    msg.expects_reply = True
    return msg


def _aux_only():
    aux = PrimitiveDictionary()
    aux.add_int32(5)
    return Message(fragment_index=1, conversation_index=2, payload=[], auxiliary=aux)


@pytest.mark.parametrize("factory", [_payload_only, _reply, _aux_only])
def test_encoder(factory):
    msg = factory()
    payload = "".join(msg.payload).encode()
    data = encode(
        msg.identifier,
        msg.conversation_index,
        msg.channel_code,
        msg.expects_reply,
        msg.payload_header.message_type,
        payload,
        msg.auxiliary,
    )
    fields = _header(data)
    assert fields["channel_code"] == msg.channel_code
    assert fields["identifier"] == msg.identifier
    assert fields["conversation_index"] == msg.conversation_index
    assert fields["expects_reply"] == msg.expects_reply
    assert fields["message_type"] == msg.payload_header.message_type
    assert fields["fragment_index"] == 0
    assert fields["fragments"] == 1
    assert len(data) == DTX_MESSAGE_HEADER_LENGTH + fields["message_length"]


def test_magic_bytes():
    data = encode(1, 0, 0, False, MessageType.METHOD_INVOCATION, b"x", PrimitiveDictionary())
    assert data[:4] == b"\x79\x5b\x3d\x1f"
    assert _header(data)["header_length"] == DTX_MESSAGE_HEADER_LENGTH


def test_payload_follows_payload_header_without_aux():
    data = encode(3, 0, 0, True, MessageType.METHOD_INVOCATION, b"payload", PrimitiveDictionary())
    fields = _header(data)
    assert data[48:] == b"payload"
    assert fields["auxiliary_length"] == 0
    assert fields["total_payload_length"] == len(b"payload")


def test_auxiliary_layout():
    aux = PrimitiveDictionary()
    aux.add_int32(5)
    aux.add_bytes(b"abc")
    aux_bytes = aux.to_bytes()
    data = encode(3, 0, 2, True, MessageType.METHOD_INVOCATION, b"pl", aux)
    fields = _header(data)
    assert fields["auxiliary_length"] == len(aux_bytes) + 16
    assert fields["total_payload_length"] == len(aux_bytes) + 16 + 2
    assert struct.unpack_from("<IIII", data, 48) == (496, 0, len(aux_bytes), 0)
    assert decode_auxiliary(data[64 : 64 + len(aux_bytes)]) == aux
    assert data.endswith(b"pl")


def test_negative_channel_code_wraps():
    data = encode(1, 0, -1, False, MessageType.METHOD_INVOCATION, b"", None)
    assert _header(data)["channel_code"] == 4294967295


def test_unencodable_auxiliary_raises():
    raw = struct.pack("<III", EntryType.NULL, EntryType.STRING, 1) + b"x"
    aux = decode_auxiliary(raw)
    with pytest.raises(DtxError):
        encode(1, 0, 0, False, MessageType.METHOD_INVOCATION, b"", aux)


def test_message_type_taken_from_argument():
    msg = Message(payload_header=PayloadHeader(message_type=MessageType.RESPONSE_WITH_RETURN_VALUE_IN_PAYLOAD))
    data = encode(0, 0, 0, False, msg.payload_header.message_type, b"r", None)
    assert _header(data)["message_type"] == MessageType.RESPONSE_WITH_RETURN_VALUE_IN_PAYLOAD