import pytest

from ioslink.dtx.message import (
    DTX_MESSAGE_PAYLOAD_HEADER_LENGTH,
    AuxiliaryHeader,
    Message,
    MessageType,
    PayloadHeader,
)
from ioslink.dtx.primitive_dictionary import PrimitiveDictionary


def test_payload_length_without_auxiliary():
    msg = Message(
        payload_header=PayloadHeader(total_payload_length=DTX_MESSAGE_PAYLOAD_HEADER_LENGTH)
    )
    assert msg.payload_length() == 16
    assert msg.has_payload()
    assert not msg.has_auxiliary()


def test_payload_length_excludes_auxiliary():
    msg = Message(payload_header=PayloadHeader(auxiliary_length=425, total_payload_length=596))
    assert msg.payload_length() == 596 - 425
    assert msg.has_auxiliary()
    assert msg.has_payload()


def test_empty_message_has_nothing():
    msg = Message()
    assert not msg.has_auxiliary()
    assert not msg.has_payload()
    assert not msg.is_fragment()
    assert not msg.has_error()


@pytest.mark.parametrize(
    "fragments,index,first,last,fragment",
    [
        (3, 0, True, False, True),
        (3, 1, False, False, True),
        (3, 2, False, True, True),
        (1, 0, False, False, False),
    ],
)
def test_fragment_predicates(fragments, index, first, last, fragment):
    msg = Message(fragments=fragments, fragment_index=index)
    assert msg.is_first_fragment() is first
    assert msg.is_last_fragment() is last
    assert msg.is_fragment() is fragment


def test_is_first_fragment_for():
    first = Message(fragments=3, fragment_index=0, identifier=5)
    assert first.is_first_fragment_for(Message(fragments=3, fragment_index=1, identifier=5))
    assert not first.is_first_fragment_for(Message(fragments=3, fragment_index=1, identifier=3))
    assert not first.is_first_fragment_for(Message(fragments=2, fragment_index=1, identifier=5))
    second = Message(fragments=3, fragment_index=1, identifier=5)
    assert not second.is_first_fragment_for(Message(fragments=3, fragment_index=2, identifier=5))


def test_has_error():
    msg = Message(payload_header=PayloadHeader(message_type=MessageType.ERROR))
    assert msg.has_error()


def test_string_form():
    msg = Message(
        identifier=2,
        conversation_index=0,
        channel_code=1,
        expects_reply=True,
        message_length=612,
        payload_header=PayloadHeader(message_type=MessageType.METHOD_INVOCATION),
    )
    assert str(msg) == "i2.0e c1 t:Methodinvocation mlen:612 aux_len0 paylen0"


def test_string_form_unknown_type():
    msg = Message(payload_header=PayloadHeader(message_type=99))
    assert "t:Unknown:99" in str(msg)


def test_string_debug_of_ack_is_plain_string():
    msg = Message(identifier=4)
    assert msg.string_debug() == str(msg)


def test_string_debug_without_aux():
    msg = Message(
        payload_header=PayloadHeader(message_type=MessageType.METHOD_INVOCATION, total_payload_length=10),
        payload=["hello"],
        raw_bytes=b"\x01\x02",
    )
    assert msg.string_debug() == 'no aux,payload: "hello" \nrawbytes:0102'


def test_string_debug_with_aux():
    aux = PrimitiveDictionary()
    aux.add_int32(5)
    msg = Message(
        payload_header=PayloadHeader(
            message_type=MessageType.METHOD_INVOCATION, auxiliary_length=28, total_payload_length=28
        ),
        auxiliary_header=AuxiliaryHeader(buffer_size=496, auxiliary_size=12),
        auxiliary=aux,
    )
    text = msg.string_debug()
    assert text.startswith(f"auxheader:{msg.auxiliary_header}\naux:{aux}\n")
    assert "payload: none " in text


def test_auxiliary_header_string():
    header = AuxiliaryHeader(buffer_size=496, auxiliary_size=12)
    assert str(header) == "BufSiz:496 Unknown:0 AuxSiz:12 Unknown2:0"