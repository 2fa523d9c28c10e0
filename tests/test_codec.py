from __future__ import annotations

import pytest

from sambactl.core.codec import CommandCodec
from sambactl.core.errors import (
    ProtocolError,
    ResponseTimeoutError,
    TransportTimeoutError,
    UnexpectedResponseError,
)
from sambactl.core.model import ResponseShape, WireFormat


class ScriptedTransport:
    def __init__(self, replies: bytes = b"") -> None:
        self.replies = bytearray(replies)
        self.written = bytearray()
        self.flushes = 0
        self.reads = 0

    def read(self, size: int = 1) -> bytes:
        self.reads += 1
        data = bytes(self.replies[:size])
        del self.replies[:size]
        return data

    def write(self, data: bytes) -> None:
        self.written += data

    def flush(self) -> None:
        self.flushes += 1


def test_commands_use_fixed_width_uppercase_hex() -> None:
    codec = CommandCodec(ScriptedTransport())
    assert codec.set_address(0x1000, 6000 - 4096).line == "S00001000,00000770#"
    assert codec.write_buffer(0, 0).line == "Y00000000,00000000#"
    assert codec.checksum(0xABC, 16).line == "Z00000ABC,00000010#"
    assert codec.read_byte(0x40).line == "o00000040,4#"
    assert codec.chip_erase(0x2000).line == "X00002000#"
    assert codec.version().line == "V#"
    assert codec.reset().line == "K#"


def test_widths_follow_wire_format() -> None:
    codec = CommandCodec(ScriptedTransport(), WireFormat(address_digits=4, length_digits=2))
    assert codec.read(0x12, 0x3).line == "R0012,03#"
    with pytest.raises(ValueError):
        codec.read(0x10000, 1)


def test_send_writes_line_then_payload_and_flushes() -> None:
    transport = ScriptedTransport()
    codec = CommandCodec(transport)
    codec.send(codec.set_address(0, 3), b"\x01\x02\x03")
    assert bytes(transport.written) == b"S00000000,00000003#\x01\x02\x03"
    assert transport.flushes == 1
    assert codec.last_command == "S00000000,00000003#"


def test_receive_text_strips_terminator() -> None:
    codec = CommandCodec(ScriptedTransport(b"v1.1 [Arduino:IKXYZ]\n\rnRF52840-QIAA\r\n"))
    assert codec.receive(ResponseShape.TEXT).text == "v1.1 [Arduino:IKXYZ]"
    assert codec.receive(ResponseShape.TEXT).text == "nRF52840-QIAA"


def test_receive_skips_leading_nul() -> None:
    codec = CommandCodec(ScriptedTransport(b"\0\0Y\n\r"))
    assert codec.receive(ResponseShape.STATUS).text == "Y"


def test_receive_nul_terminated_line() -> None:
    codec = CommandCodec(ScriptedTransport(b"nRF52840-QIAA\0"))
    assert codec.receive(ResponseShape.TEXT).text == "nRF52840-QIAA"


def test_empty_acknowledgement() -> None:
    codec = CommandCodec(ScriptedTransport(b"\n\r"))
    response = codec.receive(ResponseShape.EMPTY)
    assert response.raw == b""


def test_non_empty_acknowledgement_is_rejected() -> None:
    codec = CommandCodec(ScriptedTransport(b"huh\n\r"))
    with pytest.raises(UnexpectedResponseError) as exc:
        codec.receive(ResponseShape.EMPTY)
    assert exc.value.raw == b"huh"


def test_wrong_status_token_carries_raw_bytes_and_command() -> None:
    transport = ScriptedTransport(b"N\n\r")
    codec = CommandCodec(transport)
    with pytest.raises(UnexpectedResponseError) as exc:
        codec.exchange(codec.write_buffer(0, 0), ResponseShape.STATUS)
    assert exc.value.raw == b"N"
    assert exc.value.command == "Y00000000,00000000#"


def test_custom_status_token() -> None:
    codec = CommandCodec(ScriptedTransport(b"X\n\r"))
    assert codec.receive(ResponseShape.STATUS, token="X").text == "X"


def test_checksum_reply_parsed() -> None:
    codec = CommandCodec(ScriptedTransport(b"Z0000BEEF#\n\r"))
    assert codec.receive(ResponseShape.CHECKSUM).value == 0xBEEF


@pytest.mark.parametrize("reply", [b"Z00BEEF#\n\r", b"ZXYZ00000#\n\r", b"Y\n\r", b"Z0000BEEF\n\r"])
def test_malformed_checksum_reply(reply: bytes) -> None:
    codec = CommandCodec(ScriptedTransport(reply))
    with pytest.raises(UnexpectedResponseError):
        codec.receive(ResponseShape.CHECKSUM)


def test_no_reply_shape_never_reads() -> None:
    transport = ScriptedTransport()
    codec = CommandCodec(transport)
    codec.exchange(codec.reset(), ResponseShape.NONE)
    assert transport.reads == 0
    assert bytes(transport.written) == b"K#"


def test_raw_reply_reads_exact_size() -> None:
    codec = CommandCodec(ScriptedTransport(b"\x00\x01\x02\x03rest"))
    assert codec.receive(ResponseShape.RAW, size=4).raw == b"\x00\x01\x02\x03"


def test_short_raw_reply_times_out() -> None:
    codec = CommandCodec(ScriptedTransport(b"\x00\x01"))
    with pytest.raises(ResponseTimeoutError) as exc:
        codec.receive(ResponseShape.RAW, size=4)
    assert exc.value.raw == b"\x00\x01"


def test_missing_reply_is_a_timeout() -> None:
    transport = ScriptedTransport()
    codec = CommandCodec(transport)
    with pytest.raises(ResponseTimeoutError) as exc:
        codec.exchange(codec.version(), ResponseShape.TEXT)
    assert isinstance(exc.value, TransportTimeoutError)
    assert isinstance(exc.value, ProtocolError)
    assert exc.value.command == "V#"


def test_overlong_line_is_rejected() -> None:
    codec = CommandCodec(ScriptedTransport(b"A" * 300))
    with pytest.raises(UnexpectedResponseError):
        codec.receive(ResponseShape.TEXT)


def test_non_ascii_reply_is_rejected() -> None:
    codec = CommandCodec(ScriptedTransport(b"\xff\xfe\n\r"))
    with pytest.raises(UnexpectedResponseError):
        codec.receive(ResponseShape.TEXT)
