"""Encoding of SAM-BA commands and parsing of their replies."""

from __future__ import annotations

import logging
import re

from sambactl.core.errors import ResponseTimeoutError, UnexpectedResponseError
from sambactl.core.model import Command, Opcode, Response, ResponseShape, WireFormat
from sambactl.transports.base import Transport

_LINE_TERMINATORS = (b"\n\r", b"\r\n", b"\0")
_MAX_LINE_BYTES = 256
LOGGER = logging.getLogger(__name__)


def _hex(value: int, digits: int) -> str:
    if value < 0 or value >= 16**digits:
        raise ValueError(f"Value 0x{value:X} does not fit in {digits} hex digits")
    return f"{value:0{digits}X}"


class CommandCodec:
    """Strict request/response framing on top of a byte transport.

    Parameter widths and reply tokens come from ``wire``; until the chip is
    identified the protocol defaults (8-digit fields, ``Y`` status) apply.
    """

    def __init__(self, transport: Transport, wire: WireFormat | None = None) -> None:
        self.transport = transport
        self.wire = wire or WireFormat()
        self.last_command: str | None = None

    # -- command builders -------------------------------------------------

    def _addr(self, address: int) -> str:
        return _hex(address, self.wire.address_digits)

    def _len(self, length: int) -> str:
        return _hex(length, self.wire.length_digits)

    def version(self) -> Command:
        return Command(Opcode.VERSION)

    def identify(self) -> Command:
        return Command(Opcode.IDENTIFY)

    def normal_mode(self) -> Command:
        return Command(Opcode.NORMAL_MODE)

    def set_address(self, address: int, length: int) -> Command:
        return Command(Opcode.SET_ADDRESS, (self._addr(address), self._len(length)))

    def write_buffer(self, address: int, length: int) -> Command:
        return Command(Opcode.WRITE_BUFFER, (self._addr(address), self._len(length)))

    def write_word(self, address: int, value: int) -> Command:
        return Command(Opcode.WRITE_WORD, (self._addr(address), _hex(value, 8)))

    def read_byte(self, address: int) -> Command:
        return Command(Opcode.READ_BYTE, (self._addr(address), "4"))

    def read(self, address: int, length: int) -> Command:
        return Command(Opcode.READ, (self._addr(address), self._len(length)))

    def checksum(self, address: int, length: int) -> Command:
        return Command(Opcode.CHECKSUM, (self._addr(address), self._len(length)))

    def chip_erase(self, address: int) -> Command:
        return Command(Opcode.CHIP_ERASE, (self._addr(address),))

    def go(self, address: int) -> Command:
        return Command(Opcode.GO, (self._addr(address),))

    def reset(self) -> Command:
        return Command(Opcode.RESET)

    # -- I/O ------------------------------------------------------------

    def send(self, command: Command, payload: bytes = b"") -> None:
        line = command.line
        LOGGER.debug("> %s", line if not payload else f"{line} <{len(payload)} bytes>")
        self.last_command = line
        self.transport.write(command.encode())
        if payload:
            self.transport.write(payload)
        self.transport.flush()

    def receive(
        self,
        shape: ResponseShape,
        *,
        size: int = 0,
        token: str | None = None,
    ) -> Response:
        if shape is ResponseShape.NONE:
            return Response(shape=shape)
        if shape is ResponseShape.RAW:
            raw = self._read_exact(size)
            LOGGER.debug("< <%d bytes>", len(raw))
            return Response(shape=shape, raw=raw)

        raw = self._read_line()
        text = self._decode(raw)
        LOGGER.debug("< %s", text)

        if shape is ResponseShape.TEXT:
            return Response(shape=shape, raw=raw, text=text)
        if shape is ResponseShape.EMPTY:
            if text:
                raise self._unexpected(f"Expected empty acknowledgement, got {text!r}", raw)
            return Response(shape=shape, raw=raw)
        if shape is ResponseShape.STATUS:
            expected = token or self.wire.status_token
            if text != expected:
                raise self._unexpected(f"Expected status {expected!r}, got {text!r}", raw)
            return Response(shape=shape, raw=raw, text=text)
        if shape is ResponseShape.CHECKSUM:
            pattern = rf"Z([0-9A-Fa-f]{{{self.wire.checksum_digits}}})#"
            match = re.fullmatch(pattern, text)
            if not match:
                raise self._unexpected(f"Malformed checksum reply {text!r}", raw)
            return Response(shape=shape, raw=raw, text=text, value=int(match.group(1), 16))
        raise ValueError(f"Unsupported response shape {shape}")

    def exchange(
        self,
        command: Command,
        shape: ResponseShape,
        *,
        payload: bytes = b"",
        size: int = 0,
        token: str | None = None,
    ) -> Response:
        self.send(command, payload)
        return self.receive(shape, size=size, token=token)

    # -- helpers ----------------------------------------------------------

    def _read_line(self) -> bytes:
        buf = bytearray()
        while True:
            chunk = self.transport.read(1)
            if not chunk:
                raise ResponseTimeoutError(
                    f"Timed out waiting for reply to {self.last_command!r}",
                    raw=bytes(buf),
                    command=self.last_command,
                )
            if not buf and chunk == b"\0":
                continue
            buf += chunk
            if buf.endswith(_LINE_TERMINATORS):
                break
            if len(buf) > _MAX_LINE_BYTES:
                raise self._unexpected(f"Reply exceeds {_MAX_LINE_BYTES} bytes without terminator", bytes(buf))
        return bytes(buf).rstrip(b"\r\n\0")

    def _read_exact(self, size: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            chunk = self.transport.read(size - len(buf))
            if not chunk:
                raise ResponseTimeoutError(
                    f"Timed out after {len(buf)} of {size} bytes in reply to {self.last_command!r}",
                    raw=bytes(buf),
                    command=self.last_command,
                )
            buf += chunk
        return bytes(buf)

    def _decode(self, raw: bytes) -> str:
        try:
            return raw.decode("ascii")
        except UnicodeDecodeError as exc:
            raise self._unexpected(f"Reply is not ASCII: {raw!r}", raw) from exc

    def _unexpected(self, message: str, raw: bytes) -> UnexpectedResponseError:
        return UnexpectedResponseError(
            f"{message} (after {self.last_command!r})",
            raw=raw,
            command=self.last_command,
        )
