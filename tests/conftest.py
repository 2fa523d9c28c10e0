from __future__ import annotations

import binascii

import pytest

from sambactl.core.chip_table import ChipTable
from sambactl.core.model import ChipSpec, Features, FlashGeometry, WireFormat

NRF52 = ChipSpec(
    name="nRF52840-QIAA",
    features=Features(
        chip_erase=True,
        write_buffer=True,
        checksum_buffer=True,
        identify_chip=True,
        reset=True,
    ),
    flash=FlashGeometry(addr=0, pages=256, size=4096),
)

# A small chip without buffered writes or device checksums.
WORDCHIP = ChipSpec(
    name="WORDCHIP-64",
    features=Features(identify_chip=True),
    flash=FlashGeometry(addr=0x2000, pages=8, size=64),
    wire=WireFormat(fill_byte=0xFF),
)


class FakeBootloader:
    """In-memory bootloader speaking the SAM-BA subset over a fake transport."""

    def __init__(
        self,
        chip: ChipSpec = NRF52,
        *,
        version: str = "v1.1 [Arduino:IKXYZ] Jan  1 2025 00:00:00",
        chip_name: str | None = None,
        mute: tuple[str, ...] = (),
        corrupt_checksum_at: tuple[int, ...] = (),
    ) -> None:
        self.chip = chip
        self.version = version
        self.chip_name = chip.name if chip_name is None else chip_name
        self.mute = set(mute)
        self.corrupt_checksum_at = set(corrupt_checksum_at)
        self.memory = bytearray(b"\xff" * chip.flash.total_size)
        self.commands: list[str] = []
        self.booted = False
        self._incoming = bytearray()
        self._outgoing = bytearray()
        self._pending: tuple[int, int] | None = None
        self._staged: dict[int, bytes] = {}
        self._source: int | None = None

    # -- transport interface ------------------------------------------------

    def read(self, size: int = 1) -> bytes:
        data = bytes(self._outgoing[:size])
        del self._outgoing[:size]
        return data

    def write(self, data: bytes) -> None:
        self._incoming += data
        self._process()

    def flush(self) -> None:
        pass

    # -- helpers --------------------------------------------------------------

    @property
    def opcodes(self) -> list[str]:
        return [command[0] for command in self.commands]

    def flash_bytes(self, address: int, length: int) -> bytes:
        offset = address - self.chip.flash.addr
        return bytes(self.memory[offset : offset + length])

    def _reply(self, opcode: str, data: bytes) -> None:
        if opcode not in self.mute:
            self._outgoing += data

    def _process(self) -> None:
        while True:
            if self._pending is not None:
                address, length = self._pending
                if len(self._incoming) < length:
                    return
                self._staged[address] = bytes(self._incoming[:length])
                del self._incoming[:length]
                self._pending = None
                continue
            end = self._incoming.find(b"#")
            if end < 0:
                return
            line = self._incoming[: end + 1].decode("ascii")
            del self._incoming[: end + 1]
            self.commands.append(line)
            self._handle(line)

    def _handle(self, line: str) -> None:
        opcode, body = line[0], line[1:-1]
        args = [int(arg, 16) for arg in body.split(",")] if body else []
        base = self.chip.flash.addr
        if opcode == "V":
            self._reply(opcode, self.version.encode("ascii") + b"\n\r")
        elif opcode == "I":
            self._reply(opcode, self.chip_name.encode("ascii") + b"\n\r")
        elif opcode == "N":
            self._reply(opcode, b"\n\r")
        elif opcode == "S":
            self._pending = (args[0], args[1])
        elif opcode == "Y":
            address, length = args
            if length == 0:
                self._source = address
            else:
                data = self._staged[self._source][:length]
                self.memory[address - base : address - base + len(data)] = data
            self._reply(opcode, b"Y\n\r")
        elif opcode == "W":
            address, value = args
            self.memory[address - base : address - base + 4] = value.to_bytes(4, "little")
        elif opcode == "Z":
            address, length = args
            crc = binascii.crc_hqx(self.flash_bytes(address, length), 0)
            if address in self.corrupt_checksum_at:
                crc ^= 0x0101
            self._reply(opcode, f"Z{crc:08X}#\n\r".encode("ascii"))
        elif opcode == "R":
            address, length = args
            self._reply(opcode, self.flash_bytes(address, length))
        elif opcode == "o":
            self._reply(opcode, self.flash_bytes(args[0], 1))
        elif opcode == "X":
            self.memory[:] = b"\xff" * len(self.memory)
            self._reply(opcode, b"X\n\r")
        elif opcode in ("K", "G"):
            self.booted = True
        else:
            raise AssertionError(f"Unexpected command {line!r}")


@pytest.fixture
def chip_table() -> ChipTable:
    return ChipTable(chips={NRF52.name: NRF52, WORDCHIP.name: WORDCHIP})


@pytest.fixture
def bootloader():
    def _make(chip: ChipSpec = NRF52, **kwargs) -> FakeBootloader:
        return FakeBootloader(chip, **kwargs)

    return _make


@pytest.fixture
def nrf52() -> ChipSpec:
    return NRF52


@pytest.fixture
def wordchip() -> ChipSpec:
    return WORDCHIP
