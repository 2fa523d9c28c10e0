"""Core data models used across codec, session, writer, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sambactl.core.errors import UnexpectedResponseError


class Opcode(str, Enum):
    VERSION = "V"
    IDENTIFY = "I"
    NORMAL_MODE = "N"
    SET_ADDRESS = "S"
    WRITE_BUFFER = "Y"
    WRITE_WORD = "W"
    READ_BYTE = "o"
    READ = "R"
    CHECKSUM = "Z"
    CHIP_ERASE = "X"
    GO = "G"
    RESET = "K"


class ResponseShape(Enum):
    NONE = "none"
    TEXT = "text"
    EMPTY = "empty"
    STATUS = "status"
    CHECKSUM = "checksum"
    RAW = "raw"


COMMAND_SENTINEL = "#"


@dataclass(frozen=True)
class Command:
    opcode: Opcode
    params: tuple[str, ...] = ()

    @property
    def line(self) -> str:
        return f"{self.opcode.value}{','.join(self.params)}{COMMAND_SENTINEL}"

    def encode(self) -> bytes:
        return self.line.encode("ascii")


@dataclass(frozen=True)
class Response:
    shape: ResponseShape
    raw: bytes = b""
    text: str = ""
    value: int | None = None


# Letters used inside the "[Arduino:...]" tag of the version reply.
_FEATURE_LETTERS = {
    "I": "identify_chip",
    "K": "reset",
    "X": "chip_erase",
    "Y": "write_buffer",
    "Z": "checksum_buffer",
}


@dataclass(frozen=True)
class Features:
    chip_erase: bool = False
    write_buffer: bool = False
    checksum_buffer: bool = False
    identify_chip: bool = False
    reset: bool = False

    @classmethod
    def from_tag(cls, tag: str) -> Features:
        """Parse the feature letters advertised by the bootloader, e.g. ``"IKXYZ"``."""
        flags: dict[str, bool] = {}
        for letter in tag:
            name = _FEATURE_LETTERS.get(letter)
            if name is None:
                raise UnexpectedResponseError(
                    f"Unknown feature letter '{letter}' in feature tag '{tag}'",
                    raw=tag.encode("ascii", errors="replace"),
                )
            flags[name] = True
        return cls(**flags)

    def enabled(self) -> tuple[str, ...]:
        return tuple(name for name in _FEATURE_LETTERS.values() if getattr(self, name))


@dataclass(frozen=True)
class FlashGeometry:
    addr: int
    pages: int
    size: int
    planes: int = 1
    lock_regions: int = 0
    user: int = 0
    stack: int = 0

    @property
    def total_size(self) -> int:
        return self.pages * self.size


@dataclass(frozen=True)
class WireFormat:
    address_digits: int = 8
    length_digits: int = 8
    checksum_digits: int = 8
    status_token: str = "Y"
    erase_token: str = "X"
    fill_byte: int = 0xFF
    pad_final_page: bool = False


@dataclass(frozen=True)
class ChipSpec:
    name: str
    features: Features
    flash: FlashGeometry
    wire: WireFormat = field(default_factory=WireFormat)


@dataclass(frozen=True)
class ChipInfo:
    version: str
    chip: ChipSpec
    advertised: Features | None = None

    @property
    def name(self) -> str:
        return self.chip.name

    @property
    def features(self) -> Features:
        return self.chip.features

    @property
    def flash(self) -> FlashGeometry:
        return self.chip.flash

    @property
    def wire(self) -> WireFormat:
        return self.chip.wire


@dataclass(frozen=True)
class Chunk:
    index: int
    address: int
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class TransferPlan:
    chunks: tuple[Chunk, ...]

    @property
    def total(self) -> int:
        return sum(chunk.length for chunk in self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self):
        return iter(self.chunks)


class RunState(Enum):
    IDLE = "idle"
    HANDSHAKING = "handshaking"
    ERASING = "erasing"
    WRITING = "writing"
    BOOTING = "booting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class HandshakeComplete:
    info: ChipInfo


@dataclass(frozen=True)
class EraseComplete:
    address: int


@dataclass(frozen=True)
class ChunkWritten:
    index: int
    count: int
    address: int
    length: int


@dataclass(frozen=True)
class TransferComplete:
    chunks: int
    bytes_written: int


@dataclass(frozen=True)
class TransferFailed:
    state: RunState
    error: Exception


ProgressEvent = HandshakeComplete | EraseComplete | ChunkWritten | TransferComplete | TransferFailed


@dataclass(frozen=True)
class FlashResult:
    state: RunState
    info: ChipInfo | None = None
    plan: TransferPlan | None = None
    error: Exception | None = None
    failed_in: RunState | None = None
    last_command: str | None = None
    last_address: int | None = None

    @property
    def ok(self) -> bool:
        return self.state is RunState.DONE


@dataclass(frozen=True)
class DetectedPort:
    device: str
    description: str
    hwid: str = ""
