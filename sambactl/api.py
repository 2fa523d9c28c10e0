"""Stable public API for building tooling on top of sambactl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from sambactl.core.chip_table import ChipTable
from sambactl.core.errors import (
    ChipTableError,
    ChipTableLoadError,
    ChipTableValidationError,
    EmptyImageError,
    EraseUnsupportedError,
    FlashError,
    ImageTooLargeError,
    ProtocolError,
    ResponseTimeoutError,
    SambactlError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    UnexpectedResponseError,
    UnsupportedChipError,
    VerificationFailedError,
)
from sambactl.core.flash_writer import ProgressCallback, checksum, plan_transfer
from sambactl.core.model import (
    ChipInfo,
    ChipSpec,
    Chunk,
    ChunkWritten,
    DetectedPort,
    EraseComplete,
    Features,
    FlashGeometry,
    FlashResult,
    HandshakeComplete,
    ProgressEvent,
    RunState,
    TransferComplete,
    TransferFailed,
    TransferPlan,
    WireFormat,
)
from sambactl.core.service import FlashService
from sambactl.transports.base import Transport
from sambactl.transports.serial_port import SerialTransport

__all__ = [
    "SambactlError",
    "ChipTableError",
    "ChipTableLoadError",
    "ChipTableValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "ProtocolError",
    "ResponseTimeoutError",
    "UnexpectedResponseError",
    "UnsupportedChipError",
    "FlashError",
    "EmptyImageError",
    "EraseUnsupportedError",
    "ImageTooLargeError",
    "VerificationFailedError",
    "ChipInfo",
    "ChipSpec",
    "Chunk",
    "ChunkWritten",
    "DetectedPort",
    "EraseComplete",
    "Features",
    "FlashGeometry",
    "FlashResult",
    "HandshakeComplete",
    "ProgressEvent",
    "RunState",
    "TransferComplete",
    "TransferFailed",
    "TransferPlan",
    "WireFormat",
    "SerialTransport",
    "Transport",
    "checksum",
    "plan_transfer",
    "Client",
]


class Client:
    """Public client for interacting with sambactl core capabilities.

    A `Client` wraps the chip table, the bootloader handshake, and the
    flashing state machine behind a stable API intended for third-party tools.
    Every call takes an already opened transport and runs one full session on it.
    """

    def __init__(self, *, chips: ChipTable | None = None) -> None:
        self._service = FlashService(chips=chips)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_chips(self) -> list[ChipSpec]:
        return self._service.list_chips()

    def list_ports(self) -> list[DetectedPort]:
        return self._service.list_ports()

    def identify(self, transport: Transport) -> ChipInfo:
        return self._service.info(transport)

    def read_flash(self, transport: Transport, *, length: int | None = None) -> bytes:
        return self._service.read(transport, length)

    def flash(
        self,
        transport: Transport,
        image: bytes,
        *,
        erase: bool = False,
        boot: bool = True,
        progress: ProgressCallback | None = None,
    ) -> FlashResult:
        return self._service.flash(
            transport,
            image,
            erase=erase,
            boot=boot,
            progress=progress,
        )
