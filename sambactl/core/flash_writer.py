"""Page-by-page image transfer with per-chunk checksum verification."""

from __future__ import annotations

import binascii
import logging
from collections.abc import Callable

from sambactl.core.errors import (
    EmptyImageError,
    EraseUnsupportedError,
    ImageTooLargeError,
    VerificationFailedError,
)
from sambactl.core.model import (
    Chunk,
    ChunkWritten,
    EraseComplete,
    FlashGeometry,
    ProgressEvent,
    ResponseShape,
    TransferComplete,
    TransferPlan,
    WireFormat,
)
from sambactl.core.session import DeviceSession

_WORD_SIZE = 4
LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def checksum(data: bytes) -> int:
    """CRC-16/XMODEM of ``data``, the checksum the bootloader reports for ``Z`` requests."""
    return binascii.crc_hqx(data, 0)


def check_image(flash: FlashGeometry, image: bytes) -> None:
    if not image:
        raise EmptyImageError("Refusing to flash an empty image")
    if len(image) > flash.total_size:
        raise ImageTooLargeError(len(image), flash.total_size)


def plan_transfer(flash: FlashGeometry, image: bytes) -> TransferPlan:
    """Split ``image`` into page-sized chunks starting at the flash base address."""
    check_image(flash, image)
    chunks = tuple(
        Chunk(index=index, address=flash.addr + offset, data=image[offset : offset + flash.size])
        for index, offset in enumerate(range(0, len(image), flash.size))
    )
    return TransferPlan(chunks=chunks)


def wire_payload(chunk: Chunk, flash: FlashGeometry, wire: WireFormat, *, word_writes: bool = False) -> bytes:
    """Bytes actually sent for ``chunk``, padded with the fill byte where the chip requires it."""
    fill = bytes([wire.fill_byte])
    if wire.pad_final_page:
        return chunk.data.ljust(flash.size, fill)
    if word_writes and chunk.length % _WORD_SIZE:
        return chunk.data.ljust(chunk.length + _WORD_SIZE - chunk.length % _WORD_SIZE, fill)
    return chunk.data


class FlashWriter:
    def __init__(self, session: DeviceSession) -> None:
        self.session = session
        self.codec = session.codec
        self.last_address: int | None = None

    @property
    def flash(self) -> FlashGeometry:
        return self.session.info.flash

    def write_image(
        self,
        image: bytes,
        *,
        erase: bool = False,
        boot: bool = True,
        progress: ProgressCallback | None = None,
        plan: TransferPlan | None = None,
    ) -> TransferPlan:
        features = self.session.info.features
        if plan is None:
            plan = plan_transfer(self.flash, image)
        if erase and not features.chip_erase:
            raise EraseUnsupportedError(f"{self.session.info.name} does not support chip erase")

        if erase:
            self.erase()
            _emit(progress, EraseComplete(address=self.flash.addr))

        for chunk in plan:
            self.last_address = chunk.address
            payload = self.write_chunk(chunk)
            self.verify_chunk(chunk.address, payload)
            LOGGER.info("Wrote chunk %d/%d at 0x%08X (%d bytes)", chunk.index + 1, len(plan), chunk.address, chunk.length)
            _emit(
                progress,
                ChunkWritten(index=chunk.index, count=len(plan), address=chunk.address, length=chunk.length),
            )

        _emit(progress, TransferComplete(chunks=len(plan), bytes_written=plan.total))
        if boot:
            self.boot()
        return plan

    def erase(self) -> None:
        codec = self.codec
        self.last_address = self.flash.addr
        LOGGER.info("Erasing flash from 0x%08X", self.flash.addr)
        codec.exchange(codec.chip_erase(self.flash.addr), ResponseShape.STATUS, token=codec.wire.erase_token)

    def write_chunk(self, chunk: Chunk) -> bytes:
        """Send ``chunk`` to flash and return the exact bytes written."""
        if self.session.info.features.write_buffer:
            payload = wire_payload(chunk, self.flash, self.codec.wire)
            self._write_buffered(chunk.address, payload)
        else:
            payload = wire_payload(chunk, self.flash, self.codec.wire, word_writes=True)
            self._write_words(chunk.address, payload)
        return payload

    def _write_buffered(self, address: int, payload: bytes) -> None:
        codec = self.codec
        codec.send(codec.set_address(address, len(payload)), payload)
        # The zero-length form precedes the real write on the wire; keep both.
        codec.exchange(codec.write_buffer(address, 0), ResponseShape.STATUS)
        codec.exchange(codec.write_buffer(address, len(payload)), ResponseShape.STATUS)

    def _write_words(self, address: int, payload: bytes) -> None:
        codec = self.codec
        for offset in range(0, len(payload), _WORD_SIZE):
            value = int.from_bytes(payload[offset : offset + _WORD_SIZE], "little")
            codec.send(codec.write_word(address + offset, value))

    def verify_chunk(self, address: int, payload: bytes) -> None:
        expected = checksum(payload)
        if self.session.info.features.checksum_buffer:
            codec = self.codec
            reply = codec.exchange(codec.checksum(address, len(payload)), ResponseShape.CHECKSUM)
            actual = reply.value
        else:
            actual = checksum(self.session.read_memory(address, len(payload)))
        if actual != expected:
            raise VerificationFailedError(address, expected, actual)

    def boot(self) -> None:
        codec = self.codec
        if self.session.info.features.reset:
            command = codec.reset()
        else:
            command = codec.go(self.flash.addr)
        LOGGER.info("Starting application with %s", command.line)
        codec.send(command)


def write_image(
    session: DeviceSession,
    image: bytes,
    *,
    erase: bool = False,
    boot: bool = True,
    progress: ProgressCallback | None = None,
) -> TransferPlan:
    return FlashWriter(session).write_image(image, erase=erase, boot=boot, progress=progress)


def _emit(progress: ProgressCallback | None, event: ProgressEvent) -> None:
    if progress is not None:
        progress(event)
