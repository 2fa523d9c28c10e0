"""Bootloader handshake and the facts it establishes."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from sambactl.core.chip_table import ChipTable, default_chip_table
from sambactl.core.codec import CommandCodec
from sambactl.core.errors import UnsupportedChipError
from sambactl.core.model import ChipInfo, Features, ResponseShape
from sambactl.transports.base import Transport

_FEATURE_TAG_RE = re.compile(r"\[Arduino:([^\]]*)\]")
# Reads of a power-of-two size above this limit hit a bootloader bug over USB.
_READ_BUG_THRESHOLD = 32
LOGGER = logging.getLogger(__name__)


def advertised_features(version: str) -> Features | None:
    """Return the features listed in a ``[Arduino:XYZ]`` version tag, if any."""
    match = _FEATURE_TAG_RE.search(version)
    if match is None:
        return None
    return Features.from_tag(match.group(1))


class DeviceSession:
    """An established connection to one bootloader.

    Use :meth:`open` to run the handshake; the session then owns the transport
    until the run ends.
    """

    def __init__(self, codec: CommandCodec, info: ChipInfo) -> None:
        self.codec = codec
        self.info = info

    @classmethod
    def open(cls, transport: Transport, chips: ChipTable | None = None) -> DeviceSession:
        table = chips if chips is not None else default_chip_table()
        codec = CommandCodec(transport)

        version = codec.exchange(codec.version(), ResponseShape.TEXT).text
        advertised = advertised_features(version)

        name = codec.exchange(codec.identify(), ResponseShape.TEXT).text
        chip = table.lookup(name)
        if chip is None:
            raise UnsupportedChipError(name)
        codec.wire = chip.wire

        codec.exchange(codec.normal_mode(), ResponseShape.EMPTY)

        if advertised is not None and advertised != chip.features:
            LOGGER.warning(
                "Bootloader advertises features %s but chip table lists %s for %s",
                ",".join(advertised.enabled()) or "<none>",
                ",".join(chip.features.enabled()) or "<none>",
                chip.name,
            )

        info = ChipInfo(version=version, chip=chip, advertised=advertised)
        LOGGER.info("Connected to %s (%s)", chip.name, version)
        return cls(codec, info)

    @property
    def last_command(self) -> str | None:
        return self.codec.last_command

    def read_memory(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes starting at ``address``, one flash page at a time."""
        data = bytearray()
        for block_address, block_length in self._blocks(address, length):
            data += self._read_block(block_address, block_length)
        return bytes(data)

    def read_flash(self, length: int | None = None) -> bytes:
        flash = self.info.flash
        total = flash.total_size if length is None else min(length, flash.total_size)
        return self.read_memory(flash.addr, total)

    def _blocks(self, address: int, length: int) -> Iterator[tuple[int, int]]:
        page_size = self.info.flash.size
        offset = 0
        while offset < length:
            size = min(page_size, length - offset)
            yield address + offset, size
            offset += size

    def _read_block(self, address: int, length: int) -> bytes:
        codec = self.codec
        if length > _READ_BUG_THRESHOLD and length & (length - 1) == 0:
            first = codec.exchange(codec.read_byte(address), ResponseShape.RAW, size=1).raw
            rest = codec.exchange(codec.read(address + 1, length - 1), ResponseShape.RAW, size=length - 1).raw
            return first + rest
        return codec.exchange(codec.read(address, length), ResponseShape.RAW, size=length).raw
