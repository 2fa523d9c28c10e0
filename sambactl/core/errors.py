"""Domain-specific errors for sambactl."""

from __future__ import annotations


class SambactlError(Exception):
    """Base error for sambactl."""


class ChipTableError(SambactlError):
    """Base error for chip definition problems."""


class ChipTableValidationError(ChipTableError):
    """Raised when a chip definition file does not conform to schema or semantics."""


class ChipTableLoadError(ChipTableError):
    """Raised when reading chip definition sources fails."""


class TransportError(SambactlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the serial device cannot be opened."""


class TransportSendError(TransportError):
    """Raised when writing to or reading from the transport fails."""


class TransportTimeoutError(TransportError):
    """Raised when the transport read timeout expires."""


class ProtocolError(SambactlError):
    """Base error for bootloader protocol violations."""


class UnexpectedResponseError(ProtocolError):
    """Raised when a reply does not have the shape expected for its command."""

    def __init__(self, message: str, *, raw: bytes = b"", command: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw
        self.command = command


class ResponseTimeoutError(TransportTimeoutError, ProtocolError):
    """Raised when an expected reply does not arrive before the read timeout."""

    def __init__(self, message: str, *, raw: bytes = b"", command: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw
        self.command = command


class UnsupportedChipError(ProtocolError):
    """Raised when the identified chip is absent from the chip table."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unsupported chip '{name}'. Use 'sambactl chips' to list known chips.")
        self.name = name


class FlashError(SambactlError):
    """Base error for image transfer failures."""


class EmptyImageError(FlashError):
    """Raised when asked to flash an empty image."""


class ImageTooLargeError(FlashError):
    """Raised when the image does not fit into the chip's flash."""

    def __init__(self, size: int, capacity: int) -> None:
        super().__init__(f"Image of {size} bytes exceeds flash capacity of {capacity} bytes")
        self.size = size
        self.capacity = capacity


class EraseUnsupportedError(FlashError):
    """Raised when a chip erase is requested but the chip cannot do it."""


class VerificationFailedError(FlashError):
    """Raised when the device checksum of a written chunk differs from the local one."""

    def __init__(self, address: int, expected: int, actual: int) -> None:
        super().__init__(
            f"Verification failed at 0x{address:08X}: "
            f"expected checksum 0x{expected:04X}, device reported 0x{actual:04X}"
        )
        self.address = address
        self.expected = expected
        self.actual = actual
