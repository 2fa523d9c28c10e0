"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    def read(self, size: int = 1) -> bytes:
        """Read up to ``size`` bytes, returning fewer (or none) once the read timeout expires."""

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the device."""

    def flush(self) -> None:
        """Block until written data has left the host."""
