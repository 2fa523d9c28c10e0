"""Serial transport implementation using pyserial."""

from __future__ import annotations

import logging

import serial
from serial.tools import list_ports

from sambactl.core.errors import (
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from sambactl.core.model import DetectedPort

DEFAULT_BAUDRATE = 230400
DEFAULT_TIMEOUT_S = 1.0
LOGGER = logging.getLogger(__name__)


def list_serial_ports() -> list[DetectedPort]:
    ports: list[DetectedPort] = []
    for port in sorted(list_ports.comports(), key=lambda p: p.device):
        ports.append(
            DetectedPort(
                device=port.device,
                description=port.description or "",
                hwid=port.hwid or "",
            )
        )
    return ports


class SerialTransport:
    """Byte transport over a serial device with a fixed read timeout.

    The port is opened lazily by :meth:`open` (or by entering the context
    manager) and must be closed by the owner once the flashing run ends.
    """

    def __init__(
        self,
        port: str,
        *,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout_s = timeout_s
        self._serial: serial.Serial | None = None

    def open(self) -> SerialTransport:
        if self._serial is not None:
            return self
        LOGGER.info("Opening %s at %d baud", self.port, self.baudrate)
        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout_s,
                write_timeout=self.timeout_s,
            )
        except serial.SerialException as exc:
            raise TransportConnectError(f"Failed to open port {self.port}: {exc}") from exc
        self._serial.reset_input_buffer()
        return self

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        finally:
            self._serial = None

    def __enter__(self) -> SerialTransport:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _port(self) -> serial.Serial:
        if self._serial is None:
            raise TransportConnectError(f"Port {self.port} is not open")
        return self._serial

    def read(self, size: int = 1) -> bytes:
        try:
            return bytes(self._port().read(size))
        except serial.SerialException as exc:
            raise TransportSendError(f"Serial read from {self.port} failed: {exc}") from exc

    def write(self, data: bytes) -> None:
        try:
            self._port().write(data)
        except serial.SerialTimeoutException as exc:
            raise TransportTimeoutError(f"Serial write to {self.port} timed out: {exc}") from exc
        except serial.SerialException as exc:
            raise TransportSendError(f"Serial write to {self.port} failed: {exc}") from exc

    def flush(self) -> None:
        try:
            self._port().flush()
        except serial.SerialException as exc:
            raise TransportSendError(f"Serial flush on {self.port} failed: {exc}") from exc
