"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from sambactl.core.errors import SambactlError
from sambactl.core.model import (
    ChipInfo,
    ChunkWritten,
    EraseComplete,
    FlashResult,
    HandshakeComplete,
    ProgressEvent,
    TransferComplete,
)
from sambactl.core.service import FlashService
from sambactl.transports.serial_port import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT_S, SerialTransport

app = typer.Typer(help="Flash firmware through SAM-BA style serial bootloaders")

PORT_OPTION = typer.Option(..., "--port", "-p", envvar="SAMBACTL_PORT", help="Serial port of the bootloader")
BAUD_OPTION = typer.Option(DEFAULT_BAUDRATE, "--baud", envvar="SAMBACTL_BAUD", help="Serial baud rate")
TIMEOUT_OPTION = typer.Option(
    DEFAULT_TIMEOUT_S, "--timeout", envvar="SAMBACTL_TIMEOUT", help="Read timeout in seconds"
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every protocol exchange"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> FlashService:
    service = FlashService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _print_info(info: ChipInfo) -> None:
    flash = info.flash
    typer.echo(f"Version: {info.version}")
    typer.echo(f"Chip: {info.name}")
    typer.echo(f"Features: {', '.join(info.features.enabled()) or '<none>'}")
    typer.echo(
        f"Flash: addr=0x{flash.addr:08X} pages={flash.pages} size={flash.size} "
        f"planes={flash.planes} lock_regions={flash.lock_regions} "
        f"user=0x{flash.user:08X} stack=0x{flash.stack:08X}"
    )


def _print_progress(event: ProgressEvent) -> None:
    if isinstance(event, HandshakeComplete):
        typer.echo(f"Connected to {event.info.name} ({event.info.version})")
    elif isinstance(event, EraseComplete):
        typer.echo(f"Erased flash from 0x{event.address:08X}")
    elif isinstance(event, ChunkWritten):
        typer.echo(
            f"Wrote chunk {event.index + 1}/{event.count} at 0x{event.address:08X} ({event.length} bytes)"
        )
    elif isinstance(event, TransferComplete):
        typer.echo(f"Verified {event.bytes_written} bytes in {event.chunks} chunks")


def _report_failure(result: FlashResult) -> None:
    typer.echo(f"Error: {result.error}", err=True)
    if result.failed_in is not None:
        typer.echo(f"  while: {result.failed_in.value}", err=True)
    if result.last_command:
        typer.echo(f"  last command: {result.last_command}", err=True)
    if result.last_address is not None:
        typer.echo(f"  last address: 0x{result.last_address:08X}", err=True)


@app.command("list")
def list_ports() -> None:
    """List serial ports that may host a bootloader."""
    ports = FlashService.list_ports()
    if not ports:
        typer.echo("No serial ports found")
        return
    typer.echo(f"Found {len(ports)} serial ports.")
    for port in ports:
        typer.echo(f"{port.device}: {port.description}")


@app.command("chips")
def list_chips() -> None:
    """List chips known to the chip table."""
    try:
        service = _build_service()
        for chip in service.list_chips():
            flash = chip.flash
            typer.echo(
                f"{chip.name}: {flash.pages} x {flash.size} bytes at 0x{flash.addr:08X} "
                f"[{', '.join(chip.features.enabled())}]"
            )
    except SambactlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def info(
    port: str = PORT_OPTION,
    baud: int = BAUD_OPTION,
    timeout: float = TIMEOUT_OPTION,
) -> None:
    """Connect to the bootloader and print chip facts."""
    try:
        service = _build_service()
        with SerialTransport(port, baudrate=baud, timeout_s=timeout) as transport:
            chip_info = service.info(transport)
        _print_info(chip_info)
    except SambactlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("read")
def read(
    file: Path = typer.Option(..., "--file", "-f", dir_okay=False, help="Where to store the flash dump"),
    length: int | None = typer.Option(None, "--length", min=1, help="Bytes to read (default: whole flash)"),
    port: str = PORT_OPTION,
    baud: int = BAUD_OPTION,
    timeout: float = TIMEOUT_OPTION,
) -> None:
    """Dump flash memory to a file."""
    try:
        service = _build_service()
        with SerialTransport(port, baudrate=baud, timeout_s=timeout) as transport:
            data = service.read(transport, length)
        file.write_bytes(data)
        typer.echo(f"Read {len(data)} bytes into {file}")
    except OSError as exc:
        typer.echo(f"Error: could not write {file}: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except SambactlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("write")
def write(
    file: Path = typer.Option(..., "--file", "-f", exists=True, dir_okay=False, help="Binary image to flash"),
    erase: bool = typer.Option(False, "--erase", help="Erase the whole chip before writing"),
    boot: bool = typer.Option(True, "--boot/--no-boot", help="Start the new program when done"),
    port: str = PORT_OPTION,
    baud: int = BAUD_OPTION,
    timeout: float = TIMEOUT_OPTION,
) -> None:
    """Write, verify, and boot a binary image."""
    try:
        image = file.read_bytes()
    except OSError as exc:
        typer.echo(f"Error: could not read {file}: {exc}", err=True)
        raise typer.Exit(code=1) from None

    try:
        service = _build_service()
        with SerialTransport(port, baudrate=baud, timeout_s=timeout) as transport:
            result = service.flash(transport, image, erase=erase, boot=boot, progress=_print_progress)
    except SambactlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not result.ok:
        _report_failure(result)
        raise typer.Exit(code=1)
    typer.echo("Done" if not boot else "Done, application started")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
