"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging

from sambactl.core.chip_table import ChipTable, default_chip_table
from sambactl.core.errors import EmptyImageError, EraseUnsupportedError, SambactlError
from sambactl.core.flash_writer import FlashWriter, ProgressCallback, plan_transfer
from sambactl.core.model import (
    ChipInfo,
    ChipSpec,
    DetectedPort,
    EraseComplete,
    FlashResult,
    HandshakeComplete,
    ProgressEvent,
    RunState,
    TransferFailed,
    TransferPlan,
)
from sambactl.core.session import DeviceSession
from sambactl.transports.base import Transport
from sambactl.transports.serial_port import list_serial_ports

LOGGER = logging.getLogger(__name__)

_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.HANDSHAKING}),
    RunState.HANDSHAKING: frozenset({RunState.ERASING, RunState.WRITING}),
    RunState.ERASING: frozenset({RunState.WRITING}),
    RunState.WRITING: frozenset({RunState.BOOTING, RunState.DONE}),
    RunState.BOOTING: frozenset({RunState.DONE}),
}


class _FlashRun:
    """One pass through the flashing state machine; never restarted."""

    def __init__(self, progress: ProgressCallback | None) -> None:
        self.state = RunState.IDLE
        self.progress = progress
        self.session: DeviceSession | None = None
        self.writer: FlashWriter | None = None
        self.plan: TransferPlan | None = None

    def advance(self, state: RunState) -> None:
        if state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(f"Invalid flashing state transition {self.state.value} -> {state.value}")
        LOGGER.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    def emit(self, event: ProgressEvent) -> None:
        if self.progress is not None:
            self.progress(event)

    def result(self, error: SambactlError | None = None) -> FlashResult:
        info = self.session.info if self.session else None
        last_command = self.session.last_command if self.session else None
        last_address = self.writer.last_address if self.writer else None
        if error is None:
            return FlashResult(
                state=self.state,
                info=info,
                plan=self.plan,
                last_command=last_command,
                last_address=last_address,
            )
        return FlashResult(
            state=RunState.FAILED,
            info=info,
            plan=self.plan,
            error=error,
            failed_in=self.state,
            last_command=last_command or getattr(error, "command", None),
            last_address=last_address,
        )


class FlashService:
    def __init__(self, *, chips: ChipTable | None = None) -> None:
        self.chips = chips if chips is not None else default_chip_table()
        self.load_warnings = self.chips.warnings

    def list_chips(self) -> list[ChipSpec]:
        return sorted(self.chips.chips.values(), key=lambda c: c.name)

    @staticmethod
    def list_ports() -> list[DetectedPort]:
        return list_serial_ports()

    def connect(self, transport: Transport) -> DeviceSession:
        return DeviceSession.open(transport, self.chips)

    def info(self, transport: Transport) -> ChipInfo:
        return self.connect(transport).info

    def read(self, transport: Transport, length: int | None = None) -> bytes:
        return self.connect(transport).read_flash(length)

    def flash(
        self,
        transport: Transport,
        image: bytes,
        *,
        erase: bool = False,
        boot: bool = True,
        progress: ProgressCallback | None = None,
    ) -> FlashResult:
        """Handshake, optionally erase, write and verify ``image``, then boot it.

        Errors are not raised; the first one ends the run and is returned in
        the result along with the last command and address in progress.
        """
        run = _FlashRun(progress)
        try:
            if not image:
                raise EmptyImageError("Refusing to flash an empty image")

            run.advance(RunState.HANDSHAKING)
            run.session = DeviceSession.open(transport, self.chips)
            run.writer = FlashWriter(run.session)
            run.emit(HandshakeComplete(info=run.session.info))

            run.plan = plan_transfer(run.session.info.flash, image)

            if erase:
                if not run.session.info.features.chip_erase:
                    raise EraseUnsupportedError(f"{run.session.info.name} does not support chip erase")
                run.advance(RunState.ERASING)
                run.writer.erase()
                run.emit(EraseComplete(address=run.session.info.flash.addr))

            run.advance(RunState.WRITING)
            run.writer.write_image(image, boot=False, progress=run.emit, plan=run.plan)

            if boot:
                run.advance(RunState.BOOTING)
                run.writer.boot()
            run.advance(RunState.DONE)
        except SambactlError as exc:
            LOGGER.error("Flashing failed while %s: %s", run.state.value, exc)
            result = run.result(exc)
            run.state = RunState.FAILED
            run.emit(TransferFailed(state=result.failed_in, error=exc))
            return result
        return run.result()
