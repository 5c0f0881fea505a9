from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest
import serial  # type: ignore

from modules.circuit_playground.constants import CP_COMMAND
from modules.circuit_playground.services.board import CircuitPlayground
from modules.circuit_playground.services.transport import PosixTransport


def seven_bit(data: bytes) -> List[int]:
    """Split 8-bit bytes the way the board firmware sends them."""
    out: List[int] = []
    for b in data:
        out += [b & 0x7F, b >> 7]
    return out


class FakeSerial:
    """Stands in for the pyserial port a Firmata board holds as ``sp``."""

    def __init__(self) -> None:
        self.baudrate = 9600
        self.bytesize = 7
        self.parity = "E"
        self.stopbits = 2
        self.xonxoff = True
        self.rtscts = True
        self.dsrdtr = True
        self.exclusive = None
        self.written = bytearray()

    def write(self, data: bytes) -> int:
        self.written += data
        return len(data)


class FakePin:
    def __init__(self, value: Optional[float] = None) -> None:
        self.value = value
        self.reporting = False

    def enable_reporting(self) -> None:
        self.reporting = True

    def read(self) -> Optional[float]:
        raise IOError("Reading via polling is not supported by this library")


class FakeBoard:
    """Mimics the pyfirmata2 Board surface the driver uses.

    ``replies`` maps a request opcode to the SysEx payloads (reply opcode
    first) that the board answers with.
    """

    def __init__(
        self,
        firmware: Optional[str] = "CircuitPlaygroundFirmata",
        firmware_version: Optional[Tuple[int, int]] = (2, 5),
        protocol: Optional[Tuple[int, int]] = (2, 5),
        replies: Optional[Dict[int, Iterable[List[int]]]] = None,
        fail_writes: bool = False,
        fail_sampling: bool = False,
    ) -> None:
        self.firmware = firmware
        self.firmware_version = firmware_version
        self._protocol = protocol
        self.replies = {k: list(v) for k, v in (replies or {}).items()}
        self.fail_writes = fail_writes
        self.fail_sampling = fail_sampling
        self.sent: List[Tuple[int, List[int]]] = []
        self.handlers: Dict[int, Any] = {}
        self.analog = [FakePin() for _ in range(12)]
        self.sp = FakeSerial()
        self.sampling_ms: Optional[int] = None
        self.exit_calls = 0

    def get_firmata_version(self) -> Optional[Tuple[int, int]]:
        return self._protocol

    def add_cmd_handler(self, cmd: int, func: Any) -> None:
        self.handlers[cmd] = func

    def send_sysex(self, cmd: int, data: List[int]) -> None:
        if self.fail_writes:
            raise serial.SerialException("write failed")
        self.sent.append((cmd, list(data)))
        if cmd != CP_COMMAND:
            return
        for reply in self.replies.get(data[0], []):
            self.handlers[cmd](*reply)

    def feed(self, *data: int) -> None:
        self.handlers[CP_COMMAND](*data)

    def bytes_available(self) -> int:
        return 0

    def iterate(self) -> None:
        pass

    def samplingOn(self, sample_interval: int = 19) -> None:
        if self.fail_sampling:
            raise serial.SerialException("write failed")
        self.sampling_ms = sample_interval

    def exit(self) -> None:
        self.exit_calls += 1

    def opcodes(self) -> List[int]:
        return [data[0] for _, data in self.sent]


@pytest.fixture
def board() -> FakeBoard:
    return FakeBoard()


@pytest.fixture
def connect():
    """Connect a CircuitPlayground to a FakeBoard; returns (device, board)."""

    def _connect(fake: Optional[FakeBoard] = None, reply_timeout: float = 0.2, **kw: Any):
        fake = fake or FakeBoard()
        device = CircuitPlayground.connect(
            port="/dev/ttyACM9",
            reply_timeout=reply_timeout,
            transport=PosixTransport(),
            board_factory=lambda port, settings: fake,
            **kw,
        )
        return device, fake

    return _connect


@pytest.fixture
def make_board():
    return FakeBoard


@pytest.fixture
def pack7():
    return seven_bit
