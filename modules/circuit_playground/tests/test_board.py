from __future__ import annotations

import logging
import struct
import threading

import pytest
import serial  # type: ignore

from modules.circuit_playground.constants import CP_COMMAND, AccelRange, Command
from modules.circuit_playground.errors import ConnectionFailedError, DeviceClosedError, ReplyTimeoutError
from modules.circuit_playground.services.board import CircuitPlayground
from modules.circuit_playground.services.transport import PosixTransport


# -------- connector --------
def test_connect_reports_handshake(connect):
    device, board = connect()
    assert device.port == "/dev/ttyACM9"
    assert device.firmware_name == "CircuitPlaygroundFirmata"
    assert device.firmware_version == (2, 5)
    assert device.protocol_version == board.get_firmata_version()
    assert CP_COMMAND in board.handlers
    assert board.sampling_ms == 19
    assert board.sp.baudrate == 57600
    assert board.sp.exclusive is True


def test_connect_missing_port_raises_connection_error():
    def factory(port, settings):
        raise serial.SerialException(f"could not open port {port}")

    with pytest.raises(ConnectionFailedError) as ei:
        CircuitPlayground.connect("/dev/nope", transport=PosixTransport(), board_factory=factory)
    assert ei.value.port == "/dev/nope"
    assert isinstance(ei.value.__cause__, serial.SerialException)


@pytest.mark.parametrize("kw", [{"firmware": None}, {"protocol": None}])
def test_connect_handshake_failure_closes_board(make_board, kw):
    board = make_board(**kw)
    with pytest.raises(ConnectionFailedError, match="handshake"):
        CircuitPlayground.connect(
            "/dev/ttyACM9", reply_timeout=0.05, transport=PosixTransport(), board_factory=lambda p, s: board
        )
    assert board.sp.written == bytearray([0xF9])
    assert board.sent == [(0x79, [])]
    assert board.exit_calls == 1
    assert board.sampling_ms is None
    assert board.handlers == {}


def test_reader_start_failure_closes_board(make_board):
    board = make_board(fail_sampling=True)
    with pytest.raises(ConnectionFailedError, match="reader") as ei:
        CircuitPlayground.connect("/dev/ttyACM9", transport=PosixTransport(), board_factory=lambda p, s: board)
    assert isinstance(ei.value.__cause__, serial.SerialException)
    assert board.exit_calls == 1


def test_busy_port_fails_when_lock_is_refused(make_board):
    class LockedTransport(PosixTransport):
        def configure(self, sp, settings):
            raise serial.SerialException("Could not exclusively lock port")

    board = make_board()
    with pytest.raises(ConnectionFailedError):
        CircuitPlayground.connect("/dev/ttyACM9", transport=LockedTransport(), board_factory=lambda p, s: board)
    assert board.exit_calls == 1


def test_close_is_idempotent(connect):
    device, board = connect()
    with device:
        pass
    device.close()
    assert device.closed
    assert board.exit_calls == 1


def test_commands_after_close_raise(connect):
    device, board = connect()
    device.close()
    with pytest.raises(DeviceClosedError):
        device.show_pixels()
    with pytest.raises(DeviceClosedError):
        device.read_accel()
    assert board.sent == []


def test_write_errors_propagate(connect, make_board):
    device, _ = connect(make_board(fail_writes=True))
    with pytest.raises(serial.SerialException):
        device.no_tone()


# -------- outgoing commands --------
def test_simple_commands(connect):
    device, board = connect()
    device.show_pixels()
    device.clear_pixels()
    device.no_tone()
    device.set_pixel_brightness(50)
    device.set_accel_range(AccelRange.G8)
    assert board.sent == [
        (CP_COMMAND, [0x11]),
        (CP_COMMAND, [0x12]),
        (CP_COMMAND, [0x21]),
        (CP_COMMAND, [0x13, 50]),
        (CP_COMMAND, [0x3C, 2]),
    ]


def test_set_pixel_payload(connect):
    device, board = connect()
    device.set_pixel(3, 255, 128, 1)
    assert board.sent[-1] == (CP_COMMAND, [0x10, 3, 127, 96, 0, 16])


def test_tone_payload(connect):
    device, board = connect()
    device.tone(440, 1000)
    device.tone(262)
    assert board.sent[0] == (CP_COMMAND, [0x20, 56, 3, 104, 7])
    assert board.sent[1] == (CP_COMMAND, [0x20, 6, 2, 0, 0])


def test_tap_config_payload(connect):
    device, board = connect()
    device.set_tap_config()
    device.set_tap_config(1, 200)
    assert board.sent == [(CP_COMMAND, [0x3D, 2, 0, 80, 0]), (CP_COMMAND, [0x3D, 1, 0, 72, 1])]


@pytest.mark.parametrize(
    "call",
    [
        lambda d: d.set_pixel(10, 0, 0, 0),
        lambda d: d.set_pixel(-1, 0, 0, 0),
        lambda d: d.set_pixel(0, 256, 0, 0),
        lambda d: d.set_pixel_brightness(101),
        lambda d: d.tone(16384),
        lambda d: d.tone(440, -1),
        lambda d: d.set_accel_range(4),
        lambda d: d.set_tap_config(3, 80),
        lambda d: d.set_tap_config(2, 256),
        lambda d: d.read_cap_touch(4),
        lambda d: d.start_cap_touch(5, print),
    ],
)
def test_invalid_arguments_send_nothing(connect, call):
    device, board = connect()
    with pytest.raises(ValueError):
        call(device)
    assert board.sent == []


# -------- queries --------
def test_read_accel(connect, make_board, pack7):
    reply = [0x36, *pack7(struct.pack("<fff", 0.5, -1.0, 9.5))]
    device, board = connect(make_board(replies={Command.ACCEL_READ: [reply]}))
    reading = device.read_accel()
    assert (reading.x, reading.y, reading.z) == (0.5, -1.0, 9.5)
    assert board.opcodes() == [0x30]


def test_read_tap(connect, make_board, pack7):
    device, _ = connect(make_board(replies={Command.ACCEL_TAP: [[0x37, *pack7(b"\x10")]]}))
    tap = device.read_tap()
    assert tap.single and not tap.double


def test_read_cap_touch_matches_pin(connect, make_board, pack7):
    replies = [
        [0x43, *pack7(bytes([0]) + struct.pack("<i", 900))],  # streamed input 0
        [0x43, *pack7(bytes([3]) + struct.pack("<i", 120))],
    ]
    device, board = connect(make_board(replies={Command.CAP_READ: replies}))
    reading = device.read_cap_touch(3)
    assert (reading.pin, reading.value, reading.touched) == (3, 120, False)
    assert board.sent == [(CP_COMMAND, [0x40, 3])]


def test_read_color_and_version(connect, make_board, pack7):
    replies = {
        Command.SENSECOLOR: [[0x51, *pack7(bytes([10, 200, 255]))]],
        Command.IMPL_VERS: [[0x61, *pack7(bytes([1, 0, 2]))]],
    }
    device, _ = connect(make_board(replies=replies))
    color = device.read_color_sense()
    assert (color.red, color.green, color.blue) == (10, 200, 255)
    assert device.read_implementation_version() == (1, 0, 2)


def test_query_timeout(connect):
    device, _ = connect(reply_timeout=0.05)
    with pytest.raises(ReplyTimeoutError) as ei:
        device.read_color_sense()
    assert isinstance(ei.value, TimeoutError)
    assert "SENSECOLOR_REPLY" in str(ei.value)


def test_stale_reply_does_not_answer_query(connect, make_board, pack7):
    fresh = [0x36, *pack7(struct.pack("<fff", 1.0, 2.0, 3.0))]
    device, board = connect(make_board(replies={Command.ACCEL_READ: [fresh]}))
    board.feed(0x36, *pack7(struct.pack("<fff", -9.0, -9.0, -9.0)))
    assert device.read_accel().x == 1.0


def test_read_temperature(connect):
    device, board = connect()
    board.analog[0].value = 0.5
    assert device.read_temperature() == pytest.approx(25.0, abs=0.01)
    assert board.analog[0].reporting


def test_read_temperature_timeout(connect):
    device, _ = connect(reply_timeout=0.03)
    with pytest.raises(ReplyTimeoutError):
        device.read_temperature()


# -------- streams --------
def test_accel_stream_callbacks(connect, pack7):
    device, board = connect()
    seen = []
    device.start_accel(seen.append)
    payload = pack7(struct.pack("<fff", 0.0, 0.0, 9.75))
    board.feed(0x36, *payload)
    device.stop_accel()
    board.feed(0x36, *payload)
    assert board.opcodes() == [0x3A, 0x3B]
    assert len(seen) == 1
    assert seen[0].z == 9.75


def test_tap_stream_callbacks(connect, pack7):
    device, board = connect()
    seen = []
    device.start_tap(seen.append)
    board.feed(0x37, *pack7(b"\x20"))
    device.stop_tap()
    assert board.opcodes() == [0x38, 0x39]
    assert seen[0].double and not seen[0].single


def test_cap_stream_routes_by_pin(connect, pack7):
    device, board = connect()
    on_one, on_two = [], []
    device.start_cap_touch(1, on_one.append)
    device.start_cap_touch(2, on_two.append)
    board.feed(0x43, *pack7(bytes([2]) + struct.pack("<i", 500)))
    device.stop_cap_touch(1)
    board.feed(0x43, *pack7(bytes([1]) + struct.pack("<i", 500)))
    assert on_one == []
    assert [r.touched for r in on_two] == [True]
    assert board.sent[-1] == (CP_COMMAND, [0x42, 1])


class CountingLock:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.entered = 0

    def __enter__(self) -> "CountingLock":
        self._lock.acquire()
        self.entered += 1
        return self

    def __exit__(self, *exc) -> None:
        self._lock.release()


def test_stream_callbacks_are_read_under_lock(connect, pack7):
    device, board = connect()
    device.start_accel(lambda r: None)
    device.start_tap(lambda r: None)
    device._cb_lock = lock = CountingLock()
    board.feed(0x36, *pack7(struct.pack("<fff", 0.0, 0.0, 0.0)))
    board.feed(0x37, *pack7(b"\x10"))
    board.feed(0x43, *pack7(bytes([1]) + struct.pack("<i", 5)))
    assert lock.entered == 3


def test_bad_callback_does_not_break_reader(connect, pack7, caplog):
    device, board = connect()

    def boom(_reading):
        raise RuntimeError("boom")

    device.start_tap(boom)
    with caplog.at_level(logging.ERROR):
        board.feed(0x37, *pack7(b"\x10"))
    assert "Callback for reply 0x37 failed" in caplog.text


def test_malformed_and_unknown_replies_are_dropped(connect, caplog):
    device, board = connect(reply_timeout=0.03)
    with caplog.at_level(logging.WARNING):
        board.feed(0x36, 1, 2)
        board.feed(0x7E, 1)
        board.feed()
    assert "Malformed reply 0x36" in caplog.text
    with pytest.raises(ReplyTimeoutError):
        device.read_accel()
