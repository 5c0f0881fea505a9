from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from queue import Empty, Full, Queue
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..constants import (
    CAP_INPUTS,
    CP_COMMAND,
    MAX_BRIGHTNESS,
    MAX_14BIT,
    NUM_PIXELS,
    REPLY_FOR,
    REPORT_FIRMWARE,
    REPORT_VERSION,
    TAP_TYPES,
    THERM_PIN,
    AccelRange,
    Command,
)
from ..errors import ConnectionFailedError, DeviceClosedError, ReplyTimeoutError
from . import codec
from .codec import AccelReading, CapReading, Color, TapReading
from .transport import SerialSettings, SerialTransport, select_transport

log = logging.getLogger(__name__)

BoardFactory = Callable[[str, SerialSettings], Any]


@dataclass(frozen=True)
class BoardInfo:
    port: str
    firmware_name: str
    firmware_version: Optional[Tuple[int, ...]]
    protocol_version: Tuple[int, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "port": self.port,
            "firmware_name": self.firmware_name,
            "firmware_version": list(self.firmware_version) if self.firmware_version else None,
            "protocol_version": list(self.protocol_version),
        }


def open_firmata_board(port: str, settings: SerialSettings) -> Any:
    """Open a pyfirmata2 session and let it discover the pin layout."""
    import pyfirmata2  # type: ignore

    return pyfirmata2.Board(port, baudrate=settings.baudrate, timeout=settings.timeout)


def _reported(board: Any) -> bool:
    return bool(getattr(board, "firmware", None)) and bool(board.get_firmata_version())


def request_board_info(board: Any, timeout: float) -> None:
    """Ask the firmware for its protocol version and name and wait for both.

    Native USB boards send these reports once at boot, before the port is
    opened, so the session has to query them. Runs before the reader thread
    is started, so replies are pumped with ``iterate`` here.
    """
    if _reported(board):
        return
    board.sp.write(bytearray([REPORT_VERSION]))
    board.send_sysex(REPORT_FIRMWARE, [])
    deadline = time.monotonic() + timeout
    while not _reported(board):
        if board.bytes_available():
            board.iterate()
        elif time.monotonic() >= deadline:
            return
        else:
            time.sleep(0.005)


def read_board_info(board: Any, port: str) -> BoardInfo:
    """Collect what the firmware reported during the handshake.

    Raises ``ValueError`` when the board did not answer like Firmata.
    """
    name = getattr(board, "firmware", None)
    protocol = board.get_firmata_version()
    if not name:
        raise ValueError("no firmware name reported")
    if not protocol:
        raise ValueError("no Firmata protocol version reported")
    fw_version = getattr(board, "firmware_version", None)
    return BoardInfo(
        port=port,
        firmware_name=str(name),
        firmware_version=tuple(fw_version) if fw_version else None,
        protocol_version=tuple(protocol),
    )


def _close_quietly(board: Any) -> None:
    try:
        board.exit()
    except Exception as exc:
        log.warning("Closing half-open board failed: %s", exc)


class CircuitPlayground:
    """Circuit Playground commands over an open Firmata session.

    Use :meth:`connect` to open a serial port; the constructor only wraps a
    session that is already negotiated. Replies arrive on the Firmata reader
    thread and are handed to waiting queries through per-opcode queues.
    """

    def __init__(self, board: Any, info: BoardInfo, reply_timeout: float = 1.0):
        self._board = board
        self.info = info
        self.reply_timeout = float(reply_timeout)
        self._closed = False
        self._close_lock = threading.Lock()
        self._cb_lock = threading.Lock()
        self._replies: Dict[int, "Queue[Any]"] = {int(op): Queue(maxsize=32) for op in REPLY_FOR.values()}
        self._accel_cb: Optional[Callable[[AccelReading], None]] = None
        self._tap_cb: Optional[Callable[[TapReading], None]] = None
        self._cap_cbs: Dict[int, Callable[[CapReading], None]] = {}
        self._reporting: set[int] = set()
        board.add_cmd_handler(CP_COMMAND, self._on_sysex)

    # -------- lifecycle --------
    @classmethod
    def connect(
        cls,
        port: Optional[str] = "auto",
        reply_timeout: float = 1.0,
        sampling_ms: int = 19,
        settings: Optional[SerialSettings] = None,
        transport: Optional[SerialTransport] = None,
        board_factory: Optional[BoardFactory] = None,
    ) -> "CircuitPlayground":
        transport = transport or select_transport()
        settings = settings or SerialSettings()
        factory = board_factory or open_firmata_board
        resolved = transport.resolve_port(port)
        log.info("Opening Circuit Playground on %s (%s transport)", resolved, transport.kind)

        try:
            board = factory(resolved, settings)
        except Exception as exc:
            raise ConnectionFailedError(resolved, f"cannot open port: {exc}") from exc

        try:
            sp = getattr(board, "sp", None)
            if sp is not None:
                transport.configure(sp, settings)
            request_board_info(board, reply_timeout)
            info = read_board_info(board, resolved)
        except Exception as exc:
            _close_quietly(board)
            raise ConnectionFailedError(resolved, f"handshake failed: {exc}") from exc

        log.info("firmware name %s", info.firmware_name)
        log.info("firmware version %s", info.firmware_version)
        log.info("protocol version %s", info.protocol_version)

        device = cls(board, info, reply_timeout=reply_timeout)
        try:
            board.samplingOn(sampling_ms)
        except Exception as exc:
            _close_quietly(board)
            raise ConnectionFailedError(resolved, f"cannot start reader: {exc}") from exc
        return device

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        with self._cb_lock:
            self._accel_cb = None
            self._tap_cb = None
            self._cap_cbs.clear()
        log.info("Closing Circuit Playground on %s", self.info.port)
        self._board.exit()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "CircuitPlayground":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -------- handshake info --------
    @property
    def port(self) -> str:
        return self.info.port

    @property
    def firmware_name(self) -> str:
        return self.info.firmware_name

    @property
    def firmware_version(self) -> Optional[Tuple[int, ...]]:
        return self.info.firmware_version

    @property
    def protocol_version(self) -> Tuple[int, ...]:
        return self.info.protocol_version

    # -------- neopixels --------
    def set_pixel(self, pixel: int, red: int, green: int, blue: int) -> None:
        if not 0 <= pixel < NUM_PIXELS:
            raise ValueError(f"pixel must be 0-{NUM_PIXELS - 1}, got {pixel}")
        self._send(Command.PIXEL_SET, [pixel & 0x7F, *codec.pack_rgb(red, green, blue)])

    def show_pixels(self) -> None:
        self._send(Command.PIXEL_SHOW)

    def clear_pixels(self) -> None:
        self._send(Command.PIXEL_CLEAR)

    def set_pixel_brightness(self, brightness: int) -> None:
        if not 0 <= brightness <= MAX_BRIGHTNESS:
            raise ValueError(f"brightness must be 0-{MAX_BRIGHTNESS}, got {brightness}")
        self._send(Command.PIXEL_BRIGHTNESS, [brightness & 0x7F])

    # -------- speaker --------
    def tone(self, frequency_hz: int, duration_ms: int = 0) -> None:
        """Play a tone; a duration of 0 keeps playing until ``no_tone``."""
        if not 0 <= frequency_hz <= MAX_14BIT:
            raise ValueError(f"frequency must be 0-{MAX_14BIT} hz, got {frequency_hz}")
        if not 0 <= duration_ms <= MAX_14BIT:
            raise ValueError(f"duration must be 0-{MAX_14BIT} ms, got {duration_ms}")
        self._send(Command.TONE, [*codec.to_two_bytes(frequency_hz), *codec.to_two_bytes(duration_ms)])

    def no_tone(self) -> None:
        self._send(Command.NO_TONE)

    # -------- accelerometer --------
    def read_accel(self) -> AccelReading:
        return self._query(Command.ACCEL_READ)

    def set_accel_range(self, accel_range: int) -> None:
        try:
            value = AccelRange(accel_range)
        except ValueError:
            raise ValueError(f"accel range must be one of {[int(r) for r in AccelRange]}, got {accel_range}") from None
        self._send(Command.ACCEL_RANGE, [int(value)])

    def start_accel(self, callback: Callable[[AccelReading], None]) -> None:
        with self._cb_lock:
            self._accel_cb = callback
        self._send(Command.ACCEL_STREAM_ON)

    def stop_accel(self) -> None:
        self._send(Command.ACCEL_STREAM_OFF)
        with self._cb_lock:
            self._accel_cb = None

    # -------- tap detection --------
    def read_tap(self) -> TapReading:
        return self._query(Command.ACCEL_TAP)

    def set_tap_config(self, tap_type: int = 2, threshold: int = 80) -> None:
        """Configure click detection.

        ``tap_type``: 0 = off, 1 = single, 2 = single and double.
        ``threshold``: 0-255, higher is less sensitive. Good values depend
        on the range: 16G 5-10, 8G 10-20, 4G 20-40, 2G 40-80.
        """
        if tap_type not in TAP_TYPES:
            raise ValueError(f"tap type must be one of {TAP_TYPES}, got {tap_type}")
        if not 0 <= threshold <= 255:
            raise ValueError(f"tap threshold must be 0-255, got {threshold}")
        self._send(Command.ACCEL_TAP_CONFIG, [*codec.to_two_bytes(tap_type), *codec.to_two_bytes(threshold)])

    def start_tap(self, callback: Callable[[TapReading], None]) -> None:
        with self._cb_lock:
            self._tap_cb = callback
        self._send(Command.ACCEL_TAP_STREAM_ON)

    def stop_tap(self) -> None:
        self._send(Command.ACCEL_TAP_STREAM_OFF)
        with self._cb_lock:
            self._tap_cb = None

    # -------- capacitive touch --------
    def read_cap_touch(self, pin: int) -> CapReading:
        self._check_cap_pin(pin)
        return self._query(Command.CAP_READ, [pin], match=lambda r: r.pin == pin)

    def start_cap_touch(self, pin: int, callback: Callable[[CapReading], None]) -> None:
        self._check_cap_pin(pin)
        with self._cb_lock:
            self._cap_cbs[pin] = callback
        self._send(Command.CAP_ON, [pin])

    def stop_cap_touch(self, pin: int) -> None:
        self._check_cap_pin(pin)
        self._send(Command.CAP_OFF, [pin])
        with self._cb_lock:
            self._cap_cbs.pop(pin, None)

    @staticmethod
    def _check_cap_pin(pin: int) -> None:
        if pin not in CAP_INPUTS:
            raise ValueError(f"cap touch input must be one of {sorted(CAP_INPUTS)}, got {pin}")

    # -------- other sensors --------
    def read_color_sense(self) -> Color:
        return self._query(Command.SENSECOLOR)

    def read_implementation_version(self) -> Tuple[int, int, int]:
        return self._query(Command.IMPL_VERS)

    def read_temperature(self) -> float:
        """Read the thermistor on analog pin 0 and return degrees Celsius."""
        self._ensure_open()
        pin = self._board.analog[THERM_PIN]
        if THERM_PIN not in self._reporting:
            pin.enable_reporting()
            self._reporting.add(THERM_PIN)
        deadline = time.monotonic() + self.reply_timeout
        value = pin.value
        while value is None:
            if time.monotonic() >= deadline:
                raise ReplyTimeoutError("thermistor reading", self.reply_timeout)
            time.sleep(0.01)
            value = pin.value
        # pyfirmata2 keeps analog input in Pin.value, scaled to 0.0-1.0
        return codec.thermistor_celsius(float(value) * codec.ADC_MAX)

    # -------- internals --------
    def _ensure_open(self) -> None:
        if self._closed:
            raise DeviceClosedError(f"Circuit Playground on {self.info.port} is closed")

    def _send(self, command: Command, data: Iterable[int] = ()) -> None:
        self._ensure_open()
        payload = [int(command), *data]
        log.debug("tx %s %s", command.name, payload[1:])
        self._board.send_sysex(CP_COMMAND, payload)

    def _query(
        self,
        command: Command,
        data: Iterable[int] = (),
        match: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        reply = REPLY_FOR[command]
        q = self._replies[int(reply)]
        # stale stream replies must not answer this query
        while True:
            try:
                q.get_nowait()
            except Empty:
                break
        self._send(command, data)
        deadline = time.monotonic() + self.reply_timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                value = q.get(timeout=remaining)
            except Empty:
                break
            if match is None or match(value):
                return value
        raise ReplyTimeoutError(reply.name, self.reply_timeout)

    def _deliver(self, opcode: int, value: Any) -> None:
        q = self._replies[opcode]
        try:
            q.put_nowait(value)
        except Full:
            # drop oldest on overflow
            try:
                q.get_nowait()
            except Empty:
                pass
            q.put_nowait(value)

    def _on_sysex(self, *data: int) -> None:
        """Firmata handler for CP_COMMAND messages; runs on the reader thread."""
        if not data:
            return
        opcode, payload = data[0], list(data[1:])
        try:
            if opcode == Command.ACCEL_READ_REPLY:
                value: Any = codec.parse_accel(payload)
            elif opcode == Command.ACCEL_TAP_REPLY:
                value = codec.parse_tap(payload)
            elif opcode == Command.CAP_REPLY:
                value = codec.parse_cap(payload)
            elif opcode == Command.SENSECOLOR_REPLY:
                value = codec.parse_color(payload)
            elif opcode == Command.IMPL_VERS_REPLY:
                value = codec.parse_version(payload)
            else:
                log.debug("Ignoring unknown reply 0x%02X", opcode)
                return
        except ValueError as exc:
            log.warning("Malformed reply 0x%02X: %s", opcode, exc)
            return

        self._deliver(opcode, value)
        callback = self._callback_for(opcode, value)
        if callback is not None:
            try:
                callback(value)
            except Exception:
                log.exception("Callback for reply 0x%02X failed", opcode)

    def _callback_for(self, opcode: int, value: Any) -> Optional[Callable[[Any], None]]:
        with self._cb_lock:
            if opcode == Command.ACCEL_READ_REPLY:
                return self._accel_cb
            if opcode == Command.ACCEL_TAP_REPLY:
                return self._tap_cb
            if opcode == Command.CAP_REPLY:
                return self._cap_cbs.get(value.pin)
        return None
