from __future__ import annotations
"""Payload packing and reply parsing for Circuit Playground SysEx messages.

Firmata data bytes carry 7 bits each. The board sends every 8-bit byte of a
reply as two data bytes (low 7 bits, then the high bit), so a float32 or an
int32 occupies eight data bytes on the wire.
"""
import math
import struct
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..constants import (
    CAP_THRESHOLD,
    MAX_14BIT,
    TAP_DOUBLE_MASK,
    TAP_SINGLE_MASK,
    THERM_BETA,
    THERM_NOMINAL_C,
    THERM_NOMINAL_OHMS,
    THERM_SERIES_OHMS,
)

ADC_MAX = 1023
KELVIN = 273.15


@dataclass(frozen=True)
class AccelReading:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class TapReading:
    single: bool
    double: bool
    raw: int


@dataclass(frozen=True)
class CapReading:
    pin: int
    touched: bool
    value: int


@dataclass(frozen=True)
class Color:
    red: int
    green: int
    blue: int


# -------- outgoing --------
def to_two_bytes(value: int) -> List[int]:
    """Split a 14-bit value into LSB-first 7-bit bytes."""
    if not 0 <= value <= MAX_14BIT:
        raise ValueError(f"value {value} does not fit in 14 bits")
    return [value & 0x7F, (value >> 7) & 0x7F]


def pack_rgb(red: int, green: int, blue: int) -> List[int]:
    """Pack a 24-bit color into the upper bits of four 7-bit bytes."""
    for name, v in (("red", red), ("green", green), ("blue", blue)):
        if not 0 <= v <= 255:
            raise ValueError(f"{name} must be 0-255, got {v}")
    return [
        (red >> 1) & 0x7F,
        ((red & 0x01) << 6) | ((green >> 2) & 0x3F),
        ((green & 0x03) << 5) | ((blue >> 3) & 0x1F),
        (blue & 0x07) << 4,
    ]


# -------- incoming --------
def _check_len(data: Sequence[int], n: int, what: str) -> None:
    if len(data) < n:
        raise ValueError(f"{what} needs {n} data bytes, got {len(data)}")


def parse_uint8(data: Sequence[int]) -> int:
    _check_len(data, 2, "uint8")
    return (data[0] & 0x7F) | ((data[1] & 0x01) << 7)


def unpack_bytes(data: Sequence[int], count: int) -> bytes:
    """Rebuild ``count`` 8-bit bytes from ``2 * count`` 7-bit data bytes."""
    _check_len(data, 2 * count, f"{count} bytes")
    return bytes(parse_uint8(data[i:i + 2]) for i in range(0, 2 * count, 2))


def parse_float(data: Sequence[int]) -> float:
    return struct.unpack("<f", unpack_bytes(data, 4))[0]


def parse_int32(data: Sequence[int]) -> int:
    return struct.unpack("<i", unpack_bytes(data, 4))[0]


def parse_accel(payload: Sequence[int]) -> AccelReading:
    _check_len(payload, 24, "accelerometer reply")
    return AccelReading(
        x=parse_float(payload[0:8]),
        y=parse_float(payload[8:16]),
        z=parse_float(payload[16:24]),
    )


def parse_tap(payload: Sequence[int]) -> TapReading:
    raw = parse_uint8(payload)
    return TapReading(single=bool(raw & TAP_SINGLE_MASK), double=bool(raw & TAP_DOUBLE_MASK), raw=raw)


def parse_cap(payload: Sequence[int]) -> CapReading:
    """Pin number byte, then the int32 count from the touch input."""
    _check_len(payload, 10, "cap touch reply")
    pin = parse_uint8(payload[0:2])
    value = parse_int32(payload[2:10])
    return CapReading(pin=pin, touched=value > CAP_THRESHOLD, value=value)


def parse_color(payload: Sequence[int]) -> Color:
    red, green, blue = unpack_bytes(payload, 3)
    return Color(red=red, green=green, blue=blue)


def parse_version(payload: Sequence[int]) -> Tuple[int, int, int]:
    major, minor, bugfix = unpack_bytes(payload, 3)
    return (major, minor, bugfix)


# -------- thermistor --------
def thermistor_celsius(raw: float, adc_max: int = ADC_MAX) -> float:
    """Convert a raw ADC reading of the thermistor divider to Celsius.

    Uses the simplified Steinhart-Hart (beta) equation.
    """
    if not 0 < raw < adc_max:
        raise ValueError(f"thermistor reading {raw} out of range (0, {adc_max})")
    resistance = THERM_SERIES_OHMS / (adc_max / raw - 1.0)
    steinhart = math.log(resistance / THERM_NOMINAL_OHMS) / THERM_BETA
    steinhart += 1.0 / (THERM_NOMINAL_C + KELVIN)
    return 1.0 / steinhart - KELVIN
