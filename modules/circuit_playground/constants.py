from __future__ import annotations
"""Circuit Playground Firmata command values and board constants.

All vendor commands travel as a Firmata SysEx message whose command byte is
``CP_COMMAND``; the first data byte is one of the ``Command`` opcodes below.
"""
from enum import IntEnum
from typing import FrozenSet

CP_COMMAND = 0x40  # SysEx byte identifying every Circuit Playground command


class Command(IntEnum):
    PIXEL_SET = 0x10  # pixel id, then RGB packed into 4 7-bit bytes
    PIXEL_SHOW = 0x11
    PIXEL_CLEAR = 0x12  # needs PIXEL_SHOW afterwards to be visible
    PIXEL_BRIGHTNESS = 0x13  # one byte, 0-100
    TONE = 0x20  # frequency (hz) and duration (ms), 2 7-bit bytes each
    NO_TONE = 0x21
    ACCEL_READ = 0x30
    ACCEL_TAP = 0x31
    ACCEL_READ_REPLY = 0x36  # x, y, z as float32 m/s^2
    ACCEL_TAP_REPLY = 0x37  # tap register byte
    ACCEL_TAP_STREAM_ON = 0x38
    ACCEL_TAP_STREAM_OFF = 0x39
    ACCEL_STREAM_ON = 0x3A
    ACCEL_STREAM_OFF = 0x3B
    ACCEL_RANGE = 0x3C  # one byte, see AccelRange
    ACCEL_TAP_CONFIG = 0x3D  # tap type and threshold, 2 7-bit bytes each
    CAP_READ = 0x40  # input pin byte
    CAP_ON = 0x41
    CAP_OFF = 0x42
    CAP_REPLY = 0x43  # pin byte, then int32
    SENSECOLOR = 0x50
    SENSECOLOR_REPLY = 0x51  # red, green, blue bytes
    IMPL_VERS = 0x60
    IMPL_VERS_REPLY = 0x61  # major, minor, bugfix


class AccelRange(IntEnum):
    G2 = 0
    G4 = 1
    G8 = 2
    G16 = 3


# Query opcode -> reply opcode
REPLY_FOR = {
    Command.ACCEL_READ: Command.ACCEL_READ_REPLY,
    Command.ACCEL_TAP: Command.ACCEL_TAP_REPLY,
    Command.CAP_READ: Command.CAP_REPLY,
    Command.SENSECOLOR: Command.SENSECOLOR_REPLY,
    Command.IMPL_VERS: Command.IMPL_VERS_REPLY,
}

# Thermistor wiring
THERM_PIN = 0  # analog input
THERM_SERIES_OHMS = 10000.0
THERM_NOMINAL_OHMS = 10000.0  # resistance at THERM_NOMINAL_C
THERM_NOMINAL_C = 25.0
THERM_BETA = 3950.0

CAP_THRESHOLD = 300  # raw reading above this is touched
CAP_INPUTS: FrozenSet[int] = frozenset({0, 1, 2, 3, 6, 9, 10, 12})

# LIS3DH click source bits
TAP_SINGLE_MASK = 0x10
TAP_DOUBLE_MASK = 0x20

NUM_PIXELS = 10
MAX_BRIGHTNESS = 100
MAX_14BIT = 0x3FFF  # largest value split across two 7-bit bytes
TAP_TYPES = (0, 1, 2)  # none | single | single + double

# Serial line
BAUDRATE = 57600
BYTESIZE = 8
PARITY = "N"
STOPBITS = 1

ADAFRUIT_USB_VID = 0x239A

# Core Firmata requests used during the handshake
REPORT_VERSION = 0xF9
REPORT_FIRMWARE = 0x79
