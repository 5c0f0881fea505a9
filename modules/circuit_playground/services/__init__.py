from .board import BoardInfo, CircuitPlayground
from .codec import AccelReading, CapReading, Color, TapReading
from .transport import PosixTransport, SerialSettings, SerialTransport, WindowsTransport, select_transport

__all__ = [
    "AccelReading",
    "BoardInfo",
    "CapReading",
    "CircuitPlayground",
    "Color",
    "PosixTransport",
    "SerialSettings",
    "SerialTransport",
    "TapReading",
    "WindowsTransport",
    "select_transport",
]
