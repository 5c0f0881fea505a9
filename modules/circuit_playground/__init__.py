"""Circuit Playground Firmata driver.

Public API:
- CircuitPlayground.connect(port) -> CircuitPlayground
- Command / AccelRange opcode tables
"""
from __future__ import annotations

from .constants import CP_COMMAND, AccelRange, Command
from .errors import CircuitPlaygroundError, ConnectionFailedError, DeviceClosedError, ReplyTimeoutError
from .services.board import CircuitPlayground

__all__ = [
    "CP_COMMAND",
    "AccelRange",
    "Command",
    "CircuitPlayground",
    "CircuitPlaygroundError",
    "ConnectionFailedError",
    "DeviceClosedError",
    "ReplyTimeoutError",
]
