from __future__ import annotations


class CircuitPlaygroundError(RuntimeError):
    """Base error for the Circuit Playground driver."""


class ConnectionFailedError(CircuitPlaygroundError):
    """Serial port could not be opened or the Firmata handshake failed."""

    def __init__(self, port: str, reason: str):
        super().__init__(f"Failed to connect to Circuit Playground on {port}: {reason}")
        self.port = port
        self.reason = reason


class DeviceClosedError(CircuitPlaygroundError):
    pass


class ReplyTimeoutError(CircuitPlaygroundError, TimeoutError):
    def __init__(self, what: str, timeout: float):
        super().__init__(f"No {what} from Circuit Playground within {timeout:.2f}s")
        self.what = what
        self.timeout = timeout
