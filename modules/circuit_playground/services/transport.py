from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

import serial  # type: ignore
import serial.tools.list_ports  # type: ignore

from platforms.detect import serial_family

from ..constants import ADAFRUIT_USB_VID, BAUDRATE, BYTESIZE, PARITY, STOPBITS

log = logging.getLogger(__name__)

AUTO_PORTS = (None, "", "auto", "AUTO")


@dataclass(frozen=True)
class SerialSettings:
    baudrate: int = BAUDRATE
    bytesize: int = BYTESIZE
    parity: str = PARITY
    stopbits: float = STOPBITS
    xonxoff: bool = False
    rtscts: bool = False
    dsrdtr: bool = False
    timeout: Optional[float] = None  # read timeout seconds, None blocks

    @classmethod
    def from_config(cls, serial_cfg: Dict[str, Any]) -> "SerialSettings":
        """Build settings from the ``serial`` section of config.yml."""
        timeout = serial_cfg.get("timeout")
        return cls(timeout=float(timeout) if timeout is not None else None)


class SerialTransport:
    """Platform flavour of the serial line the Firmata session runs over.

    Exactly one variant is chosen per process (see ``select_transport``).
    Subclasses name their device patterns and default port and may add
    platform-specific line options in ``configure``.
    """

    kind = "generic"
    default_port = ""
    device_patterns: Tuple[str, ...] = ()

    def resolve_port(self, port: Optional[str]) -> str:
        if port not in AUTO_PORTS:
            return str(port)
        found = self.autodetect(serial.tools.list_ports.comports())
        if found:
            log.info("Autodetected Circuit Playground on %s", found)
            return found
        log.warning("No Circuit Playground found, falling back to %s", self.default_port)
        return self.default_port

    def autodetect(self, ports: Iterable[Any]) -> Optional[str]:
        ports = list(ports)
        # Adafruit USB vendor id first
        for p in ports:
            if getattr(p, "vid", None) == ADAFRUIT_USB_VID:
                return p.device
        for p in ports:
            desc = (getattr(p, "description", "") or "").lower()
            if "circuit playground" in desc or "circuitplayground" in desc:
                return p.device
        for p in ports:
            dev = p.device or ""
            if any(x in dev for x in self.device_patterns):
                return dev
        return None

    def configure(self, sp: Any, settings: SerialSettings) -> None:
        """Apply line parameters to an already open pyserial port."""
        sp.baudrate = settings.baudrate
        sp.bytesize = settings.bytesize
        sp.parity = settings.parity
        sp.stopbits = settings.stopbits
        sp.xonxoff = settings.xonxoff
        sp.rtscts = settings.rtscts
        sp.dsrdtr = settings.dsrdtr


class PosixTransport(SerialTransport):
    kind = "posix"
    default_port = "/dev/ttyACM0"
    device_patterns = ("ttyACM", "ttyUSB", "cu.usbmodem", "tty.usbmodem")

    def configure(self, sp: Any, settings: SerialSettings) -> None:
        super().configure(sp, settings)
        # flock the tty; a port held by another process fails here
        sp.exclusive = True


class WindowsTransport(SerialTransport):
    kind = "windows"
    default_port = "COM3"
    device_patterns = ("COM",)


_TRANSPORTS = {
    "posix": PosixTransport,
    "windows": WindowsTransport,
}


def select_transport(platform: Optional[str] = None) -> SerialTransport:
    family = serial_family(platform)
    transport = _TRANSPORTS[family]()
    log.debug("Serial transport selected: %s", transport.kind)
    return transport
