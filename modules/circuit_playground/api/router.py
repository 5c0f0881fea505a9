from __future__ import annotations
from dataclasses import asdict
from typing import Any, Callable, Dict

import serial  # type: ignore
from fastapi import APIRouter, Query

try:
    from ..errors import CircuitPlaygroundError
    from ..services.board import CircuitPlayground
except Exception:
    from modules.circuit_playground.errors import CircuitPlaygroundError  # type: ignore
    from modules.circuit_playground.services.board import CircuitPlayground  # type: ignore


def _call(fn: Callable[[], Any]) -> Dict[str, Any]:
    try:
        result = fn()
    except (CircuitPlaygroundError, ValueError, serial.SerialException, OSError) as e:
        return {"ok": False, "error": str(e)}
    if result is None:
        return {"ok": True}
    return {"ok": True, "value": result}


def get_router(device: CircuitPlayground) -> APIRouter:
    r = APIRouter(prefix="/cpx")

    @r.get("/healthz")
    def healthz():
        return {"ok": not device.closed, "port": device.port}

    @r.get("/info")
    def info():
        return {"ok": True, **device.info.as_dict()}

    # neopixels
    @r.post("/pixels/show")
    def show_pixels():
        return _call(device.show_pixels)

    @r.post("/pixels/clear")
    def clear_pixels(show: bool = True):
        def run() -> None:
            device.clear_pixels()
            if show:
                device.show_pixels()
        return _call(run)

    @r.post("/pixels/brightness")
    def brightness(value: int):
        return _call(lambda: device.set_pixel_brightness(value))

    @r.post("/pixels/{pixel}")
    def set_pixel(pixel: int, red: int = Query(0, alias="r"), g: int = 0, b: int = 0, show: bool = True):
        def run() -> None:
            device.set_pixel(pixel, red, g, b)
            if show:
                device.show_pixels()
        return _call(run)

    # speaker
    @r.post("/tone")
    def tone(frequency_hz: int, duration_ms: int = 0):
        return _call(lambda: device.tone(frequency_hz, duration_ms))

    @r.post("/no_tone")
    def no_tone():
        return _call(device.no_tone)

    # accelerometer
    @r.get("/accel")
    def accel():
        return _call(lambda: asdict(device.read_accel()))

    @r.post("/accel/range")
    def accel_range(value: int):
        return _call(lambda: device.set_accel_range(value))

    @r.get("/tap")
    def tap():
        return _call(lambda: asdict(device.read_tap()))

    @r.post("/tap/config")
    def tap_config(tap_type: int = 2, threshold: int = 80):
        return _call(lambda: device.set_tap_config(tap_type, threshold))

    # sensors
    @r.get("/cap/{pin}")
    def cap(pin: int):
        return _call(lambda: asdict(device.read_cap_touch(pin)))

    @r.get("/color")
    def color():
        return _call(lambda: asdict(device.read_color_sense()))

    @r.get("/temperature")
    def temperature():
        return _call(device.read_temperature)

    @r.get("/version")
    def version():
        return _call(lambda: list(device.read_implementation_version()))

    return r
