from __future__ import annotations
"""Command line access to a Circuit Playground running Firmata."""

import argparse
import logging
import sys
import time
from dataclasses import asdict
from typing import Callable, List, Optional

from modules.circuit_playground.config_loader import load_config
from modules.circuit_playground.errors import CircuitPlaygroundError
from modules.circuit_playground.services.board import BoardFactory, CircuitPlayground
from modules.circuit_playground.services.transport import SerialSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Talk to a Circuit Playground over Firmata")
    parser.add_argument("--port", help="Serial port (default: config value or auto)")
    parser.add_argument("--config", help="Path to circuit_playground config.yml")
    parser.add_argument("--timeout", type=float, help="Reply timeout seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Show firmware and protocol versions")

    pixel = sub.add_parser("pixel", help="Set one NeoPixel and show it")
    pixel.add_argument("index", type=int)
    pixel.add_argument("rgb", nargs=3, type=int, metavar=("R", "G", "B"))

    sub.add_parser("clear", help="Turn all NeoPixels off")

    bright = sub.add_parser("brightness", help="Set NeoPixel brightness 0-100")
    bright.add_argument("value", type=int)

    tone = sub.add_parser("tone", help="Play a tone on the speaker")
    tone.add_argument("frequency", type=int, help="Hz")
    tone.add_argument("duration", type=int, nargs="?", default=500, help="ms")

    sub.add_parser("accel", help="Read the accelerometer (m/s^2)")
    sub.add_parser("tap", help="Read the tap detector")

    cap = sub.add_parser("cap", help="Read a capacitive touch input")
    cap.add_argument("pin", type=int)

    sub.add_parser("color", help="Sense the color in front of the light sensor")
    sub.add_parser("temp", help="Read the thermistor (Celsius)")
    return parser


def _run(device: CircuitPlayground, args: argparse.Namespace, out: Callable[[str], None]) -> None:
    cmd = args.command
    if cmd == "info":
        info = device.info.as_dict()
        info["implementation_version"] = list(device.read_implementation_version())
        for k, v in info.items():
            out(f"{k}: {v}")
    elif cmd == "pixel":
        device.set_pixel(args.index, *args.rgb)
        device.show_pixels()
    elif cmd == "clear":
        device.clear_pixels()
        device.show_pixels()
    elif cmd == "brightness":
        device.set_pixel_brightness(args.value)
    elif cmd == "tone":
        device.tone(args.frequency, args.duration)
        # let the board finish before the port closes
        time.sleep(args.duration / 1000.0)
    elif cmd == "accel":
        out(str(asdict(device.read_accel())))
    elif cmd == "tap":
        out(str(asdict(device.read_tap())))
    elif cmd == "cap":
        out(str(asdict(device.read_cap_touch(args.pin))))
    elif cmd == "color":
        out(str(asdict(device.read_color_sense())))
    elif cmd == "temp":
        out(f"{device.read_temperature():.2f}")


def main(argv: Optional[List[str]] = None, board_factory: Optional[BoardFactory] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config)
    serial_cfg = cfg.get("serial", {}) or {}
    port = args.port or serial_cfg.get("port", "auto")
    timeout = args.timeout if args.timeout is not None else float(serial_cfg.get("reply_timeout", 1.0))

    try:
        device = CircuitPlayground.connect(
            port=port,
            reply_timeout=timeout,
            sampling_ms=int(serial_cfg.get("sampling_ms", 19)),
            settings=SerialSettings.from_config(serial_cfg),
            board_factory=board_factory,
        )
    except CircuitPlaygroundError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    with device:
        try:
            _run(device, args, print)
        except (CircuitPlaygroundError, ValueError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    try:
        from modules.logwrapper import init_logging  # type: ignore
        init_logging({"enable_file": False})
    except Exception:
        logging.basicConfig(level=logging.INFO)
    raise SystemExit(main())
