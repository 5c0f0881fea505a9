from __future__ import annotations
"""
Circuit Playground service launcher
- central logging
- connects the board, builds the FastAPI app
- serves it with uvicorn
"""
import os
import sys

import uvicorn  # type: ignore

# Make `modules` and `platforms` importable when run as a script
ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def main() -> None:
    from modules.logwrapper import init_logging  # type: ignore
    init_logging()

    from platforms.detect import detect_platform  # type: ignore
    from modules.circuit_playground.config_loader import load_config  # type: ignore
    from modules.circuit_playground.errors import ConnectionFailedError  # type: ignore
    from modules.circuit_playground.xCircuitPlaygroundService import create_app  # type: ignore

    import logging
    log = logging.getLogger("run_playground")
    log.info("Platform: %s", detect_platform())

    cfg = load_config()
    try:
        app = create_app()
    except ConnectionFailedError as exc:
        log.error("%s", exc)
        raise SystemExit(2)

    uvicorn.run(app, host=str(cfg["server"]["host"]), port=int(cfg["server"]["port"]))


if __name__ == "__main__":
    main()
