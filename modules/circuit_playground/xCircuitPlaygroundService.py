from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI

try:
    from .config_loader import load_config
    from .api import get_router
    from .services.board import BoardFactory, CircuitPlayground
    from .services.transport import SerialSettings
except Exception:  # when run as script
    from config_loader import load_config  # type: ignore
    from api import get_router  # type: ignore
    from services.board import BoardFactory, CircuitPlayground  # type: ignore
    from services.transport import SerialSettings  # type: ignore

from modules.logwrapper import get_router as get_log_router
from modules.logwrapper import init_logging as _init_global_logging

_init_global_logging()


def connect_from_config(cfg: Dict[str, Any], board_factory: Optional[BoardFactory] = None) -> CircuitPlayground:
    serial_cfg = cfg.get("serial", {}) or {}
    return CircuitPlayground.connect(
        port=serial_cfg.get("port", "auto"),
        reply_timeout=float(serial_cfg.get("reply_timeout", 1.0)),
        sampling_ms=int(serial_cfg.get("sampling_ms", 19)),
        settings=SerialSettings.from_config(serial_cfg),
        board_factory=board_factory,
    )


def create_app(
    config_path: str | None = None,
    device: Optional[CircuitPlayground] = None,
    board_factory: Optional[BoardFactory] = None,
) -> FastAPI:
    """Build the HTTP app. A device passed in stays owned by the caller."""
    owned = device is None
    if device is None:
        device = connect_from_config(load_config(config_path), board_factory=board_factory)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if owned:
            device.close()

    app = FastAPI(title="Circuit Playground Service", lifespan=lifespan)
    app.include_router(get_router(device))
    app.include_router(get_log_router())
    return app


if __name__ == "__main__":
    import uvicorn
    cfg = load_config()
    uvicorn.run(
        create_app(),
        host=str(cfg.get("server", {}).get("host", "0.0.0.0")),
        port=int(cfg.get("server", {}).get("port", 8095)),
    )
