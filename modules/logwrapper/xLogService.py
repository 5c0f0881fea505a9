from __future__ import annotations

import logging
import logging.config
import os
import warnings
from typing import Any, Dict, List, Optional

from .config_loader import load_config
from .services.handlers import InMemoryLogHandler, build_formatter

_MEMORY_HANDLER: Optional[InMemoryLogHandler] = None


def _ensure_log_dir(path: str) -> None:
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory, exist_ok=True)


def _handler_specs(cfg: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    handlers: Dict[str, Dict[str, Any]] = {
        "in_memory": {
            "()": InMemoryLogHandler,
            "maxlen": int(cfg.get("buffer_size", 500)),
            "level": "DEBUG",
        }
    }
    if cfg.get("enable_console", True):
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": cfg.get("console_level", "INFO"),
            "stream": "ext://sys.stderr",
        }
    if cfg.get("enable_file", True):
        path = str(cfg.get("file_path", "logs/circuit_playground.log"))
        _ensure_log_dir(path)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "filename": path,
            "maxBytes": int(cfg.get("rotate_bytes", 1024 * 1024)),
            "backupCount": int(cfg.get("backup_count", 3)),
            "encoding": "utf-8",
        }
    return handlers


def init_logging(overrides: Optional[Dict[str, Any]] = None) -> None:
    """Configure the root logger once for the whole process.

    Existing module loggers are kept (disable_existing_loggers=False). The
    serial driver logs handshake details at INFO and every SysEx frame at
    DEBUG, so the file handler takes DEBUG while console follows config.
    """
    global _MEMORY_HANDLER

    if _MEMORY_HANDLER is not None and logging.getLogger().handlers:
        return

    cfg = load_config(overrides=overrides)
    handlers = _handler_specs(cfg)
    formatter = build_formatter(bool(cfg.get("json_format", False)))

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"()": lambda: formatter}},
            "handlers": {name: {**opts, "formatter": "default"} for name, opts in handlers.items()},
            "root": {"level": "DEBUG", "handlers": list(handlers)},
        }
    )

    if cfg.get("capture_warnings", True):
        logging.captureWarnings(True)
        warnings.simplefilter("default")

    for h in logging.getLogger().handlers:
        if isinstance(h, InMemoryLogHandler):
            _MEMORY_HANDLER = h
            break

    for name, level in (cfg.get("module_levels") or {}).items():
        logging.getLogger(name).setLevel(str(level).upper())


def get_memory_handler() -> Optional[InMemoryLogHandler]:
    return _MEMORY_HANDLER


def tail(n: int = 100) -> List[str]:
    handler = get_memory_handler()
    return handler.tail(n) if handler else []


def get_router():
    from .api.router import router

    return router


if __name__ == "__main__":
    init_logging()
    log = logging.getLogger("logwrapper.demo")
    log.info("logwrapper ready")
    log.debug("debug lines go to file and memory only")
