"""
logwrapper: central logging setup.

- init_logging(overrides: dict | None) -> None
- get_memory_handler() -> InMemoryLogHandler | None
- tail(n) -> list[str]
- get_router() -> fastapi.APIRouter
"""
from .xLogService import get_memory_handler, get_router, init_logging, tail

__all__ = [
    "init_logging",
    "get_memory_handler",
    "get_router",
    "tail",
]
