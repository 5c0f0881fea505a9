from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel

from ..xLogService import tail

router = APIRouter(prefix="/logs", tags=["logs"])


class LevelChange(BaseModel):
    logger: str
    level: str


@router.get("/")
def list_logs(n: int = 200) -> Dict[str, Any]:
    items = tail(n)
    return {"count": len(items), "items": items}


@router.post("/level")
def set_level(payload: LevelChange) -> Dict[str, Any]:
    level = logging.getLevelName(payload.level.upper())
    if not isinstance(level, int):
        return {"ok": False, "error": f"unknown level {payload.level}"}
    logging.getLogger(payload.logger).setLevel(level)
    return {"ok": True}
