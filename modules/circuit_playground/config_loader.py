from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Dict

import yaml

_DEFAULT_CFG_PATH = Path(__file__).parent / "config" / "config.yml"


def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _deep_update(base[k], v)
        else:
            base[k] = v
    return base


def load_config(path: str | os.PathLike | None = None) -> Dict[str, Any]:
    """Load YAML config for the circuit_playground module.

    Priority:
    1. provided path
    2. CPX_CONFIG env var
    3. default config.yml in module

    Env vars CPX_PORT, CPX_REPLY_TIMEOUT, CPX_HOST and CPX_HTTP_PORT win over
    file values.
    """
    cfg_path = Path(path) if path else Path(os.getenv("CPX_CONFIG", _DEFAULT_CFG_PATH))
    if not cfg_path.exists():
        cfg_path = _DEFAULT_CFG_PATH
    with open(cfg_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    env: Dict[str, Any] = {}
    port = os.getenv("CPX_PORT")
    if port:
        env.setdefault("serial", {})["port"] = port
    reply_timeout = os.getenv("CPX_REPLY_TIMEOUT")
    if reply_timeout:
        env.setdefault("serial", {})["reply_timeout"] = float(reply_timeout)
    host = os.getenv("CPX_HOST")
    if host:
        env.setdefault("server", {})["host"] = host
    http_port = os.getenv("CPX_HTTP_PORT")
    if http_port:
        env.setdefault("server", {})["port"] = int(http_port)
    return _deep_update(data, env)
