from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class AppConfig:
    redis_url: str
    store_prefix: str
    api_tokens: str
    allowed_origin: str
    host: str
    port: int


def load_config(env: dict[str, str] | None = None) -> AppConfig:
    e: dict[str, Any] = dict(os.environ)
    if env:
        e.update(env)
    port_raw = (e.get("PORT") or "").strip()
    try:
        port = int(port_raw) if port_raw else 5000
    except ValueError:
        port = 5000
    if not 0 < port < 65536:
        port = 5000
    return AppConfig(
        redis_url=e.get("REDIS_URL") or "redis://localhost:6379/0",
        store_prefix=e.get("TASK_STORE_PREFIX") or "tasks",
        api_tokens=e.get("API_TOKENS", ""),
        allowed_origin=e.get("ALLOWED_ORIGIN") or "http://localhost:8000",
        host=e.get("HOST") or "0.0.0.0",
        port=port,
    )


__all__ = ["AppConfig", "load_config"]
