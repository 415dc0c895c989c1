from __future__ import annotations

import contextvars
import datetime as dt
import json
import logging
import os
import sys
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from typing import Any

SENSITIVE_KEYS = {"authorization", "api_tokens", "token", "password", "secret", "cookie"}


def _iso_now() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def _redact(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.lower() in SENSITIVE_KEYS:
                redacted[k] = "[REDACTED]"
            else:
                redacted[k] = _redact(v)
        return redacted
    if isinstance(obj, list | tuple):
        return [_redact(v) for v in obj]
    return obj


def _build_base_payload(record: logging.LogRecord) -> dict[str, Any]:
    service = getattr(record, "service", None) or os.getenv("SERVICE_NAME")
    return {
        "ts": _iso_now(),
        "level": record.levelname.lower(),
        "service": service,
        "logger": record.name,
        "msg": record.getMessage(),
    }


def _add_standard_extras(payload: dict[str, Any], record: logging.LogRecord) -> None:
    # Callers pass 'attributes' explicitly for free-form data
    for attr in (
        "event",
        "op",
        "task_id",
        "owner",
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "attributes",
    ):
        if hasattr(record, attr):
            payload[attr] = getattr(record, attr)


def _enrich_with_context(payload: dict[str, Any]) -> None:
    ctx = get_request_context() or {}
    for key in ("request_id", "owner"):
        value = ctx.get(key)
        if key not in payload and value is not None:
            payload[key] = value


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload = _build_base_payload(record)
        _add_standard_extras(payload, record)
        _enrich_with_context(payload)
        attributes = payload.get("attributes")
        if isinstance(attributes, dict):
            payload["attributes"] = _redact(attributes)
        # Keep the JSON single-line even with a traceback attached
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["err_type"] = getattr(exc_type, "__name__", str(exc_type))
            if exc_value is not None:
                payload["err"] = str(exc_value)
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleLogFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(message)s")

    @staticmethod
    def _shorten(value: str | None, *, n: int = 8) -> str:
        if not value:
            return "-"
        return value[:n]

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        ts = _iso_now()[11:19]  # HH:MM:SS
        ctx = get_request_context() or {}
        event = getattr(record, "event", None)
        request_id = getattr(record, "request_id", None) or ctx.get("request_id")
        owner = getattr(record, "owner", None) or ctx.get("owner")
        task_id = getattr(record, "task_id", None)

        parts: list[str] = [ts, record.levelname.upper(), record.name]
        if event:
            parts.append(str(event))
        if request_id:
            parts.append(f"req={self._shorten(str(request_id))}")
        if owner:
            parts.append(f"owner={owner}")
        if task_id:
            parts.append(f"task={self._shorten(str(task_id))}")
        parts.append("-")
        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _choose_formatter() -> logging.Formatter:
    format_pref = (os.getenv("LOG_FORMAT") or "").strip().lower() or "auto"
    if format_pref == "auto":
        try:
            if sys.stdout.isatty():
                return ConsoleLogFormatter()
        except Exception:
            pass
        return JsonLogFormatter()
    if format_pref == "console":
        return ConsoleLogFormatter()
    return JsonLogFormatter()


def _parse_level(value: str | None, default: int = logging.INFO) -> int:
    name = (value or "").strip().upper()
    if not name:
        return default
    level = getattr(logging, name, None)
    return level if isinstance(level, int) else default


def _level_for_logger(logger_name: str) -> int:
    """Resolve a logger level from LOG_LEVEL and LOG_MODULE_LEVELS.

    LOG_MODULE_LEVELS is a comma separated list of `prefix=LEVEL` entries,
    e.g. `taskapi.tasks=DEBUG,uvicorn.access=WARNING`.
    """
    base_level = _parse_level(os.getenv("LOG_LEVEL"), logging.INFO)
    overrides = (os.getenv("LOG_MODULE_LEVELS") or "").strip()
    if not overrides:
        return base_level
    for entry in overrides.split(","):
        entry = entry.strip()
        if not entry or "=" not in entry:
            continue
        prefix, lvl = entry.split("=", 1)
        prefix = prefix.strip()
        if not prefix:
            continue
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            return _parse_level(lvl, base_level)
    return base_level


def get_json_logger(name: str = "taskapi") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(_choose_formatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_logger(name))
        logger.propagate = False
    return logger


def configure_uvicorn_logging() -> None:
    """Bind uvicorn loggers to our formatter and levels.

    Existing handlers on "uvicorn", "uvicorn.error" and "uvicorn.access" are
    replaced by a single stdout handler.
    """
    try:
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            lg = logging.getLogger(name)
            for h in list(lg.handlers):
                lg.removeHandler(h)
                h.close()
            handler = logging.StreamHandler(stream=sys.stdout)
            handler.setFormatter(_choose_formatter())
            lg.addHandler(handler)
            lg.setLevel(_level_for_logger(name))
            lg.propagate = False
    except Exception:
        # Best-effort; never break app startup over logging
        pass


class Metrics:
    def __init__(self) -> None:
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}

    def increment(
        self,
        name: str,
        labels: Mapping[str, str] | None = None,
        amount: int = 1,
    ) -> None:
        label_items: tuple[tuple[str, str], ...] = tuple(sorted((labels or {}).items()))
        key = (name, label_items)
        self._counters[key] = self._counters.get(key, 0) + amount

    def value(self, name: str, labels: Mapping[str, str] | None = None) -> int:
        label_items = tuple(sorted((labels or {}).items()))
        return self._counters.get((name, label_items), 0)

    def snapshot(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for (name, label_items), value in sorted(self._counters.items()):
            out.append({"name": name, "labels": dict(label_items), "value": value})
        return out


# ----------------------------
# Request context helpers
# ----------------------------

_request_context_var: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "taskapi_request_context", default=None
)


def get_request_context() -> dict[str, Any] | None:
    return _request_context_var.get()


def bind_owner(owner: str) -> None:
    """Attach the resolved caller to the current request context, if any."""
    ctx = _request_context_var.get()
    if ctx is not None:
        ctx["owner"] = owner


@contextmanager
def use_request_context(request_id: str, owner: str | None = None) -> Generator[None, None, None]:
    token = _request_context_var.set({"request_id": request_id, "owner": owner})
    try:
        yield None
    finally:
        _request_context_var.reset(token)


# ----------------------------
# Metrics singleton
# ----------------------------

_metrics_singleton: Metrics | None = None


def get_metrics() -> Metrics:
    global _metrics_singleton
    if _metrics_singleton is None:
        _metrics_singleton = Metrics()
    return _metrics_singleton


def reset_metrics() -> None:
    global _metrics_singleton
    _metrics_singleton = Metrics()


__all__ = [
    "ConsoleLogFormatter",
    "JsonLogFormatter",
    "Metrics",
    "bind_owner",
    "configure_uvicorn_logging",
    "get_json_logger",
    "get_metrics",
    "get_request_context",
    "reset_metrics",
    "use_request_context",
]
