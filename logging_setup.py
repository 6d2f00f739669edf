"""
Shared logging for the whole service (Invoice Assistant API).

Features
- Context vars: service, request_id, conversation_id on every record
- Styles:
    LOG_STYLE=json   -> newline-delimited JSON (default)
    LOG_STYLE=human  -> compact human-readable lines
    LOG_STYLE=both   -> emit both handlers
- Tuning:
    LOG_LEVEL=INFO|DEBUG|...
    SERVICE_NAME=invoice-assistant (default)
- Helpers:
    human_kv(dict) to format short key=val lists (with safe truncation)
"""

from __future__ import annotations

import os
import logging
import contextvars
from typing import Any, Mapping, Iterable

from pythonjsonlogger.json import JsonFormatter

# ----------------------------
# Context (settable from any module)
# ----------------------------
request_id_var = contextvars.ContextVar("request_id", default=None)
conversation_id_var = contextvars.ContextVar("conversation_id", default=None)


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def set_conversation_id(cid: str | None) -> None:
    conversation_id_var.set(cid)


# ----------------------------
# Pretty key/value helper
# ----------------------------
def _short(s: Any, limit: int = 140) -> str:
    """Safely stringify & truncate for single-line logs."""
    if s is None:
        return "-"
    try:
        t = str(s)
    except Exception:
        t = repr(s)
    t = t.replace("\n", " ").replace("\r", " ").strip()
    return t if len(t) <= limit else (t[:limit] + "…")


def human_kv(items: Mapping[str, Any] | Iterable[tuple[str, Any]], sep: str = " ") -> str:
    """Render mapping/iterable as 'k=v' tokens with truncation."""
    pairs = items.items() if isinstance(items, Mapping) else items
    return sep.join(f"{k}={_short(v)}" for k, v in pairs)


# ----------------------------
# Filters & Formatters
# ----------------------------
class _CtxFilter(logging.Filter):
    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.service = self.service
        record.request_id = request_id_var.get()
        record.conversation_id = conversation_id_var.get()
        return True


class _HumanFormatter(logging.Formatter):
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        # 2026-01-12 10:36:28.047 INFO invoice-assistant assistant.intent: intent_model_ok | ...
        prefix = f"{self.formatTime(record)} {record.levelname} {getattr(record, 'service', '-')}" \
                 f" {record.name}:"
        msg = str(record.getMessage())

        extras = []
        for key in ("request_id", "conversation_id"):
            val = getattr(record, key, None)
            if val:
                extras.append((key, val))
        # Modules pass structured fields as extra={"kv": {...}}
        kv = getattr(record, "kv", None)
        if isinstance(kv, Mapping) and kv:
            extras.extend(kv.items())

        line = f"{prefix} {msg}"
        if extras:
            line += " | " + human_kv(extras)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ----------------------------
# Init
# ----------------------------
def init_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    service = os.getenv("SERVICE_NAME", "invoice-assistant")
    style = os.getenv("LOG_STYLE", "json").lower()  # json | human | both

    root = logging.getLogger()
    # Avoid duplicate handlers on reloads
    if getattr(root, "_initialized_by_app", False):
        return

    root.handlers.clear()
    root.setLevel(level)

    ctx_filter = _CtxFilter(service)

    if style in ("human", "both"):
        h = logging.StreamHandler()
        h.setFormatter(_HumanFormatter())
        h.addFilter(ctx_filter)
        root.addHandler(h)

    if style in ("json", "both") or not root.handlers:
        j = logging.StreamHandler()
        fmt = JsonFormatter(
            "%(asctime)s %(levelname)s %(service)s %(name)s %(message)s %(request_id)s %(conversation_id)s"
        )
        j.setFormatter(fmt)
        j.addFilter(ctx_filter)
        root.addHandler(j)

    # uvicorn's loggers go through the same handlers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True

    root._initialized_by_app = True  # type: ignore[attr-defined]
