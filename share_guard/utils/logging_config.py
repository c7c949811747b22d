"""Structured logging configuration helpers."""

from __future__ import annotations

import json
import logging
import os
import socket
import traceback
from collections.abc import Iterable, MutableMapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any

__all__ = [
    "configure_logging",
    "get_structured_logger",
    "logging_context",
    "StructuredJSONFormatter",
    "StructuredLoggerAdapter",
]

# LogRecord attributes that never end up as payload fields
_RESERVED_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "context",
        "taskName",
    }
)

_context: ContextVar[dict[str, Any]] = ContextVar(
    "share_guard_logging_context", default={}
)
_logging_configured = False


@lru_cache(maxsize=1)
def _get_host() -> str:
    host = os.getenv("HOSTNAME")
    if host:
        return host
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


class StructuredJSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line.

    Keyword fields passed through :class:`StructuredLoggerAdapter` (``event``,
    ``identity``, ``address`` ...) and any bound context (``cycle_id``) are
    merged into the top level of the payload.
    """

    def __init__(self, *, utc: bool = True, service: str = "share_guard") -> None:
        super().__init__()
        self.utc = utc
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(
                record.created, UTC if self.utc else None
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": getattr(record, "service", None) or self.service,
            "host": _get_host(),
        }

        context = getattr(record, "context", None) or _context.get()
        for key, value in dict(context or {}).items():
            payload.setdefault(key, value)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if payload.get(key) not in (None, ""):
                continue
            payload[key] = value

        if record.exc_info:
            payload["error"] = {
                "type": getattr(record.exc_info[0], "__name__", ""),
                "message": str(record.exc_info[1]),
                "stack": "".join(traceback.format_exception(*record.exc_info)).strip(),
            }
        elif record.exc_text:
            payload["error"] = {"message": record.exc_text}

        return json.dumps(payload, default=repr, ensure_ascii=False)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter accepting arbitrary keyword fields.

    ``logger.info("banned", event="ledger.ban", identity=email)`` moves the
    keyword fields into ``extra`` so the formatter can emit them.
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = kwargs.setdefault("extra", {})
        for key in list(kwargs.keys()):
            if key in {"exc_info", "stack_info", "stacklevel", "extra"}:
                continue
            extra.setdefault(key, kwargs.pop(key))

        bound = _context.get()
        if bound or self.extra:
            extra.setdefault("context", {**dict(bound), **dict(self.extra or {})})
        return msg, kwargs


def configure_logging(
    level: int = logging.INFO,
    *,
    stream: Any | None = None,
    handlers: Iterable[logging.Handler] | None = None,
    formatter: logging.Formatter | None = None,
    reset: bool = True,
) -> None:
    """Configure root logging with structured JSON output."""

    global _logging_configured

    formatter = formatter or StructuredJSONFormatter()
    resolved = list(handlers) if handlers else [logging.StreamHandler(stream)]

    root = logging.getLogger()
    if reset:
        for existing in list(root.handlers):
            root.removeHandler(existing)

    for handler in resolved:
        if handler.level == logging.NOTSET:
            handler.setLevel(level)
        if handler.formatter is None:
            handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)
    _logging_configured = True


def get_structured_logger(name: str, **context: Any) -> StructuredLoggerAdapter:
    """Return a structured adapter, setting up console logging on first use."""
    if not _logging_configured:
        configure_logging()
    static = {k: v for k, v in context.items() if v is not None}
    return StructuredLoggerAdapter(logging.getLogger(name), static)


@contextmanager
def logging_context(**fields: Any):
    """Attach ``fields`` to every record logged inside the block."""
    bound = {**_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _context.set(bound)
    try:
        yield
    finally:
        _context.reset(token)
