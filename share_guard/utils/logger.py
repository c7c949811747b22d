"""Logging facade for share_guard modules.

Modules take a logger with ``get_logger(__name__)`` and log keyword fields;
entry points call ``configure`` once with the handlers they need.
"""

from __future__ import annotations

import logging
from typing import Any

from .logging_config import (
    StructuredLoggerAdapter,
    configure_logging,
    get_structured_logger,
    logging_context,
)

__all__ = ["configure", "get_logger", "logging_context"]


def configure(
    *, level: int = logging.INFO, handlers: list[logging.Handler] | None = None
) -> None:
    configure_logging(level=level, handlers=handlers)


def get_logger(name: str, **context: Any) -> StructuredLoggerAdapter:
    return get_structured_logger(name, **context)
