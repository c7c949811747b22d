"""Plain-text audit trail of created bans.

Kept apart from the structured service log so operators can grep a single
file for "who was banned, from where, until when".
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

AUDIT_LOGGER_NAME = "share_guard.audit.bans"

_audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
_audit_logger.propagate = False
_enabled = False


def configure_ban_audit(
    path: str | None,
    *,
    enabled: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Attach (or detach) the audit file handler."""
    global _enabled
    for handler in list(_audit_logger.handlers):
        _audit_logger.removeHandler(handler)
        handler.close()
    _enabled = bool(enabled and path)
    if not _enabled:
        return
    assert path is not None
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    _audit_logger.addHandler(handler)
    _audit_logger.setLevel(logging.INFO)


def record_ban(
    identity: str, addresses: list[str], reason: str, expires_at: datetime | None
) -> None:
    if not _enabled:
        return
    until = expires_at.strftime("%Y-%m-%d %H:%M:%S") if expires_at else "unlimited"
    _audit_logger.info(
        "BANNED identity=%s addresses=%d [%s] until=%s reason=%s",
        identity,
        len(addresses),
        ", ".join(addresses),
        until,
        reason,
    )
