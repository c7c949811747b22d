"""JSON-file backed ledger of banned identities.

The in-memory map is authoritative between writes. Every mutation rewrites
the whole file (temp file + ``os.replace``) while the write lock is still
held. A failed write is logged and reported but never rolls back the
in-memory change.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from share_guard.exceptions import LedgerError, LedgerPersistenceError
from share_guard.utils import ban_audit
from share_guard.utils.logger import get_logger
from share_guard.utils.metrics import (
    active_bans,
    bans_created_total,
    ledger_persist_failures_total,
)
from share_guard.utils.rwlock import ReadWriteLock

from .models import BanRecord

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BanLedger:
    """Authoritative record of who is banned, why and until when."""

    def __init__(
        self,
        path: Path | str,
        ban_duration_minutes: float,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.path = Path(path)
        self.ban_duration_minutes = ban_duration_minutes
        self._clock = clock or _utcnow
        self._lock = ReadWriteLock()
        self._bans: dict[str, BanRecord] = {}
        # Expired since the last drain, whichever path noticed it
        self._lapsed: set[str] = set()
        self._ensure_backing_store()
        self._load()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    def _ensure_backing_store(self) -> None:
        parent = self.path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LedgerError(
                f"Cannot create ledger directory {parent}: {exc}",
                {"path": str(self.path)},
            ) from exc
        if not os.access(parent, os.W_OK):
            raise LedgerError(
                f"Ledger directory {parent} is not writable", {"path": str(self.path)}
            )
        if self.path.exists() and not os.access(self.path, os.W_OK):
            raise LedgerError(
                f"Ledger file {self.path} is not writable", {"path": str(self.path)}
            )

    def _load(self) -> None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(
                "No ban ledger yet, starting empty",
                event="share_guard.ledger.load.missing",
                path=str(self.path),
            )
            return
        except OSError as exc:
            logger.warning(
                "Ban ledger unreadable, starting empty",
                event="share_guard.ledger.load.unreadable",
                path=str(self.path),
                error=str(exc),
            )
            return

        if not raw.strip():
            return
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("ledger root must be an object")
        except ValueError as exc:
            logger.warning(
                "Ban ledger is malformed, starting empty",
                event="share_guard.ledger.load.malformed",
                path=str(self.path),
                error=str(exc),
            )
            return

        for identity, entry in payload.items():
            try:
                record = BanRecord.from_dict(identity, entry)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning(
                    "Skipping malformed ban record",
                    event="share_guard.ledger.load.bad_record",
                    identity=identity,
                    error=str(exc),
                )
                continue
            self._bans[record.identity] = record
        active_bans.set(len(self._bans))
        logger.info(
            "Ban ledger loaded",
            event="share_guard.ledger.load.ok",
            path=str(self.path),
            records=len(self._bans),
        )

    def _persist(self) -> None:
        """Rewrite the ledger file. Caller holds the write lock."""
        active_bans.set(len(self._bans))
        data = {identity: rec.to_dict() for identity, rec in self._bans.items()}
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True, ensure_ascii=False)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            ledger_persist_failures_total.inc()
            logger.error(
                "Failed to write ban ledger; in-memory state kept",
                event="share_guard.ledger.persist.error",
                path=str(self.path),
                error=str(exc),
            )
            raise LedgerPersistenceError(
                f"Failed to write ban ledger {self.path}: {exc}",
                {"path": str(self.path)},
            ) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def _persist_quietly(self) -> None:
        # Used by expiry paths where the caller has nothing to report back
        try:
            self._persist()
        except LedgerPersistenceError:
            pass

    def _evict_if_expired(self, identity: str, now: datetime, action: str) -> bool:
        """Drop ``identity`` if its ban has lapsed. Caller holds the write lock.

        Returns True when a record was removed. This is the single place that
        decides expiry, shared by reads and the periodic sweep. The
        identity is remembered until the next :meth:`drain_lapsed`.
        """
        record = self._bans.get(identity)
        if record is None or not record.is_expired(now):
            return False
        del self._bans[identity]
        self._lapsed.add(identity)
        logger.info(
            "Ban expired, identity unbanned",
            event="share_guard.ledger.expired",
            action=action,
            identity=identity,
            address_count=len(record.addresses),
            addresses=list(record.addresses),
            expired_at=record.expires_at.isoformat() if record.expires_at else None,
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_ban_info(self, identity: str) -> BanRecord | None:
        """Return the active record, lazily removing it if it has expired."""
        now = self._clock()
        with self._lock.read():
            record = self._bans.get(identity)
            if record is None:
                return None
            if not record.is_expired(now):
                return record
        with self._lock.write():
            if self._evict_if_expired(identity, now, "auto_unbanned_on_query"):
                self._persist_quietly()
            return self._bans.get(identity)

    def is_banned(self, identity: str) -> bool:
        return self.get_ban_info(identity) is not None

    def identities(self) -> set[str]:
        """Identities holding a record right now, expired or not."""
        with self._lock.read():
            return set(self._bans)

    def drain_lapsed(self) -> set[str]:
        """Return and forget identities whose ban expired since the last call."""
        with self._lock.write():
            lapsed, self._lapsed = self._lapsed, set()
        return lapsed

    def active_bans(self) -> dict[str, BanRecord]:
        self.cleanup_expired()
        with self._lock.read():
            return dict(self._bans)

    def stats(self) -> dict[str, Any]:
        self.cleanup_expired()
        now = self._clock()
        soon = now + timedelta(hours=1)
        with self._lock.read():
            total = len(self._bans)
            expiring = sum(
                1
                for rec in self._bans.values()
                if rec.expires_at is not None and rec.expires_at < soon
            )
        return {
            "total": total,
            "expiring_within_hour": expiring,
            "ban_duration_minutes": self.ban_duration_minutes,
            "unlimited": self.ban_duration_minutes <= 0,
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def ban(
        self, identity: str, reason: str, addresses: list[str] | tuple[str, ...]
    ) -> BanRecord:
        """Create a ban, replacing any existing record for ``identity``.

        Callers check :meth:`is_banned` first so an active ban's timer is not
        reset. Raises LedgerPersistenceError when the file write fails; the
        ban is in effect regardless.
        """
        now = self._clock()
        expires_at = (
            now + timedelta(minutes=self.ban_duration_minutes)
            if self.ban_duration_minutes > 0
            else None
        )
        record = BanRecord(
            identity=identity,
            banned_at=now,
            expires_at=expires_at,
            reason=reason,
            addresses=tuple(addresses),
        )
        with self._lock.write():
            replaced = identity in self._bans
            self._lapsed.discard(identity)
            self._bans[identity] = record
            try:
                self._persist()
            finally:
                bans_created_total.inc()
                logger.info(
                    "Identity banned",
                    event="share_guard.ledger.banned",
                    action="banned",
                    identity=identity,
                    address_count=len(record.addresses),
                    addresses=list(record.addresses),
                    reason=reason,
                    expires_at=expires_at.isoformat() if expires_at else "unlimited",
                    replaced=replaced,
                )
                ban_audit.record_ban(identity, list(record.addresses), reason, expires_at)
        return record

    def unban(self, identity: str) -> bool:
        """Remove the ban. Returns False (not an error) if there was none."""
        with self._lock.write():
            record = self._bans.pop(identity, None)
            if record is None:
                logger.warning(
                    "Unban requested for identity without a ban",
                    event="share_guard.ledger.unban.absent",
                    action="unban_absent",
                    identity=identity,
                )
                return False
            logger.info(
                "Identity unbanned",
                event="share_guard.ledger.unbanned",
                action="unbanned",
                identity=identity,
                address_count=len(record.addresses),
                banned_at=record.banned_at.isoformat(),
                reason=record.reason,
            )
            self._persist()
            return True

    def cleanup_expired(self) -> int:
        """Remove every lapsed ban; write the file once if anything changed."""
        now = self._clock()
        with self._lock.write():
            removed = [
                identity
                for identity in list(self._bans)
                if self._evict_if_expired(identity, now, "auto_unbanned")
            ]
            if removed:
                self._persist_quietly()
                logger.info(
                    "Expired bans removed",
                    event="share_guard.ledger.cleanup_expired",
                    removed=len(removed),
                )
        return len(removed)

    def cleanup_older_than(self, retention_minutes: float) -> int:
        """Forget bans that expired more than ``retention_minutes`` ago.

        A retention of zero or less keeps history forever.
        """
        if retention_minutes <= 0:
            return 0
        cutoff = self._clock() - timedelta(minutes=retention_minutes)
        with self._lock.write():
            stale = [
                identity
                for identity, rec in self._bans.items()
                if rec.expires_at is not None and rec.expires_at < cutoff
            ]
            for identity in stale:
                record = self._bans.pop(identity)
                logger.info(
                    "Old ban removed from ledger",
                    event="share_guard.ledger.retention_removed",
                    action="retention_removed",
                    identity=identity,
                    expired_at=record.expires_at.isoformat()
                    if record.expires_at
                    else None,
                )
            if stale:
                self._persist_quietly()
                logger.info(
                    "Old bans removed",
                    event="share_guard.ledger.cleanup_retention",
                    removed=len(stale),
                    retention_minutes=retention_minutes,
                )
        return len(stale)
