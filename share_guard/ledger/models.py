"""Ban record kept by the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _parse_ts(value: Any) -> datetime | None:
    if value in (None, "", 0):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class BanRecord:
    """One active (or expired but retained) ban.

    ``expires_at`` of ``None`` means the ban never expires. Records are
    immutable; the ledger replaces or deletes them, never edits them.
    """

    identity: str
    banned_at: datetime
    expires_at: datetime | None
    reason: str = ""
    addresses: tuple[str, ...] = field(default_factory=tuple)

    @property
    def unlimited(self) -> bool:
        return self.expires_at is None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "banned_at": self.banned_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "reason": self.reason,
            "addresses": list(self.addresses),
        }

    @classmethod
    def from_dict(cls, identity: str, payload: dict[str, Any]) -> BanRecord:
        # "email"/"ip_addresses" are the key names used by older ledger files
        banned_at = _parse_ts(payload.get("banned_at"))
        if banned_at is None:
            raise ValueError(f"ban record for {identity!r} has no banned_at")
        addresses = payload.get("addresses", payload.get("ip_addresses")) or []
        return cls(
            identity=str(payload.get("identity") or payload.get("email") or identity),
            banned_at=banned_at,
            expires_at=_parse_ts(payload.get("expires_at")),
            reason=str(payload.get("reason") or ""),
            addresses=tuple(str(a) for a in addresses),
        )
