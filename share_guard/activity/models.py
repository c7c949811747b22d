"""Per-identity activity derived from the accumulated connection log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class AddressActivity:
    count: int = 0
    last_seen: datetime | None = None

    def record(self, seen_at: datetime | None) -> None:
        self.count += 1
        if seen_at is not None and (self.last_seen is None or seen_at > self.last_seen):
            self.last_seen = seen_at


@dataclass
class IdentityActivity:
    """Source addresses observed for one identity in the current log window."""

    identity: str
    addresses: dict[str, AddressActivity] = field(default_factory=dict)

    @property
    def distinct_address_count(self) -> int:
        return len(self.addresses)

    def record(self, address: str, seen_at: datetime | None) -> None:
        self.addresses.setdefault(address, AddressActivity()).record(seen_at)

    def address_list(self) -> list[str]:
        return sorted(self.addresses)

    def to_dict(self) -> dict:
        return {
            "identity": self.identity,
            "distinct_address_count": self.distinct_address_count,
            "addresses": {
                addr: {
                    "count": act.count,
                    "last_seen": act.last_seen.isoformat() if act.last_seen else None,
                }
                for addr, act in sorted(self.addresses.items())
            },
        }
