"""Panel-side records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RemoteIdentity:
    """An identity as the gateway panel sees it."""

    identity: str
    enabled: bool
    client_id: str = ""

    @classmethod
    def from_client(cls, client: dict[str, Any]) -> RemoteIdentity:
        return cls(
            identity=str(client.get("email") or ""),
            enabled=bool(client.get("enable", False)),
            client_id=str(client.get("id") or ""),
        )
