"""
Access controller base class.

Owns the locally cached set of blocked addresses. Subclasses only implement
the two primitives that touch the real firewall; validation, idempotency and
locking live here so every backend behaves the same.
"""

from __future__ import annotations

import ipaddress
from abc import ABC, abstractmethod

from share_guard.exceptions import InvalidAddressError
from share_guard.utils.logger import get_logger
from share_guard.utils.rwlock import ReadWriteLock

logger = get_logger(__name__)


def normalize_address(address: str) -> str:
    """Return the canonical text form of an IPv4/IPv6 address.

    Raises:
        InvalidAddressError: ``address`` is not an IP address
    """
    try:
        return str(ipaddress.ip_address(str(address).strip()))
    except ValueError as exc:
        raise InvalidAddressError(
            f"Invalid IP address: {address!r}", {"address": str(address)}
        ) from exc


class AccessController(ABC):
    """Idempotent block/unblock by source address."""

    def __init__(self, name: str):
        self.name = name
        self._lock = ReadWriteLock()
        self._blocked: set[str] = set()

    @abstractmethod
    def _apply_block(self, address: str) -> None:
        """Install the firewall rule. Raise FirewallError on failure."""

    @abstractmethod
    def _apply_unblock(self, address: str) -> None:
        """Remove the firewall rule. Raise FirewallError on failure."""

    def _discover(self) -> list[str]:
        """Addresses the host firewall already drops (optional)."""
        return []

    def load_existing(self) -> int:
        """Seed the cache from rules installed by an earlier process."""
        found = set()
        for raw in self._discover():
            try:
                found.add(normalize_address(raw))
            except InvalidAddressError:
                continue
        with self._lock.write():
            self._blocked.update(found)
        logger.info(
            "Loaded existing block rules",
            event="share_guard.firewall.loaded",
            backend=self.name,
            count=len(found),
        )
        return len(found)

    def block(self, address: str) -> bool:
        """Block ``address``. Returns False if it was already blocked."""
        addr = normalize_address(address)
        with self._lock.write():
            if addr in self._blocked:
                logger.debug(
                    "Address already blocked",
                    event="share_guard.firewall.block.noop",
                    address=addr,
                )
                return False
            self._apply_block(addr)
            self._blocked.add(addr)
        logger.info(
            "Address blocked",
            event="share_guard.firewall.blocked",
            address=addr,
            backend=self.name,
        )
        return True

    def unblock(self, address: str) -> bool:
        """Unblock ``address``. Returns False if it was not blocked."""
        addr = normalize_address(address)
        with self._lock.write():
            if addr not in self._blocked:
                logger.debug(
                    "Address not blocked",
                    event="share_guard.firewall.unblock.noop",
                    address=addr,
                )
                return False
            self._apply_unblock(addr)
            self._blocked.discard(addr)
        logger.info(
            "Address unblocked",
            event="share_guard.firewall.unblocked",
            address=addr,
            backend=self.name,
        )
        return True

    def is_blocked(self, address: str) -> bool:
        addr = normalize_address(address)
        with self._lock.read():
            return addr in self._blocked

    def blocked_addresses(self) -> list[str]:
        with self._lock.read():
            return sorted(self._blocked)


class DryRunAccessController(AccessController):
    """Records block state without touching the host firewall."""

    def __init__(self):
        super().__init__("dry-run")

    def _apply_block(self, address: str) -> None:
        logger.info(
            "Firewall disabled, not installing block rule",
            event="share_guard.firewall.dry_run",
            address=address,
            operation="block",
        )

    def _apply_unblock(self, address: str) -> None:
        logger.info(
            "Firewall disabled, not removing block rule",
            event="share_guard.firewall.dry_run",
            address=address,
            operation="unblock",
        )
