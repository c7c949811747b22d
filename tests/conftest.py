"""
Shared fixtures: controllable clock, in-memory collaborators and a ledger
on a temporary path. No network, no real firewall.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from share_guard.activity.models import IdentityActivity
from share_guard.exceptions import ActivityLogError, FirewallError, PanelError
from share_guard.firewall.base import AccessController
from share_guard.ledger.store import BanLedger
from share_guard.panel.base import GatewayProxy
from share_guard.panel.models import RemoteIdentity
from share_guard.utils import ban_audit

_ENV_VARS = (
    "SHARE_GUARD_CONFIG",
    "PANEL_URL",
    "PANEL_USER",
    "PANEL_PASS",
    "INBOUND_ID",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep the developer's environment out of config-sensitive tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    ban_audit.configure_ban_audit(None, enabled=False)


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 9, 4, 10, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "ip_bans.json"


@pytest.fixture
def make_ledger(ledger_path, clock):
    def _make(duration_minutes: float = 5, path: Path | None = None) -> BanLedger:
        return BanLedger(path or ledger_path, duration_minutes, clock=clock)

    return _make


@pytest.fixture
def ledger(make_ledger) -> BanLedger:
    return make_ledger()


def make_activity(identity: str, *addresses: str) -> IdentityActivity:
    act = IdentityActivity(identity)
    for address in addresses:
        act.record(address, None)
    return act


class StaticAggregator:
    """Returns a fixed snapshot, or raises when ``error`` is set."""

    def __init__(self, snapshot: dict[str, IdentityActivity] | None = None):
        self.snapshot = snapshot or {}
        self.error: Exception | None = None
        self.calls = 0

    def analyze_log(self) -> dict[str, IdentityActivity]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.snapshot)

    def set(self, *activities: IdentityActivity) -> None:
        self.snapshot = {act.identity: act for act in activities}

    def fail(self) -> None:
        self.error = ActivityLogError("accumulated log unreadable")


class FakeGateway(GatewayProxy):
    """In-memory gateway recording every mutating call."""

    def __init__(self, roster: dict[str, bool] | None = None):
        super().__init__("fake")
        self.roster = dict(roster or {})
        self.calls: list[tuple[str, str]] = []
        self.fail_roster = False
        self.fail_on: set[tuple[str, str]] = set()
        self._credentials = 0

    def _check(self, op: str, identity: str) -> None:
        self.calls.append((op, identity))
        if (op, identity) in self.fail_on:
            raise PanelError(f"{op} failed for {identity}")

    def list_identities(self) -> list[RemoteIdentity]:
        if self.fail_roster:
            raise PanelError("panel unreachable")
        return [RemoteIdentity(identity, enabled) for identity, enabled in self.roster.items()]

    def lookup_by_email(self, identity: str) -> RemoteIdentity:
        return RemoteIdentity(identity, self.roster[identity])

    def enable(self, identity: str) -> None:
        self._check("enable", identity)
        self.roster[identity] = True

    def disable(self, identity: str) -> None:
        self._check("disable", identity)
        self.roster[identity] = False

    def aggressive_reset(self, identity: str) -> str:
        self._check("aggressive_reset", identity)
        self.roster[identity] = False
        self._credentials += 1
        return f"credential-{self._credentials}"

    def calls_for(self, op: str) -> list[str]:
        return [identity for name, identity in self.calls if name == op]


class RecordingAccessController(AccessController):
    """Access controller that records the primitive calls it receives."""

    def __init__(self, fail: set[str] | None = None):
        super().__init__("recording")
        self.applied: list[tuple[str, str]] = []
        self.fail = set(fail or ())

    def _apply_block(self, address: str) -> None:
        if address in self.fail:
            raise FirewallError(f"cannot block {address}")
        self.applied.append(("block", address))

    def _apply_unblock(self, address: str) -> None:
        if address in self.fail:
            raise FirewallError(f"cannot unblock {address}")
        self.applied.append(("unblock", address))


@pytest.fixture
def aggregator() -> StaticAggregator:
    return StaticAggregator()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def access_controller() -> RecordingAccessController:
    return RecordingAccessController()


@pytest.fixture
def activity_of():
    """Factory: ``activity_of("user@x", "198.51.100.1", ...)``."""
    return make_activity


@pytest.fixture
def make_gateway():
    """Factory for additional gateways: ``make_gateway({"user@x": True})``."""
    return FakeGateway
