"""
Reconciliation engine

Periodically classifies every identity on the gateway roster and issues the
corrective calls that bring the ban ledger, the gateway's enable flags and
the firewall block set back in line with policy.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any

from share_guard.activity.aggregator import ActivityAggregator
from share_guard.activity.models import IdentityActivity
from share_guard.exceptions import LedgerPersistenceError, ShareGuardError
from share_guard.firewall.base import AccessController
from share_guard.ledger.store import BanLedger
from share_guard.panel.base import GatewayProxy
from share_guard.utils.logger import get_logger, logging_context
from share_guard.utils.metrics import (
    aggressive_resets_total,
    classified_identities,
    cycle_duration_seconds,
    cycles_total,
    identities_enabled_total,
    unblocks_total,
)

from .classification import Action, ActionKind, Classification, plan_identity

logger = get_logger(__name__)


@dataclass
class CycleSummary:
    banned: int = 0
    suspicious: int = 0
    normal: int = 0
    enabled_inactive: int = 0
    failures: int = 0
    aborted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReconciliationEngine:
    """Owns the reconciliation loop and its per-cycle decisions."""

    def __init__(
        self,
        aggregator: ActivityAggregator,
        gateway: GatewayProxy,
        ledger: BanLedger,
        access_controller: AccessController,
        *,
        max_addresses: int = 3,
        check_interval: float = 60.0,
        grace_period: float = 0.0,
        ban_retention_minutes: float = 1440.0,
        stop_timeout: float = 120.0,
    ):
        self.aggregator = aggregator
        self.gateway = gateway
        self.ledger = ledger
        self.access_controller = access_controller
        self.max_addresses = max_addresses
        self.check_interval = check_interval
        # Accepted and reported; no transition consults it
        self.grace_period = grace_period
        self.ban_retention_minutes = ban_retention_minutes
        self.stop_timeout = stop_timeout

        self.running = False
        self.last_summary: CycleSummary | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._cycle_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.running:
            raise ShareGuardError("Reconciliation engine is already running")
        self._stop_event.clear()
        self.running = True
        self._thread = threading.Thread(
            target=self._run_loop, name="reconciliation", daemon=True
        )
        self._thread.start()
        logger.info(
            "Reconciliation engine started",
            event="share_guard.engine.started",
            max_addresses=self.max_addresses,
            check_interval=self.check_interval,
            grace_period=self.grace_period,
            ban_retention_minutes=self.ban_retention_minutes,
        )

    def stop(self) -> None:
        """Stop ticking. An in-flight cycle is allowed to finish."""
        if not self.running:
            return
        self.running = False
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.stop_timeout)
            if self._thread.is_alive():
                logger.warning(
                    "Reconciliation cycle still running after stop timeout",
                    event="share_guard.engine.stop_timeout",
                    timeout=self.stop_timeout,
                )
            self._thread = None
        logger.info("Reconciliation engine stopped", event="share_guard.engine.stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception(
                    "Unexpected error in reconciliation cycle",
                    event="share_guard.engine.cycle_crashed",
                )
            if self._stop_event.wait(self.check_interval):
                break

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    def run_cycle(self) -> CycleSummary:
        """Run one full reconciliation pass and return its summary."""
        with self._cycle_lock, logging_context(cycle_id=uuid.uuid4().hex[:12]):
            started = time.monotonic()
            summary = self._reconcile()
            cycle_duration_seconds.observe(time.monotonic() - started)
            cycles_total.labels(
                outcome="aborted" if summary.aborted else "completed"
            ).inc()
            self.last_summary = summary
            return summary

    def _reconcile(self) -> CycleSummary:
        try:
            roster = self.gateway.list_identities()
        except Exception as exc:
            logger.error(
                "Failed to fetch identity roster, skipping cycle",
                event="share_guard.engine.roster_failed",
                error=str(exc),
            )
            return CycleSummary(aborted=True)
        if not roster:
            logger.info("Gateway roster is empty", event="share_guard.engine.roster_empty")
            return CycleSummary()

        try:
            snapshot = self.aggregator.analyze_log()
        except Exception as exc:
            logger.error(
                "Failed to analyze activity, skipping cycle",
                event="share_guard.engine.activity_failed",
                error=str(exc),
            )
            return CycleSummary(aborted=True)

        self.ledger.cleanup_expired()
        self.ledger.cleanup_older_than(self.ban_retention_minutes)
        # Includes bans a status query expired between cycles
        lapsed = self.ledger.drain_lapsed()

        summary = CycleSummary()
        for remote in roster:
            try:
                self._process_identity(
                    remote.identity,
                    remote.enabled,
                    snapshot.get(remote.identity),
                    remote.identity in lapsed,
                    summary,
                )
            except Exception:
                summary.failures += 1
                logger.exception(
                    "Unexpected error processing identity",
                    event="share_guard.engine.identity_failed",
                    identity=remote.identity,
                )

        for state, count in (
            (Classification.BANNED, summary.banned),
            (Classification.SUSPICIOUS, summary.suspicious),
            (Classification.NORMAL, summary.normal),
        ):
            classified_identities.labels(state=state.value).set(count)
        classified_identities.labels(state="enabled_inactive").set(
            summary.enabled_inactive
        )
        logger.info(
            "Reconciliation cycle finished",
            event="share_guard.engine.cycle_summary",
            roster_size=len(roster),
            **summary.to_dict(),
        )
        return summary

    def _process_identity(
        self,
        identity: str,
        enabled: bool,
        activity: IdentityActivity | None,
        ban_lapsed: bool,
        summary: CycleSummary,
    ) -> None:
        plan = plan_identity(
            identity,
            is_banned=self.ledger.is_banned(identity),
            enabled=enabled,
            activity=activity,
            max_addresses=self.max_addresses,
            ban_lapsed=ban_lapsed,
        )
        if plan.state is Classification.BANNED:
            summary.banned += 1
        elif plan.state is Classification.SUSPICIOUS:
            summary.suspicious += 1
            logger.warning(
                "Identity exceeds address limit",
                event="share_guard.engine.suspicious",
                identity=identity,
                address_count=activity.distinct_address_count if activity else 0,
                max_addresses=self.max_addresses,
            )
        elif plan.state is Classification.NORMAL:
            summary.normal += 1

        for action in plan.actions:
            if not self._execute(action, plan.state, summary):
                # A failed ban means nothing to enforce yet; retried next cycle
                if action.kind is ActionKind.BAN:
                    break

    def _execute(
        self, action: Action, state: Classification, summary: CycleSummary
    ) -> bool:
        identity = action.identity
        if action.kind is ActionKind.BAN:
            try:
                self.ledger.ban(identity, action.reason, action.addresses)
            except LedgerPersistenceError as exc:
                # In-memory ban holds; enforce it anyway
                logger.warning(
                    "Ban recorded but not persisted",
                    event="share_guard.engine.ban_not_persisted",
                    identity=identity,
                    error=str(exc),
                )
            except Exception as exc:
                summary.failures += 1
                logger.error(
                    "Failed to ban identity",
                    event="share_guard.engine.ban_failed",
                    identity=identity,
                    error=str(exc),
                )
                return False
            return True

        if action.kind is ActionKind.AGGRESSIVE_RESET:
            try:
                self.gateway.aggressive_reset(identity)
            except Exception as exc:
                summary.failures += 1
                aggressive_resets_total.labels(result="failure").inc()
                logger.error(
                    "Aggressive reset failed, will retry next cycle",
                    event="share_guard.engine.reset_failed",
                    identity=identity,
                    error=str(exc),
                )
                return False
            aggressive_resets_total.labels(result="success").inc()
            logger.info(
                "Active sessions severed",
                event="share_guard.engine.reset",
                identity=identity,
                state=state.value,
            )
            return True

        if action.kind is ActionKind.ENABLE:
            try:
                self.gateway.enable(identity)
            except Exception as exc:
                summary.failures += 1
                logger.error(
                    "Failed to enable identity",
                    event="share_guard.engine.enable_failed",
                    identity=identity,
                    error=str(exc),
                )
                return False
            identities_enabled_total.labels(reason=state.value).inc()
            if state is Classification.INACTIVE:
                summary.enabled_inactive += 1
            logger.info(
                "Identity re-enabled",
                event="share_guard.engine.enabled",
                identity=identity,
                state=state.value,
            )
            return True

        if action.kind is ActionKind.UNBLOCK:
            ok = True
            for address in action.addresses:
                try:
                    self.access_controller.unblock(address)
                    unblocks_total.labels(result="success").inc()
                except Exception as exc:
                    ok = False
                    summary.failures += 1
                    unblocks_total.labels(result="failure").inc()
                    logger.error(
                        "Failed to unblock address",
                        event="share_guard.engine.unblock_failed",
                        identity=identity,
                        address=address,
                        error=str(exc),
                    )
            return ok

        raise ShareGuardError(f"Unknown action kind: {action.kind}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def status(self) -> dict[str, Any]:
        try:
            snapshot = self.aggregator.analyze_log()
        except Exception as exc:
            return {"running": self.running, "error": str(exc)}
        suspicious = sum(
            1
            for act in snapshot.values()
            if act.distinct_address_count > self.max_addresses
        )
        return {
            "running": self.running,
            "total_identities": len(snapshot),
            "suspicious_count": suspicious,
            "normal_count": len(snapshot) - suspicious,
            "max_addresses": self.max_addresses,
            "check_interval": self.check_interval,
            "grace_period": self.grace_period,
            "last_cycle": self.last_summary.to_dict() if self.last_summary else None,
        }

    def current_stats(self) -> dict[str, Any]:
        """Per-identity activity breakdown with ban state, for operators."""
        return activity_breakdown(
            self.aggregator.analyze_log(), self.ledger, self.max_addresses
        )


def activity_breakdown(
    snapshot: dict[str, IdentityActivity], ledger: BanLedger, max_addresses: int
) -> dict[str, Any]:
    rows = []
    for identity in sorted(snapshot):
        act = snapshot[identity]
        record = ledger.get_ban_info(identity)
        row = act.to_dict()
        row["state"] = (
            "suspicious" if act.distinct_address_count > max_addresses else "normal"
        )
        row["banned"] = record is not None
        if record is not None:
            row["ban_expires_at"] = (
                record.expires_at.isoformat() if record.expires_at else None
            )
        rows.append(row)
    return {"max_addresses": max_addresses, "identities": rows}
