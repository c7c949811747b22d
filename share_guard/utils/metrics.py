"""Prometheus metrics for the reconciliation service.

Collectors are registered once per process; re-importing the module (tests
reloading packages) returns the already registered collector instead of
raising a duplicate registration error.
"""

from __future__ import annotations

from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

NAMESPACE = "share_guard"


def _existing(name: str) -> Any | None:
    collectors = getattr(REGISTRY, "_names_to_collectors", {})
    return collectors.get(f"{NAMESPACE}_{name}")


def safe_counter(name: str, documentation: str, labelnames: list[str] | None = None):
    found = _existing(name) or _existing(name.removesuffix("_total"))
    if found is not None:
        return found
    return Counter(name, documentation, labelnames or [], namespace=NAMESPACE)


def safe_gauge(name: str, documentation: str, labelnames: list[str] | None = None):
    found = _existing(name)
    if found is not None:
        return found
    return Gauge(name, documentation, labelnames or [], namespace=NAMESPACE)


def safe_histogram(name: str, documentation: str, buckets: list[float]):
    found = _existing(name)
    if found is not None:
        return found
    return Histogram(name, documentation, buckets=buckets, namespace=NAMESPACE)


cycles_total = safe_counter(
    "cycles_total", "Reconciliation cycles by outcome", ["outcome"]
)
cycle_duration_seconds = safe_histogram(
    "cycle_duration_seconds",
    "Wall time of a reconciliation cycle",
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120],
)
classified_identities = safe_gauge(
    "classified_identities", "Identities per state in the last cycle", ["state"]
)
bans_created_total = safe_counter("bans_created_total", "Ban records created")
active_bans = safe_gauge("active_bans", "Ban records currently held by the ledger")
aggressive_resets_total = safe_counter(
    "aggressive_resets_total", "Aggressive resets issued to the panel", ["result"]
)
identities_enabled_total = safe_counter(
    "identities_enabled_total", "Identities re-enabled by the engine", ["reason"]
)
unblocks_total = safe_counter(
    "unblocks_total", "Firewall unblocks issued for lapsed bans", ["result"]
)
ledger_persist_failures_total = safe_counter(
    "ledger_persist_failures_total", "Failed writes of the ban ledger file"
)
