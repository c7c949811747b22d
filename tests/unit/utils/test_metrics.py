"""Unit tests for metrics helpers."""

import uuid

from prometheus_client import REGISTRY, generate_latest

from share_guard.utils import metrics


def _unique_name(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def test_collectors_are_reused_on_second_registration():
    name = _unique_name("gauge")
    first = metrics.safe_gauge(name, "test gauge")
    second = metrics.safe_gauge(name, "test gauge")
    assert first is second

    counter_name = _unique_name("events") + "_total"
    assert metrics.safe_counter(counter_name, "doc") is metrics.safe_counter(
        counter_name, "doc"
    )


def test_histogram_buckets_and_export():
    name = _unique_name("hist")
    hist = metrics.safe_histogram(name, "histogram test", buckets=[0.1, 1.0])
    hist.observe(0.5)
    output = generate_latest(REGISTRY).decode()
    assert f'share_guard_{name}_bucket{{le="0.1"}}' in output
    assert f'share_guard_{name}_bucket{{le="+Inf"}}' in output


def test_service_metrics_are_exported():
    metrics.cycles_total.labels(outcome="completed").inc()
    output = generate_latest(REGISTRY).decode()
    assert 'share_guard_cycles_total{outcome="completed"}' in output
    assert "share_guard_active_bans" in output
