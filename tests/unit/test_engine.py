"""Tests for the analytics engine facade."""

from __future__ import annotations

import asyncio

import pytest

from conftest import DAY, NOW, fixed_clock, seed
from ngfwstats.analytics.search import Equals
from ngfwstats.config import NgfwStatsConfig
from ngfwstats.engine import AnalyticsEngine
from ngfwstats.errors import InvalidDimension, StoreUnavailable
from ngfwstats.models import (
    Family,
    NetworkConnection,
    Severity,
    StatsSnapshot,
    ThreatEvent,
    ThreatType,
    TrafficSample,
)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def engine(store, tmp_path):
    config = NgfwStatsConfig(
        data_dir=tmp_path,
        config_dir=tmp_path,
        top_n=2,
        trend_days=1,
        connection_retention_days=10,
        threat_retention_days=20,
        traffic_retention_days=3,
    )
    return AnalyticsEngine(store, config, clock=fixed_clock)


def test_capture_then_latest(engine, store, ten_threats):
    seed(store, ten_threats)
    captured = run_async(engine.capture_snapshot(Family.THREAT))
    assert captured.timestamp == NOW
    assert captured.counters["total"] == 10
    assert captured.counters["critical"] == 4
    assert captured.counters["type_malware"] == 5

    latest = run_async(engine.latest_snapshot(Family.THREAT))
    assert latest == captured
    assert run_async(engine.latest_snapshot(Family.NETWORK)) is None


def test_snapshot_history_uses_config_window(engine, store):
    for age_hours in (1, 30):
        snap = StatsSnapshot(Family.FIREWALL, {"total": age_hours}, timestamp=NOW - age_hours * 3600)
        run_async(store.insert_one("firewall_stats", snap.to_document()))
    history = run_async(engine.snapshot_history(Family.FIREWALL))
    assert [s.counters["total"] for s in history] == [1]


def test_prune_uses_configured_retention(engine, store):
    for age_days in (5, 45):
        snap = StatsSnapshot(Family.NETWORK, {"total": 1}, timestamp=NOW - age_days * DAY)
        run_async(store.insert_one("network_stats", snap.to_document()))
    assert run_async(engine.prune_snapshots(Family.NETWORK)) == 1
    assert run_async(engine.prune_snapshots(Family.NETWORK, days_to_keep=1)) == 1


def test_top_n_defaults_to_config_limit(engine, store, five_connections):
    seed(store, five_connections)
    ranked = run_async(engine.top_n(Family.NETWORK, "user", "bytes"))
    assert [(r.key, r.value) for r in ranked] == [("a", 30), ("c", 10)]


def test_top_n_rejects_unknown_dimension(engine):
    with pytest.raises(InvalidDimension):
        run_async(engine.top_n(Family.NETWORK, "colour"))


def test_build_trend_defaults_to_config_days(engine, store, ten_threats):
    seed(store, ten_threats)
    buckets = run_async(engine.build_trend(Family.THREAT))
    assert [b.date for b in buckets] == ["2026-03-15"]
    assert buckets[0]["total"] == 10


def test_filtered_stats(engine, store, ten_threats):
    seed(store, ten_threats)
    expr = engine.translate_filter(Family.THREAT, "event 1", [Equals("severity", "critical")])
    stats = run_async(engine.compute_stats(Family.THREAT, expr))
    assert stats.total == 1


def test_store_outage_propagates(memory_store):
    memory_store.available = False
    engine = AnalyticsEngine(memory_store, clock=fixed_clock)
    with pytest.raises(StoreUnavailable):
        run_async(engine.compute_stats(Family.FIREWALL))


def test_cleanup_uses_configured_retention(engine, store):
    seed(store, [
        NetworkConnection("10.0.0.1", "1.1.1.1", timestamp=NOW - 5 * DAY),
        NetworkConnection("10.0.0.2", "1.1.1.1", timestamp=NOW - 15 * DAY),
        ThreatEvent(type=ThreatType.SPAM, severity=Severity.LOW, source="a",
                    resolved=True, resolved_by="x", resolved_at=NOW, timestamp=NOW - 25 * DAY),
        ThreatEvent(type=ThreatType.SPAM, severity=Severity.LOW, source="b",
                    timestamp=NOW - 25 * DAY),
        ThreatEvent(type=ThreatType.SPAM, severity=Severity.LOW, source="c",
                    resolved=True, resolved_by="x", resolved_at=NOW, timestamp=NOW - 5 * DAY),
    ])
    for days in (1, 4):
        run_async(engine.traffic.record(TrafficSample("eth0", timestamp=NOW - days * DAY)))

    assert run_async(engine.cleanup_connections()) == 1
    assert run_async(engine.cleanup_threats()) == 1
    assert run_async(engine.cleanup_traffic()) == 1
    assert run_async(engine.cleanup_threats(days_to_keep=1)) == 1
    assert [e.source for e in run_async(engine.threats.unresolved())] == ["b"]
