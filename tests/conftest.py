"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from ngfwstats.models import (
    ConnectionStatus,
    Family,
    FirewallRule,
    NetworkConnection,
    Protocol,
    RuleAction,
    Severity,
    ThreatEvent,
    ThreatType,
)
from ngfwstats.store.base import RECORD_COLLECTIONS
from ngfwstats.store.memory import InMemoryEventStore
from ngfwstats.store.sqlite import SQLiteEventStore

# Fixed "now": 2026-03-15 12:00 UTC
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc).timestamp()
DAY = 86400

_FAMILIES = {
    FirewallRule: Family.FIREWALL,
    NetworkConnection: Family.NETWORK,
    ThreatEvent: Family.THREAT,
}


def fixed_clock() -> float:
    return NOW


def seed(store, records) -> None:
    """Insert model records into their family's collection."""

    async def _seed() -> None:
        for record in records:
            family = _FAMILIES[type(record)]
            await store.insert_one(RECORD_COLLECTIONS[family], record.to_document())

    asyncio.run(_seed())


@pytest.fixture
def now() -> float:
    return NOW


@pytest.fixture
def memory_store() -> InMemoryEventStore:
    """The in-memory fake, for tests that inspect its call log or outage switch."""
    return InMemoryEventStore()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Every event store implementation, so results are checked on each."""
    if request.param == "memory":
        yield InMemoryEventStore()
        return
    sqlite_store = asyncio.run(SQLiteEventStore.open(tmp_path / "events.db"))
    yield sqlite_store
    asyncio.run(sqlite_store.close())


@pytest.fixture
def ten_threats() -> list[ThreatEvent]:
    """4 critical, 3 high, 2 medium, 1 low; all unresolved, 7 blocked."""
    severities = (
        [Severity.CRITICAL] * 4 + [Severity.HIGH] * 3 + [Severity.MEDIUM] * 2 + [Severity.LOW]
    )
    types = [ThreatType.MALWARE] * 5 + [ThreatType.INTRUSION] * 3 + [ThreatType.PHISHING] * 2
    return [
        ThreatEvent(
            type=types[i],
            severity=sev,
            source=f"203.0.113.{i % 3}",
            destination="10.0.0.5",
            description=f"Event {i}",
            signature=f"SIG-{i}",
            blocked=i < 7,
            timestamp=NOW - i * 3600,
        )
        for i, sev in enumerate(severities)
    ]


@pytest.fixture
def five_connections() -> list[NetworkConnection]:
    """Users a,a,b,c,c with bytes in+out 10,20,5,7,3."""
    rows = [("a", 6, 4), ("a", 15, 5), ("b", 5, 0), ("c", 4, 3), ("c", 1, 2)]
    return [
        NetworkConnection(
            source_ip=f"192.168.1.{i}",
            destination_ip="198.51.100.7",
            protocol=Protocol.TCP,
            user=user,
            bytes_in=bytes_in,
            bytes_out=bytes_out,
            timestamp=NOW - i * 60,
        )
        for i, (user, bytes_in, bytes_out) in enumerate(rows)
    ]


@pytest.fixture
def firewall_rules() -> list[FirewallRule]:
    return [
        FirewallRule(name="allow-web", action=RuleAction.ALLOW, priority=100, hit_count=12),
        FirewallRule(name="deny-telnet", action=RuleAction.DENY, priority=90, hit_count=3),
        FirewallRule(
            name="drop-bogons", action=RuleAction.DROP, priority=80, enabled=False, hit_count=5
        ),
        FirewallRule(name="allow-dns", action=RuleAction.ALLOW, priority=70),
    ]


@pytest.fixture
def mixed_connections() -> list[NetworkConnection]:
    return [
        NetworkConnection("10.0.0.1", "1.1.1.1", protocol=Protocol.UDP, application="dns",
                          status=ConnectionStatus.CLOSED, timestamp=NOW - 10),
        NetworkConnection("10.0.0.2", "8.8.8.8", protocol=Protocol.TCP, application="https",
                          timestamp=NOW - 20),
        NetworkConnection("10.0.0.3", "8.8.4.4", protocol=Protocol.TCP,
                          status=ConnectionStatus.BLOCKED, timestamp=NOW - 30),
        NetworkConnection("10.0.0.4", "9.9.9.9", protocol=Protocol.ICMP,
                          status=ConnectionStatus.TIMEOUT, timestamp=NOW - 40),
        NetworkConnection("10.0.0.5", "1.0.0.1", protocol=Protocol.TCP, application="https",
                          timestamp=NOW - 50),
    ]
