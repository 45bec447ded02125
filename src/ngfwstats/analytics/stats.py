"""Statistics aggregator — current-state summaries per record family.

Each summary is one aggregation request against the store (a single
grouping or a facet of groupings); no raw records are pulled into memory.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from ngfwstats.analytics.ranking import (
    DEFAULT_LIMIT,
    TopSource,
    to_top_sources,
    top_sources_grouping,
)
from ngfwstats.analytics.search import validate_filter
from ngfwstats.models import (
    ConnectionStatus,
    Family,
    RuleAction,
    Severity,
)
from ngfwstats.store.base import RECORD_COLLECTIONS, EventStore
from ngfwstats.store.filters import Eq, Exists, FilterExpr, In, all_of
from ngfwstats.store.pipeline import (
    Count,
    Everything,
    Facet,
    Field,
    GroupBy,
    OrderBy,
    Sum,
    counts_by_key,
)

logger = logging.getLogger(__name__)

BREAKDOWN_LIMIT = 10


def percentage(count: int, total: int) -> int:
    """Whole-number share of ``total``, rounding halves up; 0 when total is 0."""
    if total <= 0:
        return 0
    return math.floor(count * 100 / total + 0.5)


@dataclass(frozen=True)
class LabelCount:
    label: str
    count: int


@dataclass(frozen=True)
class Share:
    label: str
    count: int
    percentage: int


@dataclass(frozen=True)
class FirewallStats:
    total: int = 0
    enabled: int = 0
    disabled: int = 0
    allow_rules: int = 0
    deny_rules: int = 0
    total_hits: int = 0


@dataclass(frozen=True)
class NetworkStats:
    total: int = 0
    active: int = 0
    closed: int = 0
    blocked: int = 0
    by_protocol: list[LabelCount] = field(default_factory=list)
    by_application: list[LabelCount] = field(default_factory=list)


@dataclass(frozen=True)
class ThreatStats:
    total: int = 0
    blocked: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    resolved: int = 0
    unresolved: int = 0
    by_type: list[Share] = field(default_factory=list)
    by_severity: list[Share] = field(default_factory=list)
    top_sources: list[TopSource] = field(default_factory=list)


Stats = FirewallStats | NetworkStats | ThreatStats


def firewall_grouping(match: FilterExpr | None = None) -> GroupBy:
    return GroupBy(
        key=Everything(),
        measures=(
            Count("total"),
            Count("enabled", Eq("enabled", True)),
            Count("disabled", Eq("enabled", False)),
            Count("allow_rules", Eq("action", RuleAction.ALLOW.value)),
            Count(
                "deny_rules",
                In("action", (RuleAction.DENY.value, RuleAction.DROP.value)),
            ),
            Sum("total_hits", ("hit_count",)),
        ),
        match=match,
    )


def network_facet(match: FilterExpr | None = None) -> Facet:
    by_count = (OrderBy("count", descending=True),)
    return Facet(
        {
            "status": GroupBy(Field("status"), (Count("count"),), match=match),
            "protocol": GroupBy(
                Field("protocol"),
                (Count("count"),),
                match=match,
                order=by_count,
                limit=BREAKDOWN_LIMIT,
            ),
            "application": GroupBy(
                Field("application"),
                (Count("count"),),
                match=all_of(Exists("application"), match),
                order=by_count,
                limit=BREAKDOWN_LIMIT,
            ),
        }
    )


def threat_facet(match: FilterExpr | None = None, top_sources: int = DEFAULT_LIMIT) -> Facet:
    return Facet(
        {
            "totals": GroupBy(
                Everything(),
                (
                    Count("total"),
                    Count("blocked", Eq("blocked", True)),
                    Count("resolved", Eq("resolved", True)),
                ),
                match=match,
            ),
            "severity": GroupBy(Field("severity"), (Count("count"),), match=match),
            "type": GroupBy(
                Field("type"),
                (Count("count"),),
                match=match,
                order=(OrderBy("count", descending=True),),
            ),
            "sources": top_sources_grouping(top_sources, match),
        }
    )


class StatsAggregator:
    """Computes point-in-time statistics from the event store."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    async def compute(self, family: Family, filter: FilterExpr | None = None) -> Stats:
        if family is Family.FIREWALL:
            return await self.firewall_stats(filter)
        if family is Family.NETWORK:
            return await self.network_stats(filter)
        return await self.threat_stats(filter)

    async def firewall_stats(self, filter: FilterExpr | None = None) -> FirewallStats:
        filter = validate_filter(Family.FIREWALL, filter)
        groups = await self._store.aggregate(
            RECORD_COLLECTIONS[Family.FIREWALL], firewall_grouping(filter)
        )
        if not groups:
            return FirewallStats()
        row = groups[0]
        return FirewallStats(
            total=row["total"],
            enabled=row["enabled"],
            disabled=row["disabled"],
            allow_rules=row["allow_rules"],
            deny_rules=row["deny_rules"],
            total_hits=row["total_hits"],
        )

    async def network_stats(self, filter: FilterExpr | None = None) -> NetworkStats:
        filter = validate_filter(Family.NETWORK, filter)
        data = await self._store.aggregate(
            RECORD_COLLECTIONS[Family.NETWORK], network_facet(filter)
        )
        by_status = counts_by_key(data["status"])
        return NetworkStats(
            total=sum(by_status.values()),
            active=by_status.get(ConnectionStatus.ACTIVE.value, 0),
            closed=by_status.get(ConnectionStatus.CLOSED.value, 0),
            blocked=by_status.get(ConnectionStatus.BLOCKED.value, 0),
            by_protocol=[LabelCount(g.key, g["count"]) for g in data["protocol"]],
            by_application=[LabelCount(g.key, g["count"]) for g in data["application"]],
        )

    async def threat_stats(
        self, filter: FilterExpr | None = None, top_sources: int = DEFAULT_LIMIT
    ) -> ThreatStats:
        filter = validate_filter(Family.THREAT, filter)
        data = await self._store.aggregate(
            RECORD_COLLECTIONS[Family.THREAT], threat_facet(filter, top_sources)
        )
        totals = data["totals"][0] if data["totals"] else None
        total = totals["total"] if totals else 0
        blocked = totals["blocked"] if totals else 0
        resolved = totals["resolved"] if totals else 0

        severities = counts_by_key(data["severity"])
        by_severity = [
            Share(s.value, severities.get(s.value, 0), percentage(severities.get(s.value, 0), total))
            for s in Severity
        ]
        by_type = [
            Share(g.key, g["count"], percentage(g["count"], total)) for g in data["type"]
        ]

        logger.debug("threat stats: total=%d blocked=%d resolved=%d", total, blocked, resolved)
        return ThreatStats(
            total=total,
            blocked=blocked,
            critical=severities.get(Severity.CRITICAL.value, 0),
            high=severities.get(Severity.HIGH.value, 0),
            medium=severities.get(Severity.MEDIUM.value, 0),
            low=severities.get(Severity.LOW.value, 0),
            info=severities.get(Severity.INFO.value, 0),
            resolved=resolved,
            unresolved=total - resolved,
            by_type=by_type,
            by_severity=by_severity,
            top_sources=to_top_sources(data["sources"]),
        )
