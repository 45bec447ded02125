"""In-process entry point used by route handlers and the CLI."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ngfwstats.analytics.ranking import RankMeasure, Ranking, TopNRanker
from ngfwstats.analytics.search import Predicate, translate_filter
from ngfwstats.analytics.snapshots import SnapshotStore, snapshot_from_stats
from ngfwstats.analytics.stats import Stats, StatsAggregator
from ngfwstats.analytics.trends import TrendBucket, TrendBuilder
from ngfwstats.config import NgfwStatsConfig
from ngfwstats.models import Family, StatsSnapshot
from ngfwstats.repos import ConnectionRepo, FirewallRuleRepo, ThreatRepo, TrafficRepo
from ngfwstats.store.base import EventStore
from ngfwstats.store.filters import FilterExpr

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    """Wires the aggregation components to one injected event store.

    Stateless apart from the store handle: any number of calls may run
    concurrently.
    """

    def __init__(
        self,
        store: EventStore,
        config: NgfwStatsConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.config = config or NgfwStatsConfig()
        self._clock = clock
        self.stats = StatsAggregator(store)
        self.trends = TrendBuilder(store, clock=clock)
        self.ranker = TopNRanker(store)
        self.snapshots = SnapshotStore(store, clock=clock)
        self.rules = FirewallRuleRepo(store, clock=clock)
        self.connections = ConnectionRepo(store, clock=clock)
        self.threats = ThreatRepo(store, clock=clock)
        self.traffic = TrafficRepo(store, clock=clock)

    async def compute_stats(self, family: Family, filter: FilterExpr | None = None) -> Stats:
        return await self.stats.compute(family, filter)

    async def build_trend(self, family: Family, days: int | None = None) -> list[TrendBucket]:
        return await self.trends.build(family, self.config.trend_days if days is None else days)

    async def top_n(
        self,
        family: Family,
        dimension: str,
        measure: RankMeasure | str = RankMeasure.COUNT,
        n: int | None = None,
        filter: FilterExpr | None = None,
    ) -> list[Ranking]:
        limit = self.config.top_n if n is None else n
        return await self.ranker.top_n(family, dimension, measure, limit, filter)

    def translate_filter(
        self,
        family: Family,
        text: str = "",
        predicates: tuple[Predicate, ...] | list[Predicate] = (),
    ) -> FilterExpr | None:
        return translate_filter(family, text, predicates)

    async def save_snapshot(self, family: Family, stats: Stats) -> StatsSnapshot:
        return await self.snapshots.save(
            snapshot_from_stats(family, stats, timestamp=self._clock())
        )

    async def capture_snapshot(self, family: Family) -> StatsSnapshot:
        """Compute current stats and persist them (the scheduler's hook)."""
        stats = await self.compute_stats(family)
        snapshot = await self.save_snapshot(family, stats)
        logger.info("Captured %s snapshot %s", family.value, snapshot.id)
        return snapshot

    async def latest_snapshot(self, family: Family) -> StatsSnapshot | None:
        return await self.snapshots.latest(family)

    async def snapshot_history(
        self, family: Family, hours: float | None = None
    ) -> list[StatsSnapshot]:
        return await self.snapshots.history(
            family, self.config.history_hours if hours is None else hours
        )

    async def prune_snapshots(self, family: Family, days_to_keep: int | None = None) -> int:
        days = self.config.snapshot_retention_days if days_to_keep is None else days_to_keep
        return await self.snapshots.prune(family, days)

    async def cleanup_connections(self, days_to_keep: int | None = None) -> int:
        days = self.config.connection_retention_days if days_to_keep is None else days_to_keep
        return await self.connections.cleanup(days)

    async def cleanup_threats(self, days_to_keep: int | None = None) -> int:
        """Delete old resolved threats. Unresolved ones are never removed."""
        days = self.config.threat_retention_days if days_to_keep is None else days_to_keep
        return await self.threats.cleanup(days)

    async def cleanup_traffic(self, days_to_keep: int | None = None) -> int:
        days = self.config.traffic_retention_days if days_to_keep is None else days_to_keep
        return await self.traffic.cleanup(days)
