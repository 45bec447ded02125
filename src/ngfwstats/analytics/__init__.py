"""Aggregation recipes: stats, trends, rankings, search, snapshots."""

from ngfwstats.analytics.ranking import RankMeasure, Ranking, TopNRanker, TopSource
from ngfwstats.analytics.snapshots import SnapshotStore, snapshot_from_stats
from ngfwstats.analytics.stats import (
    FirewallStats,
    NetworkStats,
    StatsAggregator,
    ThreatStats,
)
from ngfwstats.analytics.trends import TrendBucket, TrendBuilder

__all__ = [
    "FirewallStats",
    "NetworkStats",
    "RankMeasure",
    "Ranking",
    "SnapshotStore",
    "StatsAggregator",
    "ThreatStats",
    "TopNRanker",
    "TopSource",
    "TrendBucket",
    "TrendBuilder",
    "snapshot_from_stats",
]
