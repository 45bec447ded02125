"""Stats snapshot store — timestamped, immutable copies of aggregator output."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable

from ngfwstats.analytics.stats import LabelCount, Share, Stats
from ngfwstats.models import Family, StatsSnapshot
from ngfwstats.store.base import SNAPSHOT_COLLECTIONS, EventStore
from ngfwstats.store.filters import Range

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_HOURS = 24
DEFAULT_RETENTION_DAYS = 30

# Breakdown list → counter name prefix
_BREAKDOWN_PREFIXES = {
    "by_protocol": "protocol",
    "by_application": "application",
    "by_type": "type",
}


def snapshot_from_stats(
    family: Family, stats: Stats, timestamp: float | None = None
) -> StatsSnapshot:
    """Flatten a stats structure into a snapshot's counters.

    Scalar counters are copied as-is; protocol/application/type breakdowns
    become ``<prefix>_<label>`` counters.
    """
    counters: dict[str, int | float] = {}
    for f in dataclasses.fields(stats):
        value = getattr(stats, f.name)
        if isinstance(value, (int, float)):
            counters[f.name] = value
        elif f.name in _BREAKDOWN_PREFIXES:
            prefix = _BREAKDOWN_PREFIXES[f.name]
            for item in value:
                if isinstance(item, (LabelCount, Share)) and item.label is not None:
                    counters[f"{prefix}_{item.label}"] = item.count
    if timestamp is None:
        return StatsSnapshot(family=family, counters=counters)
    return StatsSnapshot(family=family, counters=counters, timestamp=timestamp)


class SnapshotStore:
    """Append-only history of stats snapshots, one collection per family."""

    def __init__(self, store: EventStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def save(self, snapshot: StatsSnapshot) -> StatsSnapshot:
        await self._store.insert_one(
            SNAPSHOT_COLLECTIONS[snapshot.family], snapshot.to_document()
        )
        logger.debug("Saved %s snapshot %s", snapshot.family.value, snapshot.id)
        return snapshot

    async def latest(self, family: Family) -> StatsSnapshot | None:
        docs = await self._store.find(
            SNAPSHOT_COLLECTIONS[family], sort=(("timestamp", True),), limit=1
        )
        return StatsSnapshot.from_document(docs[0]) if docs else None

    async def history(
        self, family: Family, hours: float = DEFAULT_HISTORY_HOURS
    ) -> list[StatsSnapshot]:
        since = self._clock() - hours * 3600
        docs = await self._store.find(
            SNAPSHOT_COLLECTIONS[family],
            Range("timestamp", gte=since),
            sort=(("timestamp", False),),
        )
        return [StatsSnapshot.from_document(d) for d in docs]

    async def prune(self, family: Family, days_to_keep: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete snapshots older than the retention window. Returns the count removed."""
        cutoff = self._clock() - days_to_keep * 86400
        removed = await self._store.delete_many(
            SNAPSHOT_COLLECTIONS[family], Range("timestamp", lt=cutoff)
        )
        logger.info(
            "Pruned %d %s snapshot(s) older than %d days",
            removed,
            family.value,
            days_to_keep,
        )
        return removed
