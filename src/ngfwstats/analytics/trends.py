"""Per-day trend buckets over a lookback window."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from ngfwstats.models import ConnectionStatus, Family, RuleAction, Severity
from ngfwstats.store.base import RECORD_COLLECTIONS, EventStore
from ngfwstats.store.filters import Eq, In, Range
from ngfwstats.store.pipeline import KEY, Count, DayOf, GroupBy, Measure, OrderBy, Sum

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 7

# Field each family is bucketed on
TIME_FIELDS = {
    Family.FIREWALL: "created_at",
    Family.NETWORK: "timestamp",
    Family.THREAT: "timestamp",
}

BUCKET_MEASURES: dict[Family, tuple[Measure, ...]] = {
    Family.FIREWALL: (
        Count("total"),
        Count("enabled", Eq("enabled", True)),
        Count("disabled", Eq("enabled", False)),
        Count("allow_rules", Eq("action", RuleAction.ALLOW.value)),
        Count("deny_rules", In("action", (RuleAction.DENY.value, RuleAction.DROP.value))),
        Sum("total_hits", ("hit_count",)),
    ),
    Family.NETWORK: (
        Count("total"),
        *(Count(s.value, Eq("status", s.value)) for s in ConnectionStatus),
        Sum("bytes_in", ("bytes_in",)),
        Sum("bytes_out", ("bytes_out",)),
    ),
    Family.THREAT: (
        Count("total"),
        Count("blocked", Eq("blocked", True)),
        *(Count(s.value, Eq("severity", s.value)) for s in Severity),
    ),
}


@dataclass(frozen=True)
class TrendBucket:
    """Counters for one UTC calendar day (``YYYY-MM-DD``)."""

    date: str
    counters: dict[str, int] = field(default_factory=dict)

    def __getitem__(self, name: str) -> int:
        return self.counters[name]


def window_start(now: float, days: int) -> datetime:
    """Midnight UTC of the day ``days`` days before ``now``."""
    moment = datetime.fromtimestamp(now, tz=timezone.utc) - timedelta(days=days)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def densify(buckets: list[TrendBucket], start: date, days: int) -> list[TrendBucket]:
    """Fill missing days with zero buckets for callers wanting a continuous axis."""
    by_day = {b.date: b for b in buckets}
    names = next(iter(by_day.values())).counters.keys() if by_day else ()
    dense = []
    for offset in range(days + 1):
        day = (start + timedelta(days=offset)).isoformat()
        dense.append(by_day.get(day) or TrendBucket(day, {n: 0 for n in names}))
    return dense


class TrendBuilder:
    """Buckets records per day, oldest first.

    Days without records are left out; densifying is up to the caller.
    """

    def __init__(self, store: EventStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def build(self, family: Family, days: int = DEFAULT_DAYS) -> list[TrendBucket]:
        if days <= 0:
            return []

        start = window_start(self._clock(), days)
        time_field = TIME_FIELDS[family]
        request = GroupBy(
            key=DayOf(time_field),
            measures=BUCKET_MEASURES[family],
            match=Range(time_field, gte=start.timestamp()),
            order=(OrderBy(KEY),),
        )
        logger.debug("trend %s since %s", family.value, start.isoformat())
        groups = await self._store.aggregate(RECORD_COLLECTIONS[family], request)
        return [TrendBucket(g.key, dict(g.values)) for g in groups]
