"""Top-N ranker — group by a dimension, rank by a measure, keep the first N.

Ties keep store iteration order: the group whose first record the store
yields earliest takes the higher rank. Callers and tests may rely on this.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from ngfwstats.analytics.search import validate_filter
from ngfwstats.errors import InvalidDimension, InvalidMeasure
from ngfwstats.models import ConnectionStatus, Family
from ngfwstats.store.base import RECORD_COLLECTIONS, EventStore
from ngfwstats.store.filters import Eq, Exists, FilterExpr, all_of
from ngfwstats.store.pipeline import (
    Count,
    Field,
    First,
    GroupBy,
    Measure,
    OrderBy,
    Sum,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


class RankMeasure(enum.Enum):
    """What is summed per group."""

    COUNT = "count"
    BYTES = "bytes"
    HITS = "hits"
    BLOCKED = "blocked"


# Dimension name → document field
DIMENSIONS: dict[Family, dict[str, str]] = {
    Family.FIREWALL: {
        "name": "name",
        "action": "action",
        "created_by": "created_by",
        "protocol": "service.protocol",
    },
    Family.NETWORK: {
        "source_ip": "source_ip",
        "destination_ip": "destination_ip",
        "user": "user",
        "application": "application",
        "protocol": "protocol",
        "country": "country",
    },
    Family.THREAT: {
        "source_ip": "source",
        "destination": "destination",
        "user": "user_id",
        "type": "type",
        "signature": "signature",
        "country": "details.country",
    },
}

MEASURES: dict[Family, dict[RankMeasure, Measure]] = {
    Family.FIREWALL: {
        RankMeasure.COUNT: Count("value"),
        RankMeasure.HITS: Sum("value", ("hit_count",)),
    },
    Family.NETWORK: {
        RankMeasure.COUNT: Count("value"),
        RankMeasure.BYTES: Sum("value", ("bytes_in", "bytes_out")),
        RankMeasure.BLOCKED: Count("value", Eq("status", ConnectionStatus.BLOCKED.value)),
    },
    Family.THREAT: {
        RankMeasure.COUNT: Count("value"),
        RankMeasure.BLOCKED: Count("value", Eq("blocked", True)),
    },
}


@dataclass(frozen=True)
class Ranking:
    """One ranked group: its key, its measure, and how many records it holds."""

    key: str
    value: int | float
    count: int


@dataclass(frozen=True)
class TopSource:
    ip: str
    country: str | None
    threats: int
    blocked: int


def top_sources_grouping(limit: int = DEFAULT_LIMIT, match: FilterExpr | None = None) -> GroupBy:
    """Threat sources ranked by event count, with blocked count and a country."""
    return GroupBy(
        key=Field("source"),
        measures=(
            Count("threats"),
            Count("blocked", Eq("blocked", True)),
            First("country", "details.country"),
        ),
        match=match,
        order=(OrderBy("threats", descending=True),),
        limit=max(limit, 0),
    )


def to_top_sources(groups: list) -> list[TopSource]:
    return [TopSource(g.key, g["country"], g["threats"], g["blocked"]) for g in groups]


def _resolve(family: Family, dimension: str, measure: RankMeasure | str) -> tuple[str, Measure]:
    try:
        path = DIMENSIONS[family][dimension]
    except KeyError:
        allowed = ", ".join(DIMENSIONS[family])
        raise InvalidDimension(
            f"Unknown {family.value} dimension {dimension!r} (expected one of: {allowed})"
        ) from None
    try:
        return path, MEASURES[family][RankMeasure(measure)]
    except (KeyError, ValueError):
        allowed = ", ".join(m.value for m in MEASURES[family])
        raise InvalidMeasure(
            f"Unknown {family.value} measure {measure!r} (expected one of: {allowed})"
        ) from None


class TopNRanker:
    """Ranks groups of one record family. Holds no state beyond the store."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    async def top_n(
        self,
        family: Family,
        dimension: str,
        measure: RankMeasure | str = RankMeasure.COUNT,
        n: int = DEFAULT_LIMIT,
        filter: FilterExpr | None = None,
    ) -> list[Ranking]:
        """Return up to ``n`` groups by descending measure.

        Records without the dimension are skipped. A negative ``n`` yields
        an empty list.
        """
        path, measure_spec = _resolve(family, dimension, measure)
        filter = validate_filter(family, filter)
        if n <= 0:
            return []

        request = GroupBy(
            key=Field(path),
            measures=(measure_spec, Count("count")),
            match=all_of(Exists(path), filter),
            order=(OrderBy("value", descending=True),),
            limit=n,
        )
        logger.debug("top_n %s by %s/%s limit=%d", family.value, dimension, measure, n)
        groups = await self._store.aggregate(RECORD_COLLECTIONS[family], request)
        return [Ranking(str(g.key), g["value"], g["count"]) for g in groups]

    async def top_sources(
        self, limit: int = DEFAULT_LIMIT, filter: FilterExpr | None = None
    ) -> list[TopSource]:
        """Threat sources with the most events."""
        filter = validate_filter(Family.THREAT, filter)
        if limit <= 0:
            return []
        groups = await self._store.aggregate(
            RECORD_COLLECTIONS[Family.THREAT], top_sources_grouping(limit, filter)
        )
        return to_top_sources(groups)

    async def top_users(self, limit: int = DEFAULT_LIMIT) -> list[Ranking]:
        """Connection users by total bandwidth (bytes in + out)."""
        return await self.top_n(Family.NETWORK, "user", RankMeasure.BYTES, limit)

    async def bandwidth_by_application(self, limit: int = DEFAULT_LIMIT) -> list[Ranking]:
        return await self.top_n(Family.NETWORK, "application", RankMeasure.BYTES, limit)
