"""The event store protocol the analytics components talk to."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ngfwstats.models import Family
from ngfwstats.store.filters import FilterExpr
from ngfwstats.store.pipeline import Facet, Group, GroupBy

# Family → collection holding its raw records
RECORD_COLLECTIONS = {
    Family.FIREWALL: "firewall_rules",
    Family.NETWORK: "network_connections",
    Family.THREAT: "threat_events",
}

# Family → collection holding its statistics snapshots
SNAPSHOT_COLLECTIONS = {
    Family.FIREWALL: "firewall_stats",
    Family.NETWORK: "network_stats",
    Family.THREAT: "threat_stats",
}

# Per-interface traffic samples
TRAFFIC_COLLECTION = "network_traffic"

# (field, descending)
SortSpec = tuple[tuple[str, bool], ...]


@dataclass(frozen=True)
class Update:
    """A patch: ``set`` assigns values, ``inc`` atomically adds to numbers."""

    set: dict[str, Any] = field(default_factory=dict)
    inc: dict[str, int | float] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateResult:
    matched_count: int
    modified_count: int


class EventStore(Protocol):
    """Queryable, append-mostly document store.

    Every method may raise ``StoreUnavailable`` when the backend cannot be
    reached or does not answer within its timeout.
    """

    async def find(
        self,
        collection: str,
        filter: FilterExpr | None = None,
        sort: SortSpec = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return matching documents; ties in ``sort`` keep insertion order."""
        ...

    async def aggregate(
        self, collection: str, request: GroupBy | Facet
    ) -> list[Group] | dict[str, list[Group]]:
        """Run a grouping store-side.

        A ``GroupBy`` yields a list of groups, a ``Facet`` yields one list
        per facet name.
        """
        ...

    async def update_one(
        self, collection: str, filter: FilterExpr, update: Update
    ) -> UpdateResult: ...

    async def update_many(
        self, collection: str, filter: FilterExpr, update: Update
    ) -> UpdateResult: ...

    async def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        """Append a document and return its id."""
        ...

    async def delete_many(self, collection: str, filter: FilterExpr | None) -> int:
        """Delete matching documents and return how many were removed."""
        ...
