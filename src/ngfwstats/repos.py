"""Repository classes for record-level reads and the few mutating operations.

Every update or delete is one store call against one record or one explicit id set.
"Nothing matched" is reported as ``False`` / ``0``, never as an exception.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from ngfwstats.models import (
    ConnectionStatus,
    Family,
    FirewallRule,
    NetworkConnection,
    Severity,
    ThreatEvent,
    TrafficSample,
    _new_id,
)
from ngfwstats.store.base import RECORD_COLLECTIONS, TRAFFIC_COLLECTION, EventStore, Update
from ngfwstats.store.filters import And, Eq, FilterExpr, In, Range, all_of

logger = logging.getLogger(__name__)

_DAY = 86400

_SEVERITY_RANK = {severity: rank for rank, severity in enumerate(Severity)}


class FirewallRuleRepo:
    """CRUD and hit accounting for firewall rules."""

    def __init__(self, store: EventStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._collection = RECORD_COLLECTIONS[Family.FIREWALL]

    async def create(self, rule: FirewallRule) -> FirewallRule:
        now = self._clock()
        rule.hit_count = 0
        rule.created_at = now
        rule.updated_at = now
        await self._store.insert_one(self._collection, rule.to_document())
        return rule

    async def get(self, rule_id: str) -> FirewallRule | None:
        docs = await self._store.find(self._collection, Eq("id", rule_id), limit=1)
        return FirewallRule.from_document(docs[0]) if docs else None

    async def list_all(self, filter: FilterExpr | None = None) -> list[FirewallRule]:
        """Rules in evaluation order: priority desc, newest first on ties."""
        docs = await self._store.find(
            self._collection, filter, sort=(("priority", True), ("created_at", True))
        )
        return [FirewallRule.from_document(d) for d in docs]

    async def increment_hit_count(self, rule_id: str) -> bool:
        result = await self._store.update_one(
            self._collection,
            Eq("id", rule_id),
            Update(set={"last_hit": self._clock()}, inc={"hit_count": 1}),
        )
        return result.modified_count > 0

    async def bulk_update(self, rule_ids: Iterable[str], changes: dict[str, Any]) -> int:
        """Apply the same field changes to every listed rule. Hit counts are off limits."""
        if "hit_count" in changes:
            raise ValueError("hit_count can only change through increment_hit_count")
        result = await self._store.update_many(
            self._collection,
            In("id", tuple(rule_ids)),
            Update(set={**changes, "updated_at": self._clock()}),
        )
        return result.modified_count

    async def bulk_delete(self, rule_ids: Iterable[str]) -> int:
        return await self._store.delete_many(self._collection, In("id", tuple(rule_ids)))

    async def top_hit_rules(self, limit: int = 10) -> list[FirewallRule]:
        docs = await self._store.find(
            self._collection,
            Range("hit_count", gt=0),
            sort=(("hit_count", True),),
            limit=max(limit, 0),
        )
        return [FirewallRule.from_document(d) for d in docs]

    async def next_priority(self) -> int:
        docs = await self._store.find(
            self._collection, sort=(("priority", True),), limit=1
        )
        highest = docs[0].get("priority", 0) if docs else 0
        return (highest or 0) + 10

    async def find_conflicts(self, rule: FirewallRule) -> list[FirewallRule]:
        """Enabled rules matching the same source, destination and service."""
        docs = await self._store.find(
            self._collection,
            And(
                (
                    Eq("enabled", True),
                    Eq("source.value", rule.source.value),
                    Eq("destination.value", rule.destination.value),
                    Eq("service.protocol", rule.service.protocol),
                    Eq("service.ports", rule.service.ports),
                )
            ),
        )
        return [FirewallRule.from_document(d) for d in docs if d["id"] != rule.id]

    async def export(self) -> list[FirewallRule]:
        """Every rule in evaluation order."""
        return await self.list_all()

    async def import_rules(self, rules: Iterable[FirewallRule]) -> int:
        """Insert copies of ``rules`` as new rules with fresh ids and zeroed hit counts."""
        now = self._clock()
        imported = 0
        for rule in rules:
            fresh = dataclasses.replace(
                rule, id=_new_id(), hit_count=0, last_hit=None, created_at=now, updated_at=now
            )
            await self._store.insert_one(self._collection, fresh.to_document())
            imported += 1
        logger.info("Imported %d firewall rule(s)", imported)
        return imported


class ConnectionRepo:
    """Network connections keyed by session id."""

    def __init__(self, store: EventStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._collection = RECORD_COLLECTIONS[Family.NETWORK]

    async def record(self, connection: NetworkConnection) -> NetworkConnection:
        await self._store.insert_one(self._collection, connection.to_document())
        return connection

    async def active(self) -> list[NetworkConnection]:
        docs = await self._store.find(
            self._collection,
            Eq("status", ConnectionStatus.ACTIVE.value),
            sort=(("timestamp", True),),
        )
        return [NetworkConnection.from_document(d) for d in docs]

    async def update_status(
        self,
        session_id: str,
        status: ConnectionStatus,
        bytes_in: int | None = None,
        bytes_out: int | None = None,
    ) -> bool:
        """Move an active connection to ``status``, optionally raising its byte counters.

        Only active connections change, and counters never go down: the
        guards are part of the update's filter so the check and the write
        are one atomic store operation. Returns ``True`` when an active
        connection accepted the update, including a refresh that changes
        nothing; ``False`` means no active connection passed the guards.
        """
        changes: dict[str, Any] = {"status": status.value}
        guards: list[FilterExpr] = [
            Eq("session_id", session_id),
            Eq("status", ConnectionStatus.ACTIVE.value),
        ]
        if bytes_in is not None:
            changes["bytes_in"] = bytes_in
            guards.append(Range("bytes_in", lte=bytes_in))
        if bytes_out is not None:
            changes["bytes_out"] = bytes_out
            guards.append(Range("bytes_out", lte=bytes_out))

        result = await self._store.update_one(
            self._collection, And(tuple(guards)), Update(set=changes)
        )
        if not result.matched_count:
            logger.debug("No active connection %s to update", session_id)
        return result.matched_count > 0

    async def close(self, session_id: str) -> bool:
        return await self.update_status(session_id, ConnectionStatus.CLOSED)

    async def cleanup(self, days_to_keep: int = 30) -> int:
        cutoff = self._clock() - days_to_keep * _DAY
        removed = await self._store.delete_many(self._collection, Range("timestamp", lt=cutoff))
        logger.info("Removed %d connection(s) older than %d days", removed, days_to_keep)
        return removed


class ThreatRepo:
    """Threat events and their resolution."""

    def __init__(self, store: EventStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._collection = RECORD_COLLECTIONS[Family.THREAT]

    async def record(self, event: ThreatEvent) -> ThreatEvent:
        await self._store.insert_one(self._collection, event.to_document())
        return event

    async def get(self, event_id: str) -> ThreatEvent | None:
        docs = await self._store.find(self._collection, Eq("id", event_id), limit=1)
        return ThreatEvent.from_document(docs[0]) if docs else None

    async def recent(self, hours: float = 24) -> list[ThreatEvent]:
        since = self._clock() - hours * 3600
        docs = await self._store.find(
            self._collection, Range("timestamp", gte=since), sort=(("timestamp", True),)
        )
        return [ThreatEvent.from_document(d) for d in docs]

    async def critical(self) -> list[ThreatEvent]:
        """Unresolved critical threats, newest first."""
        docs = await self._store.find(
            self._collection,
            And((Eq("severity", Severity.CRITICAL.value), Eq("resolved", False))),
            sort=(("timestamp", True),),
        )
        return [ThreatEvent.from_document(d) for d in docs]

    async def unresolved(self) -> list[ThreatEvent]:
        """Open threats, most severe first and newest first within a severity."""
        docs = await self._store.find(
            self._collection, Eq("resolved", False), sort=(("timestamp", True),)
        )
        events = [ThreatEvent.from_document(d) for d in docs]
        events.sort(key=lambda e: _SEVERITY_RANK[e.severity])
        return events

    def _resolution(self, resolved_by: str, notes: str | None = None) -> Update:
        changes: dict[str, Any] = {
            "resolved": True,
            "resolved_by": resolved_by,
            "resolved_at": self._clock(),
        }
        if notes:
            changes["notes"] = notes
        return Update(set=changes)

    async def resolve(self, event_id: str, resolved_by: str, notes: str | None = None) -> bool:
        """Mark one threat resolved. Already-resolved threats are left untouched."""
        result = await self._store.update_one(
            self._collection,
            And((Eq("id", event_id), Eq("resolved", False))),
            self._resolution(resolved_by, notes),
        )
        return result.modified_count > 0

    async def bulk_resolve(self, event_ids: Iterable[str], resolved_by: str) -> int:
        """Resolve every listed threat; unknown or already-resolved ids are skipped."""
        result = await self._store.update_many(
            self._collection,
            And((In("id", tuple(event_ids)), Eq("resolved", False))),
            self._resolution(resolved_by),
        )
        return result.modified_count

    async def cleanup(self, days_to_keep: int = 90) -> int:
        """Delete resolved threats older than the cutoff. Unresolved ones are kept."""
        cutoff = self._clock() - days_to_keep * _DAY
        removed = await self._store.delete_many(
            self._collection,
            And((Range("timestamp", lt=cutoff), Eq("resolved", True))),
        )
        logger.info("Removed %d resolved threat(s) older than %d days", removed, days_to_keep)
        return removed

    async def export(
        self,
        start: float | None = None,
        end: float | None = None,
        severities: Iterable[Severity] = (),
        resolved: bool | None = None,
    ) -> list[ThreatEvent]:
        clauses: list[FilterExpr | None] = []
        if start is not None or end is not None:
            clauses.append(Range("timestamp", gte=start, lte=end))
        wanted = tuple(s.value for s in severities)
        if wanted:
            clauses.append(In("severity", wanted))
        if resolved is not None:
            clauses.append(Eq("resolved", resolved))
        docs = await self._store.find(
            self._collection, all_of(*clauses), sort=(("timestamp", True),)
        )
        return [ThreatEvent.from_document(d) for d in docs]


class TrafficRepo:
    """Per-interface traffic samples, kept as a time series."""

    def __init__(self, store: EventStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def record(self, sample: TrafficSample) -> TrafficSample:
        await self._store.insert_one(TRAFFIC_COLLECTION, sample.to_document())
        return sample

    async def history(
        self, hours: float = 24, interface: str | None = None
    ) -> list[TrafficSample]:
        """Samples from the last ``hours``, oldest first."""
        since = self._clock() - hours * 3600
        interface_clause = Eq("interface", interface) if interface else None
        docs = await self._store.find(
            TRAFFIC_COLLECTION,
            all_of(Range("timestamp", gte=since), interface_clause),
            sort=(("timestamp", False),),
        )
        return [TrafficSample.from_document(d) for d in docs]

    async def latest(self, interface: str | None = None) -> TrafficSample | None:
        docs = await self._store.find(
            TRAFFIC_COLLECTION,
            Eq("interface", interface) if interface else None,
            sort=(("timestamp", True),),
            limit=1,
        )
        return TrafficSample.from_document(docs[0]) if docs else None

    async def cleanup(self, days_to_keep: int = 7) -> int:
        cutoff = self._clock() - days_to_keep * _DAY
        removed = await self._store.delete_many(TRAFFIC_COLLECTION, Range("timestamp", lt=cutoff))
        logger.info("Removed %d traffic sample(s) older than %d days", removed, days_to_keep)
        return removed
