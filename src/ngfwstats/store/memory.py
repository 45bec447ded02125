"""In-memory event store, the fake used by tests and local experiments."""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any

from ngfwstats.errors import StoreUnavailable
from ngfwstats.models import _new_id
from ngfwstats.store.base import SortSpec, Update, UpdateResult
from ngfwstats.store.filters import FilterExpr, field_value, match
from ngfwstats.store.pipeline import (
    KEY,
    Count,
    DayOf,
    Everything,
    Facet,
    Field,
    First,
    Group,
    GroupBy,
    Measure,
    Sum,
)

logger = logging.getLogger(__name__)


class InMemoryEventStore:
    """Dict-of-lists document store with the same semantics as the SQLite one.

    Documents are kept in insertion order, which is also the iteration order
    used for sort and ranking tie-breaks. Set ``available = False`` to make
    every call raise ``StoreUnavailable``.
    """

    def __init__(self) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self.available = True
        self.calls: list[tuple[str, str]] = []

    def _docs(self, operation: str, collection: str) -> list[dict[str, Any]]:
        self.calls.append((operation, collection))
        if not self.available:
            logger.warning("In-memory store offline (%s on %s)", operation, collection)
            raise StoreUnavailable(operation, collection, "store offline")
        return self._collections.setdefault(collection, [])

    async def find(
        self,
        collection: str,
        filter: FilterExpr | None = None,
        sort: SortSpec = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        docs = [d for d in self._docs("find", collection) if match(filter, d)]
        for path, descending in reversed(sort):
            docs.sort(key=lambda d: _sort_key(field_value(d, path)), reverse=descending)
        if limit is not None:
            docs = docs[: max(limit, 0)]
        return [copy.deepcopy(d) for d in docs]

    async def aggregate(
        self, collection: str, request: GroupBy | Facet
    ) -> list[Group] | dict[str, list[Group]]:
        docs = self._docs("aggregate", collection)
        if isinstance(request, Facet):
            return {name: _run_group_by(docs, g) for name, g in request.groupings.items()}
        return _run_group_by(docs, request)

    async def update_one(
        self, collection: str, filter: FilterExpr, update: Update
    ) -> UpdateResult:
        for doc in self._docs("update_one", collection):
            if match(filter, doc):
                return UpdateResult(1, int(_apply(doc, update)))
        return UpdateResult(0, 0)

    async def update_many(
        self, collection: str, filter: FilterExpr, update: Update
    ) -> UpdateResult:
        matched = modified = 0
        for doc in self._docs("update_many", collection):
            if match(filter, doc):
                matched += 1
                modified += int(_apply(doc, update))
        return UpdateResult(matched, modified)

    async def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        doc = copy.deepcopy(document)
        doc.setdefault("id", _new_id())
        self._docs("insert_one", collection).append(doc)
        return doc["id"]

    async def delete_many(self, collection: str, filter: FilterExpr | None) -> int:
        docs = self._docs("delete_many", collection)
        kept = [d for d in docs if not match(filter, d)]
        removed = len(docs) - len(kept)
        docs[:] = kept
        return removed


def _sort_key(value: Any) -> tuple[bool, Any]:
    # Nulls sort lowest
    return (value is not None, value if value is not None else 0)


def _apply(doc: dict[str, Any], update: Update) -> bool:
    """Apply a patch in place. Returns True if the document changed."""
    before = copy.deepcopy(doc)
    for path, value in update.set.items():
        _set_path(doc, path, value)
    for path, amount in update.inc.items():
        _set_path(doc, path, (field_value(doc, path) or 0) + amount)
    return doc != before


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _group_key(doc: dict[str, Any], key: Any) -> Any:
    if isinstance(key, Everything):
        return None
    if isinstance(key, Field):
        return field_value(doc, key.path)
    if isinstance(key, DayOf):
        ts = field_value(doc, key.path)
        if ts is None:
            return None
        return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")
    raise TypeError(f"Unknown group key: {key!r}")


def _measure(measure: Measure, members: list[dict[str, Any]]) -> Any:
    if isinstance(measure, Count):
        return sum(1 for d in members if match(measure.where, d))
    if isinstance(measure, Sum):
        total = 0
        for d in members:
            if match(measure.where, d):
                total += sum(field_value(d, f) or 0 for f in measure.fields)
        return total
    if isinstance(measure, First):
        return field_value(members[0], measure.path)
    raise TypeError(f"Unknown measure: {measure!r}")


def _run_group_by(docs: list[dict[str, Any]], request: GroupBy) -> list[Group]:
    buckets: dict[Any, list[dict[str, Any]]] = {}
    for doc in docs:
        if match(request.match, doc):
            buckets.setdefault(_group_key(doc, request.key), []).append(doc)

    groups = [
        Group(key, {m.name: _measure(m, members) for m in request.measures})
        for key, members in buckets.items()
    ]
    # Successive stable sorts: discovery order survives as the final tie-break
    for order in reversed(request.order):
        if order.name == KEY:
            groups.sort(key=lambda g: _sort_key(g.key), reverse=order.descending)
        else:
            groups.sort(key=lambda g, n=order.name: _sort_key(g[n]), reverse=order.descending)

    if request.limit is not None:
        groups = groups[: max(request.limit, 0)]
    return groups
