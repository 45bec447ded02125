"""Aggregation requests as tagged variants: ``GroupBy{key} -> {Count | Sum}``.

The analytics components only ever build these objects; each store adapter
decides how to execute them (SQL ``GROUP BY``, in-memory dict, ...).

Result order contract: groups come back sorted by ``GroupBy.order`` and any
remaining ties keep the order in which the store first encountered each
group while iterating its records (insertion order).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from ngfwstats.store.filters import FilterExpr

KEY = "_key"


@dataclass(frozen=True)
class Everything:
    """A single group holding every matched record."""


@dataclass(frozen=True)
class Field:
    """Group by exact value of a (dotted) field."""

    path: str


@dataclass(frozen=True)
class DayOf:
    """Group by the UTC calendar day (``YYYY-MM-DD``) of a timestamp field."""

    path: str


GroupKey = Union[Everything, Field, DayOf]


@dataclass(frozen=True)
class Count:
    """Number of records in the group, optionally only those matching ``where``."""

    name: str
    where: FilterExpr | None = None


@dataclass(frozen=True)
class Sum:
    """Sum of one or more numeric fields; missing values count as zero."""

    name: str
    fields: tuple[str, ...]
    where: FilterExpr | None = None


@dataclass(frozen=True)
class First:
    """Value of ``path`` on the first record seen in the group."""

    name: str
    path: str


Measure = Union[Count, Sum, First]


@dataclass(frozen=True)
class OrderBy:
    """Sort on a measure name, or on ``KEY`` for the group key."""

    name: str
    descending: bool = False


@dataclass(frozen=True)
class GroupBy:
    key: GroupKey
    measures: tuple[Measure, ...]
    match: FilterExpr | None = None
    order: tuple[OrderBy, ...] = ()
    limit: int | None = None


@dataclass(frozen=True)
class Facet:
    """Several named groupings answered in one request."""

    groupings: dict[str, GroupBy] = field(default_factory=dict)


@dataclass(frozen=True)
class Group:
    """One row of an aggregation result."""

    key: Any
    values: dict[str, Any]

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


def counts_by_key(groups: list[Group], measure: str = "count") -> dict[Any, int]:
    """Collapse a grouping into ``{key: measure}`` preserving result order."""
    return {g.key: g[measure] for g in groups}
