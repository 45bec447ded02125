"""Store-native filter expressions.

A filter is a small tree of frozen dataclasses. Adapters either evaluate it
directly (``match``) or compile it to their own query language.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

_MISSING = object()


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Range:
    """Bounded comparison. Unset bounds are not constrained.

    Bounds are never validated against each other: ``gte > lte`` simply
    matches nothing.
    """

    field: str
    gte: Any = None
    lte: Any = None
    gt: Any = None
    lt: Any = None


@dataclass(frozen=True)
class Exists:
    """Field is present and not null."""

    field: str


@dataclass(frozen=True)
class Contains:
    """Case-insensitive literal substring match on a text field."""

    field: str
    text: str


@dataclass(frozen=True)
class And:
    clauses: tuple[FilterExpr, ...]


@dataclass(frozen=True)
class Or:
    clauses: tuple[FilterExpr, ...]


FilterExpr = Union[Eq, In, Range, Exists, Contains, And, Or]


def all_of(*clauses: FilterExpr | None) -> FilterExpr | None:
    """AND together the non-empty clauses, flattening where possible."""
    kept = [c for c in clauses if c is not None]
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return And(tuple(kept))


def field_value(doc: dict[str, Any], path: str, default: Any = None) -> Any:
    """Resolve a dotted path (``details.country``) inside a document."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def match(expr: FilterExpr | None, doc: dict[str, Any]) -> bool:
    """Evaluate a filter against one document. ``None`` matches everything."""
    if expr is None:
        return True
    if isinstance(expr, And):
        return all(match(c, doc) for c in expr.clauses)
    if isinstance(expr, Or):
        return any(match(c, doc) for c in expr.clauses)

    value = field_value(doc, expr.field, _MISSING)

    if isinstance(expr, Exists):
        return value is not _MISSING and value is not None
    if value is _MISSING or value is None:
        return False
    if isinstance(expr, Eq):
        return value == expr.value
    if isinstance(expr, In):
        return value in expr.values
    if isinstance(expr, Contains):
        return expr.text.casefold() in str(value).casefold()
    if isinstance(expr, Range):
        try:
            if expr.gte is not None and not value >= expr.gte:
                return False
            if expr.lte is not None and not value <= expr.lte:
                return False
            if expr.gt is not None and not value > expr.gt:
                return False
            if expr.lt is not None and not value < expr.lt:
                return False
        except TypeError:
            return False
        return True
    raise TypeError(f"Unknown filter expression: {expr!r}")
