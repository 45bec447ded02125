"""Search/filter translator — free text plus typed predicates to a store filter."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from ngfwstats.errors import InvalidFilter
from ngfwstats.models import (
    AddressType,
    ConnectionStatus,
    Family,
    Protocol,
    RuleAction,
    Severity,
    ThreatAction,
    ThreatType,
)
from ngfwstats.store.base import RECORD_COLLECTIONS, EventStore
from ngfwstats.store.filters import (
    And,
    Contains,
    Eq,
    Exists,
    FilterExpr,
    In,
    Or,
    Range,
    all_of,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 1000

# Field kinds: an Enum subclass, or one of these markers
TEXT = "text"
NUMBER = "number"
BOOL = "bool"
TIME = "time"

FIELD_KINDS: dict[Family, dict[str, Any]] = {
    Family.FIREWALL: {
        "id": TEXT,
        "name": TEXT,
        "description": TEXT,
        "enabled": BOOL,
        "priority": NUMBER,
        "action": RuleAction,
        "source.type": AddressType,
        "source.value": TEXT,
        "destination.type": AddressType,
        "destination.value": TEXT,
        "service.protocol": TEXT,
        "service.ports": TEXT,
        "logging": BOOL,
        "hit_count": NUMBER,
        "last_hit": TIME,
        "created_by": TEXT,
        "created_at": TIME,
        "updated_at": TIME,
    },
    Family.NETWORK: {
        "id": TEXT,
        "timestamp": TIME,
        "source_ip": TEXT,
        "source_port": NUMBER,
        "destination_ip": TEXT,
        "destination_port": NUMBER,
        "protocol": Protocol,
        "application": TEXT,
        "user": TEXT,
        "bytes_in": NUMBER,
        "bytes_out": NUMBER,
        "duration": NUMBER,
        "status": ConnectionStatus,
        "country": TEXT,
        "session_id": TEXT,
    },
    Family.THREAT: {
        "id": TEXT,
        "timestamp": TIME,
        "type": ThreatType,
        "severity": Severity,
        "source": TEXT,
        "destination": TEXT,
        "description": TEXT,
        "signature": TEXT,
        "action": ThreatAction,
        "blocked": BOOL,
        "details.protocol": TEXT,
        "details.port": NUMBER,
        "details.size": NUMBER,
        "details.country": TEXT,
        "details.malware_family": TEXT,
        "details.cve_id": TEXT,
        "rule_id": TEXT,
        "user_id": TEXT,
        "resolved": BOOL,
        "resolved_by": TEXT,
        "resolved_at": TIME,
    },
}

# Fields searched by the free-text query, OR-ed together
TEXT_FIELDS: dict[Family, tuple[str, ...]] = {
    Family.FIREWALL: ("name", "description"),
    Family.NETWORK: ("source_ip", "destination_ip", "application", "user"),
    Family.THREAT: ("source", "destination", "description", "signature"),
}

# Default result order for searches: (field, descending)
DEFAULT_SORT: dict[Family, tuple[tuple[str, bool], ...]] = {
    Family.FIREWALL: (("priority", True), ("created_at", True)),
    Family.NETWORK: (("timestamp", True),),
    Family.THREAT: (("timestamp", True),),
}


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class OneOf:
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class NumberRange:
    """Inclusive numeric bounds; either side may be open."""

    field: str
    min: float | None = None
    max: float | None = None


@dataclass(frozen=True)
class DateRange:
    """Inclusive time bounds as POSIX seconds or aware datetimes."""

    field: str = "timestamp"
    start: float | datetime | None = None
    end: float | datetime | None = None


Predicate = Union[Equals, OneOf, NumberRange, DateRange]


def _kind(family: Family, field: str) -> Any:
    try:
        return FIELD_KINDS[family][field]
    except KeyError:
        raise InvalidFilter(f"Unknown {family.value} field: {field!r}") from None


def _scalar(family: Family, field: str, value: Any) -> Any:
    """Validate one equality operand and return its stored form."""
    kind = _kind(family, field)
    if isinstance(kind, type) and issubclass(kind, enum.Enum):
        if isinstance(value, kind):
            return value.value
        try:
            return kind(value).value
        except ValueError:
            allowed = ", ".join(m.value for m in kind)
            raise InvalidFilter(
                f"Invalid value {value!r} for {family.value}.{field} (expected one of: {allowed})"
            ) from None
    if kind == BOOL and not isinstance(value, bool):
        raise InvalidFilter(f"{family.value}.{field} expects a boolean, got {value!r}")
    if kind in (NUMBER, TIME) and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise InvalidFilter(f"{family.value}.{field} expects a number, got {value!r}")
    if kind == TEXT and not isinstance(value, str):
        raise InvalidFilter(f"{family.value}.{field} expects a string, got {value!r}")
    return value


def _bound(family: Family, field: str, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidFilter(f"Range bound for {family.value}.{field} must be numeric")
    return value


def _check_range_field(family: Family, field: str) -> None:
    if _kind(family, field) not in (NUMBER, TIME):
        raise InvalidFilter(f"{family.value}.{field} does not support range predicates")


def validate_filter(family: Family, expr: FilterExpr | None) -> FilterExpr | None:
    """Check every leaf against the family's fields and normalize enum operands.

    Raises ``InvalidFilter`` without touching the store.
    """
    if expr is None:
        return None
    if isinstance(expr, (And, Or)):
        return type(expr)(tuple(validate_filter(family, c) for c in expr.clauses))
    if isinstance(expr, Eq):
        return Eq(expr.field, _scalar(family, expr.field, expr.value))
    if isinstance(expr, In):
        return In(expr.field, tuple(_scalar(family, expr.field, v) for v in expr.values))
    if isinstance(expr, Range):
        _check_range_field(family, expr.field)
        return Range(
            expr.field,
            gte=_bound(family, expr.field, expr.gte),
            lte=_bound(family, expr.field, expr.lte),
            gt=_bound(family, expr.field, expr.gt),
            lt=_bound(family, expr.field, expr.lt),
        )
    if isinstance(expr, Exists):
        _kind(family, expr.field)
        return expr
    if isinstance(expr, Contains):
        if _kind(family, expr.field) != TEXT:
            raise InvalidFilter(f"{family.value}.{expr.field} is not a text field")
        return expr
    raise InvalidFilter(f"Unsupported filter expression: {expr!r}")


def _predicate_clause(family: Family, predicate: Predicate) -> FilterExpr:
    if isinstance(predicate, Equals):
        return Eq(predicate.field, _scalar(family, predicate.field, predicate.value))
    if isinstance(predicate, OneOf):
        return In(
            predicate.field,
            tuple(_scalar(family, predicate.field, v) for v in predicate.values),
        )
    if isinstance(predicate, NumberRange):
        _check_range_field(family, predicate.field)
        return Range(
            predicate.field,
            gte=_bound(family, predicate.field, predicate.min),
            lte=_bound(family, predicate.field, predicate.max),
        )
    if isinstance(predicate, DateRange):
        if _kind(family, predicate.field) != TIME:
            raise InvalidFilter(f"{family.value}.{predicate.field} is not a time field")
        return Range(
            predicate.field,
            gte=_bound(family, predicate.field, predicate.start),
            lte=_bound(family, predicate.field, predicate.end),
        )
    raise InvalidFilter(f"Unsupported predicate: {predicate!r}")


def translate_filter(
    family: Family,
    text: str = "",
    predicates: tuple[Predicate, ...] | list[Predicate] = (),
) -> FilterExpr | None:
    """Build the store filter for a search box plus typed predicates.

    Text becomes a case-insensitive substring OR across the family's text
    fields; predicates are AND-ed on top. Inverted ranges pass through and
    simply match nothing.
    """
    clauses = [_predicate_clause(family, p) for p in predicates]

    text = (text or "").strip()
    if text:
        text_clause = Or(tuple(Contains(f, text) for f in TEXT_FIELDS[family]))
        return all_of(text_clause, *clauses)
    return all_of(*clauses)


async def search(
    store: EventStore,
    family: Family,
    text: str = "",
    predicates: tuple[Predicate, ...] | list[Predicate] = (),
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Run a translated search with the family's default ordering."""
    expr = translate_filter(family, text, predicates)
    if limit is None and family is not Family.FIREWALL:
        limit = SEARCH_LIMIT
    logger.debug("search %s text=%r predicates=%d", family.value, text, len(predicates))
    return await store.find(
        RECORD_COLLECTIONS[family], expr, sort=DEFAULT_SORT[family], limit=limit
    )
