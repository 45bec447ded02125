"""Tests for the search/filter translator."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import NOW, seed
from ngfwstats.analytics.search import (
    DateRange,
    Equals,
    NumberRange,
    OneOf,
    search,
    translate_filter,
    validate_filter,
)
from ngfwstats.errors import InvalidFilter
from ngfwstats.models import Family, Severity, ThreatEvent, ThreatType
from ngfwstats.store.filters import And, Contains, Eq, In, Or, Range


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def test_empty_query_and_no_predicates_is_none():
    assert translate_filter(Family.THREAT) is None
    assert translate_filter(Family.THREAT, "   ") is None


def test_text_becomes_or_over_family_fields():
    expr = translate_filter(Family.THREAT, "trojan")
    assert expr == Or((
        Contains("source", "trojan"),
        Contains("destination", "trojan"),
        Contains("description", "trojan"),
        Contains("signature", "trojan"),
    ))


def test_network_text_fields():
    expr = translate_filter(Family.NETWORK, "10.0")
    assert {c.field for c in expr.clauses} == {
        "source_ip", "destination_ip", "application", "user"
    }


def test_predicates_and_with_text():
    expr = translate_filter(
        Family.THREAT,
        "scan",
        [Equals("severity", Severity.HIGH), Equals("resolved", False)],
    )
    assert isinstance(expr, And)
    assert isinstance(expr.clauses[0], Or)
    assert expr.clauses[1] == Eq("severity", "high")
    assert expr.clauses[2] == Eq("resolved", False)


def test_enum_strings_are_accepted():
    expr = translate_filter(Family.THREAT, predicates=[OneOf("type", ("malware", ThreatType.SPAM))])
    assert expr == In("type", ("malware", "spam"))


def test_unknown_enum_value_fails_fast():
    with pytest.raises(InvalidFilter, match="severe"):
        translate_filter(Family.THREAT, predicates=[Equals("severity", "severe")])


def test_unknown_field_fails_fast():
    with pytest.raises(InvalidFilter):
        translate_filter(Family.NETWORK, predicates=[Equals("colour", "red")])


def test_one_sided_number_range():
    expr = translate_filter(Family.FIREWALL, predicates=[NumberRange("priority", min=50)])
    assert expr == Range("priority", gte=50)


def test_inverted_range_passes_through():
    expr = translate_filter(
        Family.FIREWALL, predicates=[NumberRange("priority", min=100, max=10)]
    )
    assert expr == Range("priority", gte=100, lte=10)


def test_date_range_accepts_datetimes():
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    expr = translate_filter(Family.THREAT, predicates=[DateRange(start=start)])
    assert expr == Range("timestamp", gte=start.timestamp(), lte=None)


def test_range_on_enum_field_is_invalid():
    with pytest.raises(InvalidFilter):
        translate_filter(Family.THREAT, predicates=[NumberRange("severity", min=1)])


def test_boolean_field_rejects_strings():
    with pytest.raises(InvalidFilter):
        translate_filter(Family.THREAT, predicates=[Equals("blocked", "yes")])


def test_validate_filter_normalizes_nested_enums():
    expr = validate_filter(
        Family.THREAT, And((Eq("severity", Severity.LOW), Or((Eq("type", "spam"),))))
    )
    assert expr == And((Eq("severity", "low"), Or((Eq("type", "spam"),))))


def test_search_runs_against_store(store, ten_threats):
    seed(store, ten_threats)
    docs = run_async(search(store, Family.THREAT, "sig-1", [Equals("blocked", True)]))
    assert [d["signature"] for d in docs] == ["SIG-1"]


def test_search_newest_first(store, ten_threats):
    seed(store, reversed(ten_threats))
    docs = run_async(search(store, Family.THREAT))
    timestamps = [d["timestamp"] for d in docs]
    assert timestamps == sorted(timestamps, reverse=True)
    assert timestamps[0] == NOW


def test_inverted_range_yields_nothing(store, ten_threats):
    seed(store, ten_threats)
    docs = run_async(search(
        store, Family.THREAT, predicates=[DateRange(start=NOW, end=NOW - 3600)]
    ))
    assert docs == []


def test_free_text_folds_non_ascii_case(store, now):
    seed(store, [
        ThreatEvent(type=ThreatType.SPAM, severity=Severity.LOW, source="198.51.100.9",
                    description="Ärger Über Straße", timestamp=now - i)
        for i in range(3)
    ])
    for text in ("ärger", "ÜBER", "STRASSE"):
        assert len(run_async(search(store, Family.THREAT, text))) == 3
    assert run_async(search(store, Family.THREAT, "ärgerlich")) == []
