"""Tests for the SQLite event store against the in-memory semantics."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest

from ngfwstats.errors import StoreUnavailable
from ngfwstats.store.base import Update
from ngfwstats.store.db import SCHEMA_SQL, SCHEMA_VERSION, casefold
from ngfwstats.store.filters import And, Contains, Eq, Exists, In, Or, Range
from ngfwstats.store.pipeline import (
    KEY,
    Count,
    DayOf,
    Everything,
    Facet,
    Field,
    First,
    GroupBy,
    OrderBy,
    Sum,
)
from ngfwstats.store.sqlite import SQLiteEventStore, compile_filter


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


def with_store(db_path: Path, scenario):
    """Open a store, run ``scenario(store)`` and close it on one event loop."""

    async def _go():
        store = await SQLiteEventStore.open(db_path)
        try:
            return await scenario(store)
        finally:
            await store.close()

    return run_async(_go())


async def _insert(store, docs, collection="items"):
    for doc in docs:
        await store.insert_one(collection, doc)


class TestCompileFilter:
    def test_none_is_true(self):
        assert compile_filter(None) == ("1", [])

    def test_booleans_bind_as_integers(self):
        sql, params = compile_filter(Eq("blocked", True))
        assert "json_extract(body, '$.blocked')" in sql
        assert params == [1]

    def test_empty_in_matches_nothing(self):
        assert compile_filter(In("id", ())) == ("0", [])

    def test_contains_casefolds_needle(self):
        sql, params = compile_filter(Contains("source", "ÄBC"))
        assert sql.startswith("instr(casefold(")
        assert params == ["äbc"]

    def test_casefold_passes_non_text_through(self):
        assert casefold("STRASSE Über") == "strasse über"
        assert casefold(42) == 42
        assert casefold(None) is None

    def test_rejects_injected_paths(self):
        with pytest.raises(ValueError):
            compile_filter(Eq("a') OR 1=1 --", 1))

    def test_nested_clauses(self):
        sql, params = compile_filter(
            And((Eq("a", 1), Or((Eq("b", 2), Range("c", gte=3, lte=4)))))
        )
        assert " AND " in sql and " OR " in sql
        assert params == [1, 2, 3, 4]


class TestFind:
    def test_round_trip_and_sort(self, db_path):
        async def scenario(store):
            await _insert(store, [
                {"id": "a", "priority": 10, "nested": {"x": 1}},
                {"id": "b", "priority": 20},
                {"id": "c", "priority": 10},
            ])
            return await store.find("items", sort=(("priority", True),))

        docs = with_store(db_path, scenario)
        assert [d["id"] for d in docs] == ["b", "a", "c"]
        assert docs[1]["nested"] == {"x": 1}

    def test_collections_are_isolated(self, db_path):
        async def scenario(store):
            await _insert(store, [{"id": "a"}], collection="one")
            await _insert(store, [{"id": "a"}], collection="two")
            return await store.find("one")

        assert len(with_store(db_path, scenario)) == 1

    def test_filters(self, db_path):
        async def scenario(store):
            await _insert(store, [
                {"id": "1", "source": "Evil.example", "n": 5, "flag": True},
                {"id": "2", "source": "good.example", "n": 15, "flag": False},
                {"id": "3", "source": "other", "n": None},
            ])
            return (
                await store.find("items", Contains("source", "EVIL")),
                await store.find("items", Range("n", gte=10)),
                await store.find("items", Eq("flag", False)),
                await store.find("items", Exists("n")),
                await store.find("items", Range("n", gte=20, lte=1)),
            )

        evil, big, unflagged, has_n, inverted = with_store(db_path, scenario)
        assert [d["id"] for d in evil] == ["1"]
        assert [d["id"] for d in big] == ["2"]
        assert [d["id"] for d in unflagged] == ["2"]
        assert [d["id"] for d in has_n] == ["1", "2"]
        assert inverted == []

    def test_booleans_survive_storage(self, db_path):
        async def scenario(store):
            await _insert(store, [{"id": "a", "flag": True}])
            return await store.find("items")

        assert with_store(db_path, scenario)[0]["flag"] is True


class TestAggregate:
    def test_everything_counts(self, db_path):
        async def scenario(store):
            empty = await store.aggregate("items", GroupBy(Everything(), (Count("n"),)))
            await _insert(store, [
                {"enabled": True, "action": "allow", "hit_count": 3},
                {"enabled": False, "action": "drop", "hit_count": 4},
                {"enabled": True, "action": "deny"},
            ])
            full = await store.aggregate("items", GroupBy(
                Everything(),
                (
                    Count("total"),
                    Count("enabled", Eq("enabled", True)),
                    Count("deny", In("action", ("deny", "drop"))),
                    Sum("hits", ("hit_count",)),
                ),
            ))
            return empty, full

        empty, full = with_store(db_path, scenario)
        assert empty == []
        assert full[0].values == {"total": 3, "enabled": 2, "deny": 2, "hits": 7}

    def test_ties_keep_insertion_order(self, db_path):
        async def scenario(store):
            await _insert(store, [{"k": "z"}, {"k": "y"}, {"k": "x"}, {"k": "y"}, {"k": "z"}])
            return await store.aggregate("items", GroupBy(
                Field("k"), (Count("count"),), order=(OrderBy("count", descending=True),)
            ))

        groups = with_store(db_path, scenario)
        assert [(g.key, g["count"]) for g in groups] == [("z", 2), ("y", 2), ("x", 1)]

    def test_day_buckets_ascending(self, db_path):
        async def scenario(store):
            await _insert(store, [
                {"ts": 1773534600.0},
                {"ts": 1773531000.0},
                {"ts": 1773535000.0},
            ])
            return await store.aggregate(
                "items", GroupBy(DayOf("ts"), (Count("n"),), order=(OrderBy(KEY),))
            )

        groups = with_store(db_path, scenario)
        assert [(g.key, g["n"]) for g in groups] == [("2026-03-14", 1), ("2026-03-15", 2)]

    def test_facet_with_first_and_limit(self, db_path):
        async def scenario(store):
            await _insert(store, [
                {"source": "a", "details": {"country": "US"}, "blocked": True},
                {"source": "b", "details": {"country": "DE"}, "blocked": False},
                {"source": "a", "details": {"country": "CA"}, "blocked": False},
            ])
            return await store.aggregate("items", Facet({
                "sources": GroupBy(
                    Field("source"),
                    (
                        Count("threats"),
                        Count("blocked", Eq("blocked", True)),
                        First("country", "details.country"),
                    ),
                    order=(OrderBy("threats", descending=True),),
                    limit=1,
                ),
            }))

        result = with_store(db_path, scenario)
        [top] = result["sources"]
        assert top.key == "a"
        assert top.values == {"threats": 2, "blocked": 1, "country": "US"}


class TestUpdates:
    def test_update_one_modified_count(self, db_path):
        async def scenario(store):
            await _insert(store, [{"id": "a", "status": "active"}])
            first = await store.update_one("items", Eq("id", "a"), Update(set={"status": "closed"}))
            second = await store.update_one("items", Eq("id", "a"), Update(set={"status": "closed"}))
            missing = await store.update_one("items", Eq("id", "x"), Update(set={"status": "closed"}))
            return first, second, missing

        first, second, missing = with_store(db_path, scenario)
        assert (first.matched_count, first.modified_count) == (1, 1)
        assert (second.matched_count, second.modified_count) == (1, 0)
        assert (missing.matched_count, missing.modified_count) == (0, 0)

    def test_update_one_touches_only_one(self, db_path):
        async def scenario(store):
            await _insert(store, [{"id": "a", "k": 1}, {"id": "b", "k": 1}])
            await store.update_one("items", Eq("k", 1), Update(set={"k": 2}))
            return await store.find("items")

        docs = with_store(db_path, scenario)
        assert [d["k"] for d in docs] == [2, 1]

    def test_concurrent_increments_all_land(self, db_path):
        async def scenario(store):
            await _insert(store, [{"id": "r", "hit_count": 0}])
            await asyncio.gather(*(
                store.update_one("items", Eq("id", "r"), Update(inc={"hit_count": 1}))
                for _ in range(20)
            ))
            return await store.find("items")

        assert with_store(db_path, scenario)[0]["hit_count"] == 20

    def test_set_preserves_types(self, db_path):
        async def scenario(store):
            await _insert(store, [{"id": "a", "resolved": False}])
            await store.update_many(
                "items", In("id", ("a",)), Update(set={"resolved": True, "by": "admin"})
            )
            return await store.find("items")

        doc = with_store(db_path, scenario)[0]
        assert doc["resolved"] is True
        assert doc["by"] == "admin"

    def test_delete_many(self, db_path):
        async def scenario(store):
            await _insert(store, [{"n": 1}, {"n": 5}, {"n": 9}])
            removed = await store.delete_many("items", Range("n", lt=6))
            return removed, await store.find("items")

        removed, remaining = with_store(db_path, scenario)
        assert removed == SCHEMA_VERSION
        assert len(remaining) == 1


def test_schema_version_recorded(db_path):
    with_store(db_path, lambda store: asyncio.sleep(0))
    conn = sqlite3.connect(db_path)
    try:
        assert conn.execute("SELECT version FROM schema_version").fetchone()[0] == SCHEMA_VERSION
    finally:
        conn.close()


def test_older_schema_is_upgraded(db_path):
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA_SQL)
    conn.execute("INSERT INTO schema_version (version) VALUES (0)")
    conn.commit()
    conn.close()

    with_store(db_path, lambda store: asyncio.sleep(0))
    conn = sqlite3.connect(db_path)
    try:
        assert conn.execute("SELECT version FROM schema_version").fetchone()[0] == SCHEMA_VERSION
    finally:
        conn.close()


def test_closed_connection_is_unavailable(db_path):
    async def scenario():
        store = await SQLiteEventStore.open(db_path)
        await store.close()
        await store.find("items")

    with pytest.raises(StoreUnavailable):
        run_async(scenario())


def test_unopenable_path_is_unavailable(tmp_path):
    # A directory cannot be opened as a database file
    target = tmp_path / "dir.db"
    target.mkdir()
    with pytest.raises(StoreUnavailable):
        run_async(SQLiteEventStore.open(target))
