"""SQLite event store: JSON documents, with filters and groupings compiled to SQL."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from ngfwstats.errors import StoreUnavailable
from ngfwstats.models import _new_id
from ngfwstats.store.base import SortSpec, Update, UpdateResult
from ngfwstats.store.db import get_db
from ngfwstats.store.filters import (
    And,
    Contains,
    Eq,
    Exists,
    FilterExpr,
    In,
    Or,
    Range,
)
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

T = TypeVar("T")

_PATH_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

# OperationalError messages that mean "cannot reach the data", not "bad query"
_UNAVAILABLE_MARKERS = (
    "database is locked",
    "unable to open",
    "disk i/o error",
    "database is busy",
)


def _col(path: str) -> str:
    if not _PATH_RE.match(path):
        raise ValueError(f"Invalid field path: {path!r}")
    return f"json_extract(body, '$.{path}')"


def _param(value: Any) -> Any:
    # json_extract yields 1/0 for JSON booleans
    if isinstance(value, bool):
        return int(value)
    return value


def compile_filter(expr: FilterExpr | None) -> tuple[str, list[Any]]:
    """Translate a filter expression into a SQL boolean and its parameters."""
    if expr is None:
        return "1", []
    if isinstance(expr, (And, Or)):
        if not expr.clauses:
            return ("1" if isinstance(expr, And) else "0"), []
        parts: list[str] = []
        params: list[Any] = []
        for clause in expr.clauses:
            sql, clause_params = compile_filter(clause)
            parts.append(f"({sql})")
            params.extend(clause_params)
        joiner = " AND " if isinstance(expr, And) else " OR "
        return joiner.join(parts), params

    col = _col(expr.field)
    if isinstance(expr, Eq):
        return f"{col} = ?", [_param(expr.value)]
    if isinstance(expr, In):
        if not expr.values:
            return "0", []
        marks = ", ".join("?" for _ in expr.values)
        return f"{col} IN ({marks})", [_param(v) for v in expr.values]
    if isinstance(expr, Exists):
        return f"{col} IS NOT NULL", []
    if isinstance(expr, Contains):
        return f"instr(casefold(CAST({col} AS TEXT)), ?) > 0", [expr.text.casefold()]
    if isinstance(expr, Range):
        parts = [f"{col} IS NOT NULL"]
        params = []
        for op, bound in ((">=", expr.gte), ("<=", expr.lte), (">", expr.gt), ("<", expr.lt)):
            if bound is not None:
                parts.append(f"{col} {op} ?")
                params.append(_param(bound))
        return " AND ".join(parts), params
    raise TypeError(f"Unknown filter expression: {expr!r}")


def _key_sql(key: Any) -> str:
    if isinstance(key, Everything):
        return "NULL"
    if isinstance(key, Field):
        return _col(key.path)
    if isinstance(key, DayOf):
        return f"strftime('%Y-%m-%d', {_col(key.path)}, 'unixepoch')"
    raise TypeError(f"Unknown group key: {key!r}")


def _measure_sql(measure: Measure) -> tuple[str, list[Any]]:
    if isinstance(measure, Count):
        if measure.where is None:
            return "COUNT(*)", []
        cond, params = compile_filter(measure.where)
        return f"SUM(CASE WHEN {cond} THEN 1 ELSE 0 END)", params
    if isinstance(measure, Sum):
        total = " + ".join(f"COALESCE({_col(f)}, 0)" for f in measure.fields) or "0"
        if measure.where is None:
            return f"SUM({total})", []
        cond, params = compile_filter(measure.where)
        return f"SUM(CASE WHEN {cond} THEN {total} ELSE 0 END)", params
    if isinstance(measure, First):
        # Bare column: SQLite takes it from the MIN(seq) row
        return _col(measure.path), []
    raise TypeError(f"Unknown measure: {measure!r}")


def compile_group_by(collection: str, request: GroupBy) -> tuple[str, list[Any], list[str]]:
    """Build the SELECT for one grouping. Returns (sql, params, measure names)."""
    select = [f"{_key_sql(request.key)} AS group_key", "MIN(seq) AS first_seen"]
    params: list[Any] = []
    aliases: dict[str, str] = {}
    for i, measure in enumerate(request.measures):
        sql, measure_params = _measure_sql(measure)
        alias = f"m{i}"
        aliases[measure.name] = alias
        select.append(f"{sql} AS {alias}")
        params.extend(measure_params)

    where, where_params = compile_filter(request.match)
    params.append(collection)
    params.extend(where_params)

    order = []
    for o in request.order:
        target = "group_key" if o.name == KEY else aliases[o.name]
        order.append(f"{target} {'DESC' if o.descending else 'ASC'}")
    order.append("first_seen ASC")

    sql = (
        f"SELECT {', '.join(select)} FROM documents "
        f"WHERE collection = ? AND ({where}) "
        f"GROUP BY group_key ORDER BY {', '.join(order)}"
    )
    if request.limit is not None:
        sql += " LIMIT ?"
        params.append(max(request.limit, 0))
    return sql, params, [m.name for m in request.measures]


def _update_sql(update: Update) -> tuple[str, list[Any]]:
    """Build a json_set() expression producing the patched body."""
    args: list[str] = []
    params: list[Any] = []
    for path, value in update.set.items():
        _col(path)
        args.append(f"'$.{path}', json(?)")
        params.append(json.dumps(value))
    for path, amount in update.inc.items():
        args.append(f"'$.{path}', COALESCE({_col(path)}, 0) + ?")
        params.append(amount)
    if not args:
        return "body", []
    return f"json_set(body, {', '.join(args)})", params


class SQLiteEventStore:
    """Event store backed by a single aiosqlite connection.

    All groupings run inside SQLite; only grouped rows cross into Python.
    """

    def __init__(self, db: aiosqlite.Connection, timeout: float = 5.0) -> None:
        self._db = db
        self._timeout = timeout

    @classmethod
    async def open(cls, db_path: str | Path, timeout: float = 5.0) -> SQLiteEventStore:
        try:
            db = await asyncio.wait_for(get_db(db_path, timeout=timeout), timeout)
        except (sqlite3.OperationalError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("Cannot open event store at %s: %s", db_path, exc)
            raise StoreUnavailable("connect", str(db_path), str(exc)) from exc
        return cls(db, timeout=timeout)

    async def close(self) -> None:
        await self._db.close()

    async def _run(
        self,
        operation: str,
        collection: str,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            return await asyncio.wait_for(fn(), self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("%s on %s timed out after %.1fs", operation, collection, self._timeout)
            raise StoreUnavailable(operation, collection, "timed out") from exc
        except sqlite3.OperationalError as exc:
            if any(marker in str(exc).lower() for marker in _UNAVAILABLE_MARKERS):
                logger.warning("%s on %s failed: %s", operation, collection, exc)
                raise StoreUnavailable(operation, collection, str(exc)) from exc
            exc.add_note(f"during {operation} on '{collection}'")
            raise
        except sqlite3.Error as exc:
            exc.add_note(f"during {operation} on '{collection}'")
            raise
        except ValueError as exc:
            # aiosqlite reports a closed connection this way
            message = str(exc).lower()
            if "no active connection" in message or "connection closed" in message:
                raise StoreUnavailable(operation, collection, str(exc)) from exc
            raise

    async def find(
        self,
        collection: str,
        filter: FilterExpr | None = None,
        sort: SortSpec = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        where, params = compile_filter(filter)
        order = [f"{_col(path)} {'DESC' if desc else 'ASC'}" for path, desc in sort]
        order.append("seq ASC")
        sql = (
            f"SELECT body FROM documents WHERE collection = ? AND ({where}) "
            f"ORDER BY {', '.join(order)}"
        )
        args = [collection, *params]
        if limit is not None:
            sql += " LIMIT ?"
            args.append(max(limit, 0))

        async def _find() -> list[dict[str, Any]]:
            cursor = await self._db.execute(sql, args)
            return [json.loads(row["body"]) async for row in cursor]

        return await self._run("find", collection, _find)

    async def aggregate(
        self, collection: str, request: GroupBy | Facet
    ) -> list[Group] | dict[str, list[Group]]:
        async def _grouped(group_by: GroupBy) -> list[Group]:
            sql, params, names = compile_group_by(collection, group_by)
            logger.debug("aggregate %s: %s", collection, sql)
            cursor = await self._db.execute(sql, params)
            rows = await cursor.fetchall()
            return [
                Group(row["group_key"], {name: row[f"m{i}"] for i, name in enumerate(names)})
                for row in rows
            ]

        async def _aggregate() -> list[Group] | dict[str, list[Group]]:
            if isinstance(request, Facet):
                return {
                    name: await _grouped(group_by)
                    for name, group_by in request.groupings.items()
                }
            return await _grouped(request)

        return await self._run("aggregate", collection, _aggregate)

    async def _update(
        self,
        operation: str,
        collection: str,
        filter: FilterExpr,
        update: Update,
        single: bool,
    ) -> UpdateResult:
        where, where_params = compile_filter(filter)
        target = f"SELECT seq FROM documents WHERE collection = ? AND ({where}) ORDER BY seq"
        if single:
            target += " LIMIT 1"
        target_params = [collection, *where_params]
        new_body, body_params = _update_sql(update)

        async def _apply() -> UpdateResult:
            cursor = await self._db.execute(
                f"SELECT COUNT(*) FROM ({target})", target_params
            )
            matched = (await cursor.fetchone())[0]
            if not matched:
                return UpdateResult(0, 0)
            # One statement per patch keeps $inc atomic
            cursor = await self._db.execute(
                f"UPDATE documents SET body = {new_body} "
                f"WHERE seq IN ({target}) AND body <> {new_body}",
                [*body_params, *target_params, *body_params],
            )
            modified = cursor.rowcount
            await self._db.commit()
            return UpdateResult(matched, modified)

        return await self._run(operation, collection, _apply)

    async def update_one(
        self, collection: str, filter: FilterExpr, update: Update
    ) -> UpdateResult:
        return await self._update("update_one", collection, filter, update, single=True)

    async def update_many(
        self, collection: str, filter: FilterExpr, update: Update
    ) -> UpdateResult:
        return await self._update("update_many", collection, filter, update, single=False)

    async def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        doc_id = document.get("id") or _new_id()
        body = json.dumps({**document, "id": doc_id})

        async def _insert() -> str:
            await self._db.execute(
                "INSERT INTO documents (collection, id, body) VALUES (?, ?, json(?))",
                (collection, doc_id, body),
            )
            await self._db.commit()
            return doc_id

        return await self._run("insert_one", collection, _insert)

    async def delete_many(self, collection: str, filter: FilterExpr | None) -> int:
        where, params = compile_filter(filter)

        async def _delete() -> int:
            cursor = await self._db.execute(
                f"DELETE FROM documents WHERE collection = ? AND ({where})",
                [collection, *params],
            )
            await self._db.commit()
            return cursor.rowcount

        return await self._run("delete_many", collection, _delete)
