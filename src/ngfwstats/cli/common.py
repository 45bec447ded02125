"""Shared CLI plumbing: config loading, engine lifecycle, option parsing."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console

from ngfwstats.analytics.search import BOOL, FIELD_KINDS, NUMBER, TIME, Equals
from ngfwstats.config import NgfwStatsConfig
from ngfwstats.engine import AnalyticsEngine
from ngfwstats.errors import NgfwStatsError, StoreUnavailable
from ngfwstats.models import Family
from ngfwstats.store.sqlite import SQLiteEventStore

T = TypeVar("T")

console = Console(stderr=True)

FAMILY_CHOICE = click.Choice([f.value for f in Family], case_sensitive=False)

_TRUE = {"1", "true", "yes"}
_FALSE = {"0", "false", "no"}


def load_config(ctx: click.Context) -> NgfwStatsConfig:
    config = NgfwStatsConfig.load()
    db_path = ctx.obj.get("db_path")
    if db_path:
        config.db_path = Path(db_path)
    config.verbose = ctx.obj.get("verbose", False)
    return config


def run_with_engine(
    ctx: click.Context, action: Callable[[AnalyticsEngine], Awaitable[T]]
) -> T:
    """Open the SQLite store, run one engine action, always close the store."""
    config = load_config(ctx)

    async def _run() -> T:
        store = await SQLiteEventStore.open(config.database, timeout=config.store_timeout)
        try:
            return await action(AnalyticsEngine(store, config))
        finally:
            await store.close()

    try:
        return asyncio.run(_run())
    except StoreUnavailable as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(2)
    except NgfwStatsError as exc:
        raise click.BadParameter(str(exc))


def parse_where(family: Family, items: tuple[str, ...]) -> list[Equals]:
    """Turn ``field=value`` options into equality predicates."""
    predicates = []
    for item in items:
        name, sep, raw = item.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected field=value, got {item!r}", param_hint="--where")
        kind = FIELD_KINDS[family].get(name.strip())
        value: object = raw.strip()
        if kind == BOOL:
            flag = raw.strip().lower()
            if flag not in _TRUE | _FALSE:
                raise click.BadParameter(
                    f"{name} expects true/false, got {raw!r}", param_hint="--where"
                )
            value = flag in _TRUE
        elif kind in (NUMBER, TIME):
            try:
                value = float(raw) if "." in raw else int(raw)
            except ValueError:
                raise click.BadParameter(f"{name} expects a number", param_hint="--where")
        predicates.append(Equals(name.strip(), value))
    return predicates
