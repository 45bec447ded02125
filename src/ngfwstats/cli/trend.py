"""CLI command: ngfwstats trend <family> — per-day counters."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from ngfwstats.cli.common import FAMILY_CHOICE, run_with_engine
from ngfwstats.engine import AnalyticsEngine
from ngfwstats.models import Family

console = Console()


@click.command()
@click.argument("family", type=FAMILY_CHOICE)
@click.option("--days", "-d", type=int, default=None, help="Lookback window (default: 7).")
@click.pass_context
def trend(ctx: click.Context, family: str, days: int | None) -> None:
    """Show daily buckets, oldest first. Days without records are omitted."""
    fam = Family(family.lower())

    async def _build(engine: AnalyticsEngine):
        return await engine.build_trend(fam, days)

    buckets = run_with_engine(ctx, _build)
    if not buckets:
        console.print("[dim]No records in window.[/dim]")
        return

    table = Table(title=f"{fam.value.capitalize()} trend")
    table.add_column("Date", style="cyan")
    names = list(buckets[0].counters)
    for name in names:
        table.add_column(name, justify="right")
    for bucket in buckets:
        table.add_row(bucket.date, *(str(bucket.counters.get(n, 0)) for n in names))
    console.print(table)
