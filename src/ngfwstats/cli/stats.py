"""CLI command: ngfwstats stats <family> — current-state summary."""

from __future__ import annotations

import dataclasses

import click
from rich.console import Console
from rich.table import Table

from ngfwstats.cli.common import FAMILY_CHOICE, parse_where, run_with_engine
from ngfwstats.engine import AnalyticsEngine
from ngfwstats.models import Family

console = Console()


@click.command()
@click.argument("family", type=FAMILY_CHOICE)
@click.option("--query", "-q", default="", help="Free-text search across text fields.")
@click.option("--where", "-w", multiple=True, help="Equality filter as field=value.")
@click.pass_context
def stats(ctx: click.Context, family: str, query: str, where: tuple[str, ...]) -> None:
    """Show counters for a record family."""
    fam = Family(family.lower())
    predicates = parse_where(fam, where)

    async def _compute(engine: AnalyticsEngine):
        expr = engine.translate_filter(fam, query, predicates)
        return await engine.compute_stats(fam, expr)

    result = run_with_engine(ctx, _compute)

    table = Table(title=f"{fam.value.capitalize()} statistics")
    table.add_column("Counter", style="cyan")
    table.add_column("Value", justify="right")
    breakdowns = []
    for f in dataclasses.fields(result):
        value = getattr(result, f.name)
        if isinstance(value, list):
            breakdowns.append((f.name, value))
        else:
            table.add_row(f.name, str(value))
    console.print(table)

    for name, items in breakdowns:
        if not items:
            continue
        sub = Table(title=name.replace("_", " "))
        columns = [c.name for c in dataclasses.fields(items[0])]
        for column in columns:
            sub.add_column(column, justify="right" if column != columns[0] else "left")
        for item in items:
            sub.add_row(*(str(getattr(item, c)) for c in columns))
        console.print(sub)
