"""CLI command: ngfwstats top <family> <dimension> — top-N ranking."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from ngfwstats.analytics.ranking import RankMeasure
from ngfwstats.cli.common import FAMILY_CHOICE, run_with_engine
from ngfwstats.engine import AnalyticsEngine
from ngfwstats.models import Family

console = Console()


@click.command()
@click.argument("family", type=FAMILY_CHOICE)
@click.argument("dimension")
@click.option(
    "--measure",
    "-m",
    type=click.Choice([m.value for m in RankMeasure]),
    default=RankMeasure.COUNT.value,
    help="What to rank by.",
)
@click.option("--limit", "-n", type=int, default=None, help="Number of groups (default: 10).")
@click.pass_context
def top(
    ctx: click.Context,
    family: str,
    dimension: str,
    measure: str,
    limit: int | None,
) -> None:
    """Rank groups of FAMILY records by DIMENSION."""
    fam = Family(family.lower())

    async def _rank(engine: AnalyticsEngine):
        return await engine.top_n(fam, dimension, measure, limit)

    rankings = run_with_engine(ctx, _rank)

    table = Table(title=f"Top {dimension} by {measure}")
    table.add_column("#", justify="right", style="dim")
    table.add_column(dimension, style="cyan")
    table.add_column(measure, justify="right")
    table.add_column("records", justify="right")
    for i, r in enumerate(rankings, start=1):
        table.add_row(str(i), r.key, str(r.value), str(r.count))
    console.print(table)
