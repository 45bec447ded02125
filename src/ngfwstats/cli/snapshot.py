"""CLI commands: ngfwstats snapshot / prune — stats history maintenance."""

from __future__ import annotations

import click
from rich.console import Console

from ngfwstats.cli.common import FAMILY_CHOICE, run_with_engine
from ngfwstats.engine import AnalyticsEngine
from ngfwstats.models import Family

console = Console()


@click.command()
@click.argument("family", type=FAMILY_CHOICE)
@click.pass_context
def snapshot(ctx: click.Context, family: str) -> None:
    """Compute and store a stats snapshot for FAMILY."""
    fam = Family(family.lower())

    async def _capture(engine: AnalyticsEngine):
        return await engine.capture_snapshot(fam)

    snap = run_with_engine(ctx, _capture)
    console.print(
        f"Saved [cyan]{fam.value}[/cyan] snapshot [bold]{snap.id}[/bold] "
        f"({len(snap.counters)} counters)"
    )


@click.command()
@click.argument("family", type=FAMILY_CHOICE)
@click.option("--days", "-d", type=int, default=None, help="Days to keep (default: 30).")
@click.pass_context
def prune(ctx: click.Context, family: str, days: int | None) -> None:
    """Delete snapshots older than the retention window."""
    fam = Family(family.lower())

    async def _prune(engine: AnalyticsEngine):
        return await engine.prune_snapshots(fam, days)

    removed = run_with_engine(ctx, _prune)
    console.print(f"Removed {removed} {fam.value} snapshot(s)")
