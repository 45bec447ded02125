"""CLI command: ngfwstats cleanup — retention for raw records."""

from __future__ import annotations

import click
from rich.console import Console

from ngfwstats.cli.common import run_with_engine
from ngfwstats.engine import AnalyticsEngine

console = Console()

_TARGETS = {
    "network": ("connection", AnalyticsEngine.cleanup_connections),
    "threat": ("resolved threat", AnalyticsEngine.cleanup_threats),
    "traffic": ("traffic sample", AnalyticsEngine.cleanup_traffic),
}


@click.command()
@click.argument("target", type=click.Choice(list(_TARGETS), case_sensitive=False))
@click.option("--days", "-d", type=int, default=None, help="Days to keep (default from config).")
@click.pass_context
def cleanup(ctx: click.Context, target: str, days: int | None) -> None:
    """Delete records older than the retention window.

    Unresolved threats are always kept.
    """
    noun, method = _TARGETS[target.lower()]

    async def _cleanup(engine: AnalyticsEngine):
        return await method(engine, days)

    removed = run_with_engine(ctx, _cleanup)
    console.print(f"Removed {removed} {noun}(s)")
