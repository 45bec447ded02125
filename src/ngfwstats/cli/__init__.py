"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from ngfwstats import __version__


@click.group()
@click.version_option(version=__version__, prog_name="ngfwstats")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False),
    help="Path to the SQLite event store.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, db_path: str | None, verbose: bool) -> None:
    """ngfwstats — firewall, connection and threat analytics."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from ngfwstats.cli.cleanup import cleanup  # noqa: F811
    from ngfwstats.cli.snapshot import prune, snapshot  # noqa: F811
    from ngfwstats.cli.stats import stats  # noqa: F811
    from ngfwstats.cli.top import top  # noqa: F811
    from ngfwstats.cli.trend import trend  # noqa: F811

    main.add_command(stats)
    main.add_command(trend)
    main.add_command(top)
    main.add_command(snapshot)
    main.add_command(prune)
    main.add_command(cleanup)


_register_commands()
