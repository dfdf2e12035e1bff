"""QueryPlane CLI - qpl command."""

import click

from queryplane import __version__
from queryplane.cli.analyze import analyze_command
from queryplane.cli.checkpoint import checkpoint_group
from queryplane.cli.optimize import optimize_command
from queryplane.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="qpl")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """QueryPlane - WHERE-clause ordering optimizer for Spring Data repositories."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(analyze_command, name="analyze")
cli.add_command(optimize_command, name="optimize")
cli.add_command(checkpoint_group, name="checkpoint")


if __name__ == "__main__":
    cli()
