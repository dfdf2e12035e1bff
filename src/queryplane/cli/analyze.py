"""qpl analyze command - report ordering issues without touching sources."""

import json
from pathlib import Path

import click

from queryplane.cli.report import print_run, run_to_dict
from queryplane.cli.utils import open_project, split_columns
from queryplane.core.progress import get_console, progress
from queryplane.optimizer.ops import QueryOptimizer


@click.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--schema",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Index metadata file (YAML or JSON)",
)
@click.option("--database-url", help="SQLAlchemy URL to introspect indexes from")
@click.option("--low-cardinality", callback=split_columns, help="Comma-separated columns forced LOW")
@click.option("--high-cardinality", callback=split_columns, help="Comma-separated columns forced HIGH")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def analyze_command(
    ctx: click.Context,
    path: Path,
    schema: Path | None,
    database_url: str | None,
    low_cardinality: list[str],
    high_cardinality: list[str],
    as_json: bool,
) -> None:
    """Report WHERE-clause ordering issues in repository queries.

    PATH is the Java project root (default: current directory). No file is
    modified.
    """
    project = open_project(
        path,
        schema=schema,
        database_url=database_url,
        low=low_cardinality,
        high=high_cardinality,
        verbose=ctx.obj.get("verbose", False) if ctx.obj else False,
        quiet=as_json,
    )
    optimizer = QueryOptimizer(project.registry, project.classifier, apply_changes=False)
    repositories = optimizer.scanner.repositories()
    run = optimizer.analyze(progress(repositories, desc="Analyzing", unit="repositories"))

    if as_json:
        click.echo(json.dumps(run_to_dict(run), indent=2))
        return
    print_run(get_console(), run, changes=False)
