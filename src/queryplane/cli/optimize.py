"""qpl optimize command - rewrite queries and callers in place."""

from pathlib import Path

import click

from queryplane.checkpoint.manager import CheckpointManager
from queryplane.cli.report import print_run
from queryplane.cli.utils import checkpoint_path, open_project, split_columns
from queryplane.config.loader import resolve_repo_path
from queryplane.core.progress import get_console, progress, status
from queryplane.optimizer.ops import QueryOptimizer
from queryplane.optimizer.stats import OptimizationStatsLogger


@click.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--schema",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Index metadata file (YAML or JSON)",
)
@click.option("--database-url", help="SQLAlchemy URL to introspect indexes from")
@click.option("--fresh", is_flag=True, help="Ignore and remove any existing checkpoint")
@click.option("--quiet", "-q", is_flag=True, help="Only print the final summary")
@click.option("--low-cardinality", callback=split_columns, help="Comma-separated columns forced LOW")
@click.option("--high-cardinality", callback=split_columns, help="Comma-separated columns forced HIGH")
@click.pass_context
def optimize_command(
    ctx: click.Context,
    path: Path,
    schema: Path | None,
    database_url: str | None,
    fresh: bool,
    quiet: bool,
    low_cardinality: list[str],
    high_cardinality: list[str],
) -> None:
    """Reorder WHERE clauses and derived method names, then update callers.

    PATH is the Java project root (default: current directory). Progress is
    checkpointed after every repository; an interrupted run resumes where it
    stopped unless --fresh is given.
    """
    project = open_project(
        path,
        schema=schema,
        database_url=database_url,
        low=low_cardinality,
        high=high_cardinality,
        verbose=ctx.obj.get("verbose", False) if ctx.obj else False,
        quiet=quiet,
    )
    config = project.config

    checkpoint = None
    if config.checkpoint.enabled:
        checkpoint = CheckpointManager(checkpoint_path(project.root, config))
        if fresh:
            checkpoint.clear()
        elif checkpoint.has_checkpoint() and not quiet:
            status("Resuming from checkpoint", style="warning")

    stats_logger = None
    if config.stats.enabled:
        stats_logger = OptimizationStatsLogger(resolve_repo_path(project.root, config.stats.path))

    optimizer = QueryOptimizer(
        project.registry,
        project.classifier,
        checkpoint,
        stats_logger=stats_logger,
        text_block_width=config.refactor.text_block_width,
        text_block_indent=config.refactor.text_block_indent,
        repo_root=project.root,
    )
    repositories = optimizer.scanner.repositories()
    run = optimizer.run(progress(repositories, desc="Optimizing", unit="repositories"))

    print_run(get_console(), run, changes=True)
    failed = [o for r in run.repositories for o in r.renames if not o.applied]
    for outcome in failed:
        status(
            f"Rename {outcome.rename.old_name} -> {outcome.rename.new_name} skipped: {outcome.error}",
            style="warning",
        )
