"""qpl checkpoint commands."""

from pathlib import Path

import click
import questionary

from queryplane.checkpoint.manager import CheckpointManager
from queryplane.cli.utils import checkpoint_path
from queryplane.config.loader import load_config
from queryplane.core.errors import QueryPlaneError
from queryplane.core.progress import status


@click.group()
def checkpoint_group() -> None:
    """Inspect or remove the resume checkpoint."""


@checkpoint_group.command("clear")
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def clear_command(path: Path, yes: bool) -> None:
    """Delete a stale checkpoint so the next run starts fresh.

    PATH is the Java project root (default: current directory).
    """
    root = path.resolve()
    try:
        config = load_config(root)
    except QueryPlaneError as e:
        raise click.ClickException(str(e)) from e

    manager = CheckpointManager(checkpoint_path(root, config))
    if not manager.has_checkpoint():
        status("Nothing to clear - no checkpoint found", style="warning")
        return
    if not yes:
        answer = questionary.confirm(
            f"Delete {manager.path}? The next run will start from the first repository.",
            default=False,
        ).ask()
        if not answer:
            click.echo("Cancelled")
            return
    manager.clear()
    status(f"Removed {manager.path}", style="success")


@checkpoint_group.command("show")
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path))
def show_command(path: Path) -> None:
    """Show how far a previous run got."""
    root = path.resolve()
    try:
        config = load_config(root)
    except QueryPlaneError as e:
        raise click.ClickException(str(e)) from e

    manager = CheckpointManager(checkpoint_path(root, config))
    if not manager.load():
        click.echo("No checkpoint")
        return
    click.echo(f"Session: {manager.get_session_id()}")
    click.echo(f"Repositories processed: {manager.get_processed_count()}")
    click.echo(f"Modified files: {len(manager.get_modified_files())}")
    suggestions = manager.get_suggested_single_column_indexes()
    suggestions += manager.get_suggested_multi_column_indexes()
    click.echo(f"Index suggestions: {len(suggestions)}")
