"""Shared setup for CLI commands."""

from dataclasses import dataclass
from pathlib import Path

import click

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.config.loader import load_config, resolve_repo_path
from queryplane.config.models import QueryPlaneConfig
from queryplane.core.errors import QueryPlaneError
from queryplane.core.logging import configure_logging
from queryplane.core.progress import status
from queryplane.java.registry import SourceRegistry
from queryplane.schema.loader import load_index_metadata


@dataclass
class Project:
    """A loaded Java project ready for analysis."""

    root: Path
    config: QueryPlaneConfig
    registry: SourceRegistry
    classifier: CardinalityClassifier


def split_columns(_ctx: click.Context, _param: click.Parameter, value: str | None) -> list[str]:
    """Click callback turning ``a,b , c`` into ``["a", "b", "c"]``."""
    if not value:
        return []
    return [c.strip().lower() for c in value.split(",") if c.strip()]


def open_project(
    path: Path,
    *,
    schema: Path | None = None,
    database_url: str | None = None,
    low: list[str] | None = None,
    high: list[str] | None = None,
    verbose: bool = False,
    quiet: bool = False,
) -> Project:
    """Load config, index metadata and Java sources for ``path``.

    Command-line values override the configuration files.

    Raises:
        click.ClickException: On configuration or metadata errors.
    """
    root = path.resolve()
    overrides: dict[str, dict[str, object]] = {}
    if schema is not None:
        overrides["indexes"] = {"path": str(schema.resolve())}
    elif database_url:
        overrides["indexes"] = {"database_url": database_url}
    if low or high:
        overrides["cardinality"] = {}
        if low:
            overrides["cardinality"]["low"] = low
        if high:
            overrides["cardinality"]["high"] = high

    try:
        config = load_config(root, **overrides)
    except QueryPlaneError as e:
        raise click.ClickException(str(e)) from e

    if verbose:
        configure_logging(level="DEBUG")
    elif quiet:
        configure_logging(level="WARNING")
    else:
        configure_logging(config=config.logging)

    try:
        metadata = load_index_metadata(config.indexes, root)
    except QueryPlaneError as e:
        raise click.ClickException(str(e)) from e

    classifier = CardinalityClassifier(
        metadata,
        low_overrides=config.cardinality.low,
        high_overrides=config.cardinality.high,
    )
    registry = SourceRegistry()
    count = registry.load_directory(root, config.refactor.source_roots)
    if not quiet:
        status(f"Loaded {count} Java files, {metadata.table_count()} tables with index metadata")
    return Project(root, config, registry, classifier)


def checkpoint_path(project_root: Path, config: QueryPlaneConfig) -> Path:
    return resolve_repo_path(project_root, config.checkpoint.path)
