"""Load index metadata from a file or a live database."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError
from sqlalchemy import Boolean, Enum, create_engine, inspect

from queryplane.config.loader import resolve_repo_path
from queryplane.core.errors import SchemaError
from queryplane.core.logging import get_logger
from queryplane.schema.models import IndexInfo, IndexMetadata, IndexType, MetadataFile

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from queryplane.config.models import IndexMetadataConfig

log = get_logger(__name__)


def load_metadata_file(path: Path) -> IndexMetadata:
    """Read a YAML or JSON metadata file.

    Raises:
        SchemaError: If the file is missing, unparsable or has the wrong shape.
    """
    if not path.exists():
        raise SchemaError.file_not_found(str(path))
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise SchemaError.parse_error(str(path), str(e)) from e

    try:
        parsed = MetadataFile.model_validate(raw)
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(p) for p in err["loc"])
        raise SchemaError.parse_error(str(path), f"{loc}: {err['msg']}") from e

    metadata = parsed.to_metadata()
    log.info("schema_loaded", path=str(path), tables=metadata.table_count())
    return metadata


def introspect_database(engine: Engine | str) -> IndexMetadata:
    """Read primary keys, unique constraints, indexes and column types via SQLAlchemy."""
    if isinstance(engine, str):
        engine = create_engine(engine)

    inspector = inspect(engine)
    indexes: dict[str, list[IndexInfo]] = {}
    column_types: dict[str, dict[str, str]] = {}

    for table in inspector.get_table_names():
        infos: list[IndexInfo] = []

        pk = inspector.get_pk_constraint(table)
        pk_columns = [c for c in pk.get("constrained_columns") or [] if c]
        if pk_columns:
            infos.append(
                IndexInfo(
                    name=pk.get("name") or f"pk_{table}",
                    type=IndexType.PRIMARY_KEY,
                    columns=tuple(pk_columns),
                )
            )

        for uc in inspector.get_unique_constraints(table):
            columns = _named_columns(uc)
            if columns:
                infos.append(
                    IndexInfo(
                        name=uc.get("name") or f"uq_{table}",
                        type=IndexType.UNIQUE_CONSTRAINT,
                        columns=columns,
                    )
                )

        for ix in inspector.get_indexes(table):
            columns = _named_columns(ix)
            if not columns:
                # expression index
                continue
            infos.append(
                IndexInfo(
                    name=ix.get("name") or f"ix_{table}",
                    type=IndexType.UNIQUE_INDEX if ix.get("unique") else IndexType.INDEX,
                    columns=columns,
                )
            )

        types: dict[str, str] = {}
        for col in inspector.get_columns(table):
            col_type = col["type"]
            if isinstance(col_type, Boolean):
                types[col["name"]] = "boolean"
            elif isinstance(col_type, Enum):
                types[col["name"]] = "enum"
            else:
                types[col["name"]] = type(col_type).__name__.lower()

        indexes[table] = infos
        column_types[table] = types

    metadata = IndexMetadata.build(indexes, column_types)
    log.info("schema_introspected", url=str(engine.url), tables=metadata.table_count())
    return metadata


def _named_columns(entry: dict[str, Any]) -> tuple[str, ...]:
    return tuple(c for c in entry.get("column_names") or [] if c)


def load_index_metadata(config: IndexMetadataConfig, repo_root: Path) -> IndexMetadata:
    """Resolve the configured metadata source.

    A metadata file wins over a database URL. With neither configured the
    result is empty and every column classifies as MEDIUM.
    """
    if config.path:
        return load_metadata_file(resolve_repo_path(repo_root, config.path))
    if config.database_url:
        return introspect_database(config.database_url)
    log.warning("schema_not_configured")
    return IndexMetadata.empty()
