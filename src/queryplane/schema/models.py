"""Index metadata types.

Table and column names are stored lower-cased; lookups are case-insensitive.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel, Field, field_validator

BOOLEAN_TYPES = frozenset({"boolean", "bool", "bit", "tinyint(1)"})


class IndexType(str, Enum):
    """Kind of index backing one or more columns."""

    PRIMARY_KEY = "PRIMARY_KEY"
    UNIQUE_CONSTRAINT = "UNIQUE_CONSTRAINT"
    UNIQUE_INDEX = "UNIQUE_INDEX"
    INDEX = "INDEX"

    @property
    def is_unique(self) -> bool:
        return self is not IndexType.INDEX


@dataclass(frozen=True, slots=True)
class IndexInfo:
    """One index on a table, columns in index order."""

    name: str
    type: IndexType
    columns: tuple[str, ...]

    @property
    def leading_column(self) -> str | None:
        return self.columns[0] if self.columns else None


@dataclass(frozen=True, slots=True)
class IndexMetadata:
    """Immutable snapshot of every known table's indexes and column types.

    Build with :meth:`build`; never mutate a snapshot in place. Consumers that
    need new metadata swap the whole object.
    """

    tables: Mapping[str, tuple[IndexInfo, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    column_types: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(
        cls,
        indexes: Mapping[str, Iterable[IndexInfo]] | None = None,
        column_types: Mapping[str, Mapping[str, str]] | None = None,
    ) -> IndexMetadata:
        tables: dict[str, tuple[IndexInfo, ...]] = {}
        for table, infos in (indexes or {}).items():
            normalized = tuple(
                IndexInfo(
                    name=info.name,
                    type=info.type,
                    columns=tuple(c.lower() for c in info.columns),
                )
                for info in infos
            )
            key = table.lower()
            tables[key] = tables.get(key, ()) + normalized

        types: dict[str, Mapping[str, str]] = {}
        for table, cols in (column_types or {}).items():
            types[table.lower()] = MappingProxyType(
                {col.lower(): type_name.lower() for col, type_name in cols.items()}
            )

        return cls(tables=MappingProxyType(tables), column_types=MappingProxyType(types))

    @classmethod
    def empty(cls) -> IndexMetadata:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.tables and not self.column_types

    def indexes_for(self, table: str) -> tuple[IndexInfo, ...]:
        return self.tables.get(table.lower(), ())

    def column_type(self, table: str, column: str) -> str | None:
        return self.column_types.get(table.lower(), {}).get(column.lower())

    def table_count(self) -> int:
        return len(set(self.tables) | set(self.column_types))


# File format (YAML or JSON), validated with pydantic


class IndexSpec(BaseModel):
    name: str = ""
    type: IndexType = IndexType.INDEX
    columns: list[str] = Field(min_length=1)

    @field_validator("type", mode="before")
    @classmethod
    def upper_type(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class TableSpec(BaseModel):
    indexes: list[IndexSpec] = Field(default_factory=list)
    columns: dict[str, str] = Field(default_factory=dict)


class MetadataFile(BaseModel):
    """Top-level shape of an index metadata file.

    Example::

        tables:
          users:
            indexes:
              - {name: pk_users, type: PRIMARY_KEY, columns: [user_id]}
              - {name: idx_users_name, type: INDEX, columns: [name]}
            columns:
              is_active: boolean
    """

    tables: dict[str, TableSpec] = Field(default_factory=dict)

    def to_metadata(self) -> IndexMetadata:
        indexes = {
            table: [
                IndexInfo(
                    name=spec.name or f"{spec.type.value.lower()}_{table}_{'_'.join(spec.columns)}",
                    type=spec.type,
                    columns=tuple(spec.columns),
                )
                for spec in table_spec.indexes
            ]
            for table, table_spec in self.tables.items()
        }
        types = {table: spec.columns for table, spec in self.tables.items() if spec.columns}
        return IndexMetadata.build(indexes, types)
