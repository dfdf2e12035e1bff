"""Column selectivity classification from index metadata.

The classifier owns one immutable :class:`IndexMetadata` snapshot. Replacing
the metadata swaps the reference in a single assignment, so concurrent
readers see either the old snapshot or the new one and never a mix.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from queryplane.analysis.models import CardinalityLevel
from queryplane.core.logging import get_logger
from queryplane.schema.models import BOOLEAN_TYPES, IndexMetadata, IndexType

log = get_logger(__name__)

_BOOLEAN_PREFIXES = ("is_", "has_", "can_", "should_")
_BOOLEAN_SUFFIXES = ("_flag", "_enabled", "_active")
_BOOLEAN_NAMES = frozenset({"active", "enabled", "deleted", "visible"})

# Selectivity ranks; primary keys outrank other unique columns
RANK_PRIMARY_KEY = 4
RANK_UNIQUE = 3
RANK_MEDIUM = 2
RANK_LOW = 1


def looks_boolean(column: str) -> bool:
    """Name-based guess for flag columns."""
    name = column.lower()
    return (
        name.startswith(_BOOLEAN_PREFIXES)
        or name.endswith(_BOOLEAN_SUFFIXES)
        or name in _BOOLEAN_NAMES
    )


def _is_low_type(type_name: str) -> bool:
    return type_name in BOOLEAN_TYPES or type_name.startswith("enum")


class CardinalityClassifier:
    """Maps (table, column) to a :class:`CardinalityLevel`.

    Rules, first match wins:

    0. user overrides (high beats low)
    1. leading column of a primary key -> HIGH
    2. leading column of a unique constraint or unique index -> HIGH
    3. declared boolean or enum type -> LOW
    4. no declared type and a boolean-looking name -> LOW
    5. covered by a plain index -> MEDIUM
    6. otherwise -> MEDIUM
    """

    def __init__(
        self,
        metadata: IndexMetadata | None = None,
        *,
        low_overrides: Iterable[str] = (),
        high_overrides: Iterable[str] = (),
    ) -> None:
        self._metadata = metadata or IndexMetadata.empty()
        self._low = frozenset(c.lower() for c in low_overrides)
        self._high = frozenset(c.lower() for c in high_overrides)

    @property
    def metadata(self) -> IndexMetadata:
        return self._metadata

    def replace_metadata(self, metadata: IndexMetadata) -> None:
        """Swap in a new metadata snapshot."""
        self._metadata = metadata
        log.debug("index_metadata_replaced", tables=metadata.table_count())

    def is_initialized(self) -> bool:
        return not self._metadata.is_empty

    def classify(self, table: str | None, column: str | None) -> CardinalityLevel:
        return _level_for_rank(self.rank(table, column))

    def rank(self, table: str | None, column: str | None) -> int:
        """Fine-grained selectivity used to order candidates of equal level."""
        if not table or not column:
            return RANK_MEDIUM

        metadata = self._metadata
        col = column.lower()

        if col in self._high:
            return RANK_UNIQUE
        if col in self._low:
            return RANK_LOW

        indexes = metadata.indexes_for(table)
        for info in indexes:
            if info.type is IndexType.PRIMARY_KEY and info.leading_column == col:
                return RANK_PRIMARY_KEY
        for info in indexes:
            if info.type.is_unique and info.leading_column == col:
                return RANK_UNIQUE

        declared = metadata.column_type(table, col)
        if declared is not None and _is_low_type(declared):
            return RANK_LOW
        if declared is None and looks_boolean(col):
            return RANK_LOW

        return RANK_MEDIUM

    def has_index_with_leading_column(self, table: str | None, column: str | None) -> bool:
        if not table or not column:
            return False
        col = column.lower()
        return any(info.leading_column == col for info in self._metadata.indexes_for(table))

    def has_index_covering_columns(self, table: str | None, columns: Sequence[str]) -> bool:
        """True if some index starts with exactly these columns, in order."""
        if not table or not columns:
            return False
        wanted = tuple(c.lower() for c in columns)
        return any(
            info.columns[: len(wanted)] == wanted for info in self._metadata.indexes_for(table)
        )


def _level_for_rank(rank: int) -> CardinalityLevel:
    if rank >= RANK_UNIQUE:
        return CardinalityLevel.HIGH
    if rank <= RANK_LOW:
        return CardinalityLevel.LOW
    return CardinalityLevel.MEDIUM
