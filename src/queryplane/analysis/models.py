"""Data model for query analysis results."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from queryplane.core.errors import RefactorError
from queryplane.java.models import MethodShape

if TYPE_CHECKING:
    from sqlglot import exp

    from queryplane.java.models import JavaMethod


class CardinalityLevel(str, Enum):
    """Selectivity of a column; HIGH eliminates the most rows."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {CardinalityLevel.HIGH: 3, CardinalityLevel.MEDIUM: 2, CardinalityLevel.LOW: 1}


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_SEVERITY_ORDER = {Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}


@dataclass(frozen=True, slots=True)
class WhereCondition:
    """One top-level predicate of a WHERE clause.

    ``position`` is the zero-based ordinal of the predicate in source order.
    ``parameter`` is the bound parameter name (``email`` for ``:email``,
    ``1`` for ``?1``) or ``None`` for literals.
    """

    table: str
    column: str
    operator: str
    cardinality: CardinalityLevel
    position: int
    parameter: str | None = None

    def is_high_cardinality(self) -> bool:
        return self.cardinality is CardinalityLevel.HIGH

    def is_low_cardinality(self) -> bool:
        return self.cardinality is CardinalityLevel.LOW

    def __str__(self) -> str:
        return f"{self.column} {self.operator} (cardinality: {self.cardinality.value})"


@dataclass(frozen=True, slots=True)
class QueryParameter:
    """A declared method parameter and the column it binds to, if known."""

    name: str
    type_name: str
    index: int
    column: str | None = None
    placeholder: str | None = None


@dataclass(slots=True)
class RepositoryQuery:
    """Input to the analysis engine: one repository method and its query."""

    repository_class: str
    method_name: str
    text: str = ""
    statement: exp.Expression | None = None
    primary_table: str | None = None
    parameters: tuple[QueryParameter, ...] | None = ()
    is_native: bool = False
    is_derived: bool = False
    method: JavaMethod | None = None
    aliases: dict[str, str] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return f"{self.repository_class}.{self.method_name}"


@dataclass(slots=True)
class OptimizationIssue:
    """A detected ordering problem and the recommended fix."""

    query: RepositoryQuery
    current_first_column: str
    recommended_first_column: str
    current_column_order: list[str]
    recommended_column_order: list[str]
    description: str
    severity: Severity
    optimized_query: str | None = None
    # Derived query methods: reordered declaration and old->new parameter index
    optimized_shape: MethodShape | None = None
    parameter_map: dict[int, int] | None = None

    def build_position_mapping(self, arity: int) -> dict[int, int]:
        """Map each old column index to its index in the recommended order.

        Repeated columns are matched by occurrence.

        Raises:
            RefactorError: If either order is empty, disagrees with ``arity``
                or the two orders are not permutations of each other.
        """
        current = self.current_column_order
        recommended = self.recommended_column_order
        if not current or not recommended:
            raise RefactorError.invalid_mapping("column order is empty", arity=arity)
        if len(current) != arity or len(recommended) != arity:
            raise RefactorError.invalid_mapping(
                "column order length differs from arity",
                arity=arity,
                current=len(current),
                recommended=len(recommended),
            )
        if Counter(c.lower() for c in current) != Counter(c.lower() for c in recommended):
            raise RefactorError.invalid_mapping(
                "orders are not permutations of each other",
                current=list(current),
                recommended=list(recommended),
            )

        free: dict[str, list[int]] = {}
        for new_index, column in enumerate(recommended):
            free.setdefault(column.lower(), []).append(new_index)
        return {old: free[column.lower()].pop(0) for old, column in enumerate(current)}

    def is_high_severity(self) -> bool:
        return self.severity is Severity.HIGH

    def formatted_report(self) -> str:
        lines = [
            f"[{self.severity.value}] {self.query.qualified_name}",
            f"  Issue: {self.description}",
            f"  Current first condition: {self.current_first_column}",
            f"  Recommended first condition: {self.recommended_first_column}",
        ]
        if self.query.text:
            lines.append(f"  Query: {self.query.text}")
        if self.optimized_query:
            lines.append(f"  Optimized: {self.optimized_query}")
        if self.optimized_shape:
            lines.append(f"  Rename: {self.optimized_shape.signature()}")
        return "\n".join(lines) + "\n"


def _marker(condition: WhereCondition) -> str:
    if condition.parameter is None:
        return "?"
    if condition.parameter.isdigit():
        return f"?{condition.parameter}"
    return f":{condition.parameter}"


@dataclass(slots=True)
class QueryOptimizationResult:
    """Per-method aggregate of extracted conditions and detected issues."""

    repository_class: str
    method_name: str
    query_text: str
    where_conditions: list[WhereCondition] = field(default_factory=list)
    issues: list[OptimizationIssue] = field(default_factory=list)
    query: RepositoryQuery | None = None

    def is_already_optimized(self) -> bool:
        return not self.issues

    def get_first_condition(self) -> WhereCondition | None:
        for c in self.where_conditions:
            if c.position == 0:
                return c
        return None

    def get_where_condition_count(self) -> int:
        return len(self.where_conditions)

    def get_highest_severity(self) -> Severity | None:
        if not self.issues:
            return None
        return max((i.severity for i in self.issues), key=_SEVERITY_ORDER.__getitem__)

    def get_conditions_by_cardinality(self, level: CardinalityLevel) -> list[WhereCondition]:
        return [c for c in self.where_conditions if c.cardinality is level]

    def full_where_clause(self) -> str:
        return " AND ".join(f"{c.column} {c.operator} {_marker(c)}" for c in self.where_conditions)

    def summary_report(self) -> str:
        head = f"{self.repository_class}.{self.method_name}"
        if not self.where_conditions:
            return f"{head}: no WHERE conditions\n"
        conditions = ", ".join(c.column for c in self.where_conditions)
        if self.is_already_optimized():
            return f"{head}: optimized ({conditions})\n"
        return "".join(i.formatted_report() for i in self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository_class,
            "method": self.method_name,
            "conditions": [
                {
                    "column": c.column,
                    "operator": c.operator,
                    "cardinality": c.cardinality.value,
                    "position": c.position,
                }
                for c in self.where_conditions
            ],
            "issues": [
                {
                    "severity": i.severity.value,
                    "current": i.current_first_column,
                    "recommended": i.recommended_first_column,
                    "description": i.description,
                    "optimized_query": i.optimized_query,
                }
                for i in self.issues
            ],
        }


@dataclass(slots=True)
class MethodRename:
    """One planned declaration plus call-site rewrite."""

    old_name: str
    new_name: str
    analysis_result: QueryOptimizationResult | None
    issue: OptimizationIssue | None
    position_map: dict[int, int] | None
    old_shape: MethodShape
    new_shape: MethodShape

    @property
    def reorders(self) -> bool:
        return bool(self.position_map) and any(k != v for k, v in self.position_map.items())


@dataclass(slots=True)
class RenameOutcome:
    """What happened to one rename in a batch."""

    rename: MethodRename
    applied: bool
    call_sites_updated: int = 0
    files_modified: list[str] = field(default_factory=list)
    error: str | None = None
