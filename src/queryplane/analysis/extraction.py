"""WHERE-clause predicate extraction.

Queries are parsed with sqlglot. JPQL positional markers (``?1``) are not
valid in any sqlglot dialect, so they are rewritten to named placeholders
before parsing and restored when a statement is rendered back to text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.analysis.derived import parse_derived_name, snake_case
from queryplane.analysis.models import RepositoryQuery, WhereCondition
from queryplane.core.logging import get_logger

log = get_logger(__name__)

_POSITIONAL_PREFIX = "qp_pos_"
_MARKER_RE = re.compile(r"'(?:[^']|'')*'|\?(\d+)")
_BARE_MARKER_RE = re.compile(r"'(?:[^']|'')*'|(?<!\?)\?(?![\d?|&])")
_RESTORE_RE = re.compile(rf"'(?:[^']|'')*'|:{_POSITIONAL_PREFIX}(\d+)")

_COMPARISONS: dict[type[exp.Expression], str] = {
    exp.EQ: "=",
    exp.NEQ: "!=",
    exp.GT: ">",
    exp.GTE: ">=",
    exp.LT: "<",
    exp.LTE: "<=",
    exp.Like: "LIKE",
    exp.ILike: "ILIKE",
    exp.In: "IN",
    exp.Between: "BETWEEN",
    exp.Is: "IS",
}


def normalize_markers(text: str) -> str:
    """``?1`` -> ``:qp_pos_1``; string literals are left alone."""

    def repl(m: re.Match[str]) -> str:
        return f":{_POSITIONAL_PREFIX}{m.group(1)}" if m.group(1) else m.group(0)

    return _MARKER_RE.sub(repl, text)


def number_bare_markers(text: str) -> tuple[str, int]:
    """``?`` -> ``?1``, ``?2``... in source order.

    Returns the rewritten text and how many markers were numbered. String
    literals and markers that already carry an ordinal are left alone.
    """
    count = 0

    def repl(m: re.Match[str]) -> str:
        nonlocal count
        if m.group(0) != "?":
            return m.group(0)
        count += 1
        return f"?{count}"

    return _BARE_MARKER_RE.sub(repl, text), count


def restore_markers(text: str) -> str:
    def repl(m: re.Match[str]) -> str:
        return f"?{m.group(1)}" if m.group(1) else m.group(0)

    return _RESTORE_RE.sub(repl, text)


def parse_statement(text: str | None, dialect: str | None = None) -> exp.Expression | None:
    """Parse query text; ``None`` when empty or unparsable."""
    if not text or not text.strip():
        return None
    try:
        statement = sqlglot.parse_one(normalize_markers(text), read=dialect)
    except SqlglotError as e:
        log.debug("query_unparsable", error=str(e).splitlines()[0] if str(e) else "")
        return None
    return statement


def render_statement(statement: exp.Expression, dialect: str | None = None) -> str:
    return restore_markers(statement.sql(dialect=dialect))


def where_of(statement: exp.Expression | None) -> exp.Where | None:
    if statement is None:
        return None
    where = statement.args.get("where")
    return where if isinstance(where, exp.Where) else None


def flatten_and(node: exp.Expression) -> list[exp.Expression]:
    """Top-level AND operands, left to right. Parenthesised groups stay whole."""
    operands: list[exp.Expression] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, exp.And):
            stack.append(current.right)
            stack.append(current.left)
        else:
            operands.append(current)
    return operands


@dataclass(frozen=True, slots=True)
class Predicate:
    """An extracted condition and the expression it came from."""

    condition: WhereCondition
    node: exp.Expression | None
    conjunct: int  # index among all top-level AND operands (or derived criteria)


def table_aliases(statement: exp.Expression) -> dict[str, str]:
    """alias (or bare table name) -> table name as written, from FROM and JOINs."""
    aliases: dict[str, str] = {}
    for table in statement.find_all(exp.Table):
        name = ".".join(p.name for p in table.parts if p.name)
        if not name:
            continue
        aliases.setdefault(table.name.lower(), name)
        if table.alias:
            aliases[table.alias.lower()] = name
    return aliases


class ConditionExtractor:
    """Turns a :class:`RepositoryQuery` into ordered :class:`WhereCondition` s."""

    def __init__(self, classifier: CardinalityClassifier) -> None:
        self._classifier = classifier

    def extract(self, query: RepositoryQuery) -> list[Predicate]:
        if query.statement is None:
            if query.is_derived:
                return self._from_derived(query)
            return []
        where = where_of(query.statement)
        if where is None:
            return []

        aliases = table_aliases(query.statement)
        ordinals = bare_placeholder_ordinals(query.statement)
        predicates: list[Predicate] = []
        for conjunct, node in enumerate(flatten_and(where.this)):
            parsed = self._predicate(node)
            if parsed is None:
                continue
            column, operator, value = parsed
            table = self._resolve_table(column, aliases, query)
            name = self._column_name(column, query)
            predicates.append(
                Predicate(
                    WhereCondition(
                        table=table,
                        column=name,
                        operator=operator,
                        cardinality=self._classifier.classify(table, name),
                        position=len(predicates),
                        parameter=_parameter_of(value, ordinals),
                    ),
                    node,
                    conjunct,
                )
            )
            log.debug(
                "condition_extracted",
                query=query.qualified_name,
                column=name,
                operator=operator,
                position=len(predicates) - 1,
            )
        return predicates

    def _predicate(
        self, node: exp.Expression
    ) -> tuple[exp.Column, str, exp.Expression | None] | None:
        negated = False
        if isinstance(node, exp.Not):
            negated = True
            node = node.this
        operator = _COMPARISONS.get(type(node))
        if operator is None:
            return None
        column = node.this
        if not isinstance(column, exp.Column):
            return None

        if isinstance(node, exp.Is):
            if isinstance(node.expression, exp.Null):
                return column, "IS NOT NULL" if negated else "IS NULL", None
            return column, "IS NOT" if negated else "IS", node.expression
        if negated:
            if operator not in ("IN", "LIKE", "ILIKE", "BETWEEN"):
                return None
            operator = f"NOT {operator}"

        if isinstance(node, exp.In):
            values = node.expressions or ([node.args["query"]] if node.args.get("query") else [])
            value = values[0] if values else (node.args.get("field") or node.args.get("unnest"))
        elif isinstance(node, exp.Between):
            value = node.args.get("low")
        else:
            value = node.expression
        return column, operator, value

    def _resolve_table(
        self, column: exp.Column, aliases: dict[str, str], query: RepositoryQuery
    ) -> str:
        parts = column.parts
        if len(parts) < 2:
            return query.primary_table or ""
        qualifier = parts[0].name
        written = aliases.get(qualifier.lower(), qualifier)
        for key in (written, written.lower()):
            if key in query.aliases:
                return query.aliases[key]
        if not query.is_native:
            return snake_case(written)
        return written

    def _column_name(self, column: exp.Column, query: RepositoryQuery) -> str:
        name = column.parts[-1].name
        return name if query.is_native else snake_case(name)

    def _from_derived(self, query: RepositoryQuery) -> list[Predicate]:
        derived = parse_derived_name(query.method_name)
        if derived is None or derived.connector == "Or":
            return []
        table = query.primary_table or ""
        params = list(query.parameters or ())
        cursor = 0
        predicates = []
        for position, part in enumerate(derived.parts):
            bound = params[cursor] if part.parameter_count and cursor < len(params) else None
            cursor += part.parameter_count
            predicates.append(
                Predicate(
                    WhereCondition(
                        table=table,
                        column=part.column,
                        operator=part.operator,
                        cardinality=self._classifier.classify(table, part.column),
                        position=position,
                        parameter=bound.name if bound else None,
                    ),
                    None,
                    position,
                )
            )
        return predicates


def bare_placeholder_ordinals(statement: exp.Expression) -> dict[int, int]:
    """JDBC index of each unnamed ``?`` marker, in source order."""
    bare = [
        node
        for node in statement.walk(bfs=False)
        if isinstance(node, exp.Placeholder) and not node.name
    ]
    return {id(node): index + 1 for index, node in enumerate(bare)}


def _parameter_of(value: exp.Expression | None, ordinals: dict[int, int]) -> str | None:
    if value is None:
        return None
    placeholder = value if isinstance(value, exp.Placeholder) else value.find(exp.Placeholder)
    if placeholder is None:
        return None
    name = placeholder.name
    if not name:
        index = ordinals.get(id(placeholder))
        return str(index) if index else None
    if name.startswith(_POSITIONAL_PREFIX):
        return name[len(_POSITIONAL_PREFIX) :]
    return name
