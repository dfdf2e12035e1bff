"""Parsing of derived query method names (``findByEmailAndActiveTrue``)."""

from __future__ import annotations

import re
from dataclasses import dataclass

_PREFIX_RE = re.compile(
    r"^(find|read|get|query|search|stream|count|exists|delete|remove)(\w*?)By(?=[A-Z])"
)
_CONNECTOR_RE = re.compile(r"(?<=[a-z0-9])(And|Or)(?=[A-Z])")
_CASE_MODIFIERS = ("AllIgnoreCase", "AllIgnoringCase", "IgnoreCase", "IgnoringCase")

# (suffix, operator, parameter count), longest suffixes first within each family
_KEYWORDS: tuple[tuple[str, str, int], ...] = (
    ("IsNotNull", "IS NOT NULL", 0),
    ("NotNull", "IS NOT NULL", 0),
    ("IsNull", "IS NULL", 0),
    ("Null", "IS NULL", 0),
    ("IsNotEmpty", "IS NOT EMPTY", 0),
    ("NotEmpty", "IS NOT EMPTY", 0),
    ("IsEmpty", "IS EMPTY", 0),
    ("Empty", "IS EMPTY", 0),
    ("IsTrue", "= TRUE", 0),
    ("True", "= TRUE", 0),
    ("IsFalse", "= FALSE", 0),
    ("False", "= FALSE", 0),
    ("IsBetween", "BETWEEN", 2),
    ("Between", "BETWEEN", 2),
    ("IsNotIn", "NOT IN", 1),
    ("NotIn", "NOT IN", 1),
    ("IsIn", "IN", 1),
    ("In", "IN", 1),
    ("IsLessThanEqual", "<=", 1),
    ("LessThanEqual", "<=", 1),
    ("IsLessThan", "<", 1),
    ("LessThan", "<", 1),
    ("IsGreaterThanEqual", ">=", 1),
    ("GreaterThanEqual", ">=", 1),
    ("IsGreaterThan", ">", 1),
    ("GreaterThan", ">", 1),
    ("IsBefore", "<", 1),
    ("Before", "<", 1),
    ("IsAfter", ">", 1),
    ("After", ">", 1),
    ("IsNotLike", "NOT LIKE", 1),
    ("NotLike", "NOT LIKE", 1),
    ("IsLike", "LIKE", 1),
    ("Like", "LIKE", 1),
    ("IsStartingWith", "LIKE", 1),
    ("StartingWith", "LIKE", 1),
    ("StartsWith", "LIKE", 1),
    ("IsEndingWith", "LIKE", 1),
    ("EndingWith", "LIKE", 1),
    ("EndsWith", "LIKE", 1),
    ("IsNotContaining", "NOT LIKE", 1),
    ("NotContaining", "NOT LIKE", 1),
    ("IsContaining", "LIKE", 1),
    ("Containing", "LIKE", 1),
    ("Contains", "LIKE", 1),
    ("IsNot", "!=", 1),
    ("Not", "!=", 1),
    ("Equals", "=", 1),
    ("Is", "=", 1),
)

# Parameter types Spring Data binds outside the criteria
SPECIAL_PARAMETER_TYPES = frozenset({"Pageable", "Sort", "Limit", "ScrollPosition"})


def snake_case(name: str) -> str:
    """``isActive`` / ``IsActive`` -> ``is_active``."""
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    return s.replace(".", "_").lower()


@dataclass(frozen=True, slots=True)
class DerivedPart:
    """One criterion of a derived name, e.g. ``EmailIgnoreCase``."""

    source: str
    property: str
    operator: str
    parameter_count: int

    @property
    def column(self) -> str:
        return snake_case(self.property)


@dataclass(frozen=True, slots=True)
class DerivedName:
    prefix: str
    parts: tuple[DerivedPart, ...]
    connector: str  # "And", "Or" or "" for a single criterion
    suffix: str = ""  # everything from "OrderBy" on, or a trailing case modifier

    @property
    def reorderable(self) -> bool:
        return self.connector != "Or" and len(self.parts) > 1

    @property
    def columns(self) -> list[str]:
        return [p.column for p in self.parts]

    @property
    def parameter_count(self) -> int:
        return sum(p.parameter_count for p in self.parts)

    def render(self, parts: tuple[DerivedPart, ...] | list[DerivedPart]) -> str:
        joiner = self.connector or "And"
        return self.prefix + joiner.join(p.source for p in parts) + self.suffix


def _parse_part(source: str) -> DerivedPart | None:
    body = source
    for modifier in _CASE_MODIFIERS:
        if body.endswith(modifier) and len(body) > len(modifier):
            body = body[: -len(modifier)]
            break
    for keyword, operator, count in _KEYWORDS:
        if body.endswith(keyword) and len(body) > len(keyword):
            prop = body[: -len(keyword)]
            return DerivedPart(source, prop[0].lower() + prop[1:], operator, count)
    if not body:
        return None
    return DerivedPart(source, body[0].lower() + body[1:], "=", 1)


def parse_derived_name(name: str) -> DerivedName | None:
    """Split a derived query method name into its criteria.

    Returns ``None`` when the name does not follow the derived-query
    convention (no ``...By`` prefix or an empty criteria section).
    """
    match = _PREFIX_RE.match(name)
    if match is None:
        return None
    prefix = match.group(0)
    criteria = name[len(prefix) :]

    suffix = ""
    order_at = criteria.find("OrderBy")
    if order_at > 0:
        criteria, suffix = criteria[:order_at], criteria[order_at:]
    for modifier in ("AllIgnoreCase", "AllIgnoringCase"):
        if criteria.endswith(modifier):
            criteria, suffix = criteria[: -len(modifier)], modifier + suffix
            break
    if not criteria:
        return None

    pieces = _CONNECTOR_RE.split(criteria)
    sources = pieces[0::2]
    connectors = set(pieces[1::2])
    parts = []
    for source in sources:
        part = _parse_part(source)
        if part is None:
            return None
        parts.append(part)

    connector = "Or" if "Or" in connectors else ("And" if connectors else "")
    return DerivedName(prefix, tuple(parts), connector, suffix)
