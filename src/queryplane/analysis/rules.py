"""Issue detection rules.

Rules are evaluated top to bottom and the first one that selects a
recommended condition wins. Each rule sees the conditions in source order
together with their fine-grained selectivity rank.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from queryplane.analysis.models import CardinalityLevel, Severity, WhereCondition


@dataclass(frozen=True, slots=True)
class RankedCondition:
    condition: WhereCondition
    rank: int

    @property
    def level(self) -> CardinalityLevel:
        return self.condition.cardinality


@dataclass(frozen=True, slots=True)
class RuleMatch:
    rule: str
    severity: Severity
    recommended: int  # index into the ranked condition list
    description: str


Selector = Callable[[Sequence[RankedCondition]], int | None]


@dataclass(frozen=True, slots=True)
class IssueRule:
    name: str
    severity: Severity
    select: Selector
    template: str

    def apply(self, ranked: Sequence[RankedCondition]) -> RuleMatch | None:
        if len(ranked) < 2:
            return None
        index = self.select(ranked)
        if index is None:
            return None
        description = self.template.format(
            current=ranked[0].condition.column,
            recommended=ranked[index].condition.column,
        )
        return RuleMatch(self.name, self.severity, index, description)


def _most_selective(ranked: Sequence[RankedCondition], indices: list[int]) -> int | None:
    """Highest rank among ``indices``; leftmost on ties."""
    best: int | None = None
    for i in indices:
        if best is None or ranked[i].rank > ranked[best].rank:
            best = i
    return best


def _low_first_high_later(ranked: Sequence[RankedCondition]) -> int | None:
    if ranked[0].level is not CardinalityLevel.LOW:
        return None
    later = [i for i in range(1, len(ranked)) if ranked[i].level is CardinalityLevel.HIGH]
    return _most_selective(ranked, later)


def _low_first_medium_later(ranked: Sequence[RankedCondition]) -> int | None:
    if ranked[0].level is not CardinalityLevel.LOW:
        return None
    for i in range(1, len(ranked)):
        if ranked[i].level is CardinalityLevel.MEDIUM:
            return i
    return None


def _more_selective_later(ranked: Sequence[RankedCondition]) -> int | None:
    first = ranked[0].rank
    later = [i for i in range(1, len(ranked)) if ranked[i].rank > first]
    return _most_selective(ranked, later)


DEFAULT_RULES: tuple[IssueRule, ...] = (
    IssueRule(
        name="low_first_high_later",
        severity=Severity.HIGH,
        select=_low_first_high_later,
        template=(
            "Low cardinality column '{current}' leads the WHERE clause while "
            "high cardinality column '{recommended}' appears later"
        ),
    ),
    IssueRule(
        name="low_first_medium_later",
        severity=Severity.MEDIUM,
        select=_low_first_medium_later,
        template=(
            "Low cardinality column '{current}' leads the WHERE clause; "
            "'{recommended}' is more selective"
        ),
    ),
    IssueRule(
        name="more_selective_later",
        severity=Severity.MEDIUM,
        select=_more_selective_later,
        template=(
            "'{current}' is not the most selective condition; "
            "'{recommended}' should lead the WHERE clause"
        ),
    ),
)


def first_match(
    ranked: Sequence[RankedCondition], rules: Sequence[IssueRule] = DEFAULT_RULES
) -> RuleMatch | None:
    for rule in rules:
        match = rule.apply(ranked)
        if match is not None:
            return match
    return None
