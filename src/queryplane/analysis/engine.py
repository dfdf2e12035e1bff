"""Query analysis engine.

Pure and synchronous: for a fixed classifier snapshot the same query always
yields the same result, and no call performs I/O or mutates shared state.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.analysis.extraction import ConditionExtractor, Predicate
from queryplane.analysis.models import (
    OptimizationIssue,
    QueryOptimizationResult,
    RepositoryQuery,
)
from queryplane.analysis.rewrite import derived_rename, optimized_query_text, promote
from queryplane.analysis.rules import DEFAULT_RULES, IssueRule, RankedCondition, first_match
from queryplane.core.logging import get_logger

log = get_logger(__name__)


class QueryAnalysisEngine:
    """Extracts WHERE conditions and reports at most one ordering issue per query."""

    def __init__(
        self,
        classifier: CardinalityClassifier,
        *,
        rules: Sequence[IssueRule] = DEFAULT_RULES,
    ) -> None:
        self._classifier = classifier
        self._extractor = ConditionExtractor(classifier)
        self._rules = tuple(rules)

    @property
    def classifier(self) -> CardinalityClassifier:
        return self._classifier

    def is_initialized(self) -> bool:
        """Whether the classifier has any index metadata to work with."""
        return self._classifier.is_initialized()

    def analyze_query(self, query: RepositoryQuery | None) -> QueryOptimizationResult:
        """Analyze one repository query.

        Raises:
            ValueError: If ``query`` is None.
        """
        if query is None:
            raise ValueError("query must not be None")

        result = QueryOptimizationResult(
            repository_class=query.repository_class,
            method_name=query.method_name,
            query_text=query.text,
            query=query,
        )
        if not query.primary_table or not query.primary_table.strip():
            return result

        predicates = self._extractor.extract(query)
        result.where_conditions = [p.condition for p in predicates]

        issue = self._detect(query, predicates)
        if issue is not None:
            result.issues.append(issue)
            log.info(
                "ordering_issue",
                query=query.qualified_name,
                severity=issue.severity.value,
                current=issue.current_first_column,
                recommended=issue.recommended_first_column,
            )
        return result

    def analyze_all(self, queries: Iterable[RepositoryQuery]) -> list[QueryOptimizationResult]:
        return [self.analyze_query(q) for q in queries]

    def _detect(
        self, query: RepositoryQuery, predicates: list[Predicate]
    ) -> OptimizationIssue | None:
        if len(predicates) < 2:
            return None
        ranked = [
            RankedCondition(p.condition, self._classifier.rank(p.condition.table, p.condition.column))
            for p in predicates
        ]
        match = first_match(ranked, self._rules)
        if match is None:
            return None

        current = [p.condition.column for p in predicates]
        order = promote(len(predicates), match.recommended)
        recommended = predicates[match.recommended]

        issue = OptimizationIssue(
            query=query,
            current_first_column=current[0],
            recommended_first_column=recommended.condition.column,
            current_column_order=current,
            recommended_column_order=[current[i] for i in order],
            description=match.description,
            severity=match.severity,
        )
        if query.statement is not None:
            issue.optimized_query = optimized_query_text(query, recommended.conjunct)
        elif query.is_derived:
            renamed = derived_rename(query, recommended.conjunct)
            if renamed is not None:
                issue.optimized_shape, issue.parameter_map = renamed
        return issue
