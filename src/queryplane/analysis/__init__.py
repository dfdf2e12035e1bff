"""Query analysis: classification, extraction, issue detection, rewriting."""

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.analysis.engine import QueryAnalysisEngine
from queryplane.analysis.extraction import ConditionExtractor, parse_statement
from queryplane.analysis.models import (
    CardinalityLevel,
    MethodRename,
    OptimizationIssue,
    QueryOptimizationResult,
    QueryParameter,
    RenameOutcome,
    RepositoryQuery,
    Severity,
    WhereCondition,
)
from queryplane.analysis.queries import RepositoryScanner
from queryplane.analysis.rewrite import format_query_for_text_block

__all__ = [
    "CardinalityClassifier",
    "CardinalityLevel",
    "ConditionExtractor",
    "MethodRename",
    "OptimizationIssue",
    "QueryAnalysisEngine",
    "QueryOptimizationResult",
    "QueryParameter",
    "RenameOutcome",
    "RepositoryQuery",
    "RepositoryScanner",
    "Severity",
    "WhereCondition",
    "format_query_for_text_block",
    "parse_statement",
]
