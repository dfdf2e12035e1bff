"""Batch optimization across repositories."""

from queryplane.optimizer.ops import OptimizationRun, QueryOptimizer, RepositoryReport
from queryplane.optimizer.stats import CSV_COLUMNS, OptimizationStatsLogger, RepositoryStats

__all__ = [
    "CSV_COLUMNS",
    "OptimizationRun",
    "OptimizationStatsLogger",
    "QueryOptimizer",
    "RepositoryReport",
    "RepositoryStats",
]
