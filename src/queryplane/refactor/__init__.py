"""Source rewrites driven by analysis results."""

from queryplane.refactor.ops import (
    RefactoringEngine,
    RefactorStats,
    RenamePlan,
    validated_position_map,
)

__all__ = ["RefactorStats", "RefactoringEngine", "RenamePlan", "validated_position_map"]
