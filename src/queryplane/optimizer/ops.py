"""Batch optimization of every repository in a source tree.

One repository at a time: collect its queries, analyze them, record index
suggestions, rewrite ``@Query`` literals and derived method names, update
the callers, then persist the checkpoint so an interrupted run resumes at
the next repository.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.analysis.engine import QueryAnalysisEngine
from queryplane.analysis.models import (
    MethodRename,
    QueryOptimizationResult,
    RenameOutcome,
)
from queryplane.analysis.queries import RepositoryScanner
from queryplane.checkpoint.manager import CheckpointManager
from queryplane.core.errors import RefactorError
from queryplane.core.logging import get_logger
from queryplane.graph.dependencies import DependencyGraph
from queryplane.java.registry import SourceRegistry
from queryplane.optimizer.stats import OptimizationStatsLogger, RepositoryStats
from queryplane.refactor.ops import (
    DEFAULT_TEXT_BLOCK_INDENT,
    DEFAULT_TEXT_BLOCK_WIDTH,
    RefactoringEngine,
)

log = get_logger(__name__)


@dataclass
class RepositoryReport:
    """Everything that happened to one repository."""

    repository_class: str
    results: list[QueryOptimizationResult]
    stats: RepositoryStats
    renames: list[RenameOutcome] = field(default_factory=list)

    @property
    def issues(self) -> int:
        return sum(len(r.issues) for r in self.results)


@dataclass
class OptimizationRun:
    """Summary of one :meth:`QueryOptimizer.analyze` call."""

    repositories: list[RepositoryReport] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    single_column_indexes: list[str] = field(default_factory=list)
    multi_column_indexes: list[str] = field(default_factory=list)
    modified_files: list[str] = field(default_factory=list)

    @property
    def queries_analyzed(self) -> int:
        return sum(r.stats.queries_analyzed for r in self.repositories)

    @property
    def issues(self) -> int:
        return sum(r.issues for r in self.repositories)

    def totals(self) -> RepositoryStats:
        total = RepositoryStats("*")
        for report in self.repositories:
            total.add(report.stats)
        return total


class QueryOptimizer:
    """Drives analysis and refactoring across all repositories.

    With ``apply_changes=False`` sources are analyzed and reported but never
    rewritten. With ``write_changes=True`` modified sources are written to
    disk after each repository, before the checkpoint is saved.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        classifier: CardinalityClassifier,
        checkpoint: CheckpointManager | None = None,
        *,
        stats_logger: OptimizationStatsLogger | None = None,
        apply_changes: bool = True,
        write_changes: bool = False,
        text_block_width: int = DEFAULT_TEXT_BLOCK_WIDTH,
        text_block_indent: str = DEFAULT_TEXT_BLOCK_INDENT,
        repo_root: Path | None = None,
    ) -> None:
        self.registry = registry
        self.engine = QueryAnalysisEngine(classifier)
        self.scanner = RepositoryScanner(registry)
        self.graph = DependencyGraph(registry)
        self.refactor = RefactoringEngine(
            registry,
            self.graph,
            text_block_width=text_block_width,
            text_block_indent=text_block_indent,
        )
        self.checkpoint = checkpoint
        self.stats_logger = stats_logger
        self.apply_changes = apply_changes
        self.write_changes = write_changes
        self.repo_root = repo_root
        self._single: dict[str, None] = {}
        self._multi: dict[str, None] = {}
        self._modified: set[str] = set()

    @property
    def classifier(self) -> CardinalityClassifier:
        return self.engine.classifier

    def analyze(self, repositories: Iterable[str] | None = None) -> OptimizationRun:
        """Process every repository not already recorded in the checkpoint.

        ``repositories`` defaults to every repository interface found by the
        scanner; callers pass their own iterable to wrap it in progress output.
        """
        run = OptimizationRun()
        if self.checkpoint is not None and self.checkpoint.load():
            self._restore_from_checkpoint(self.checkpoint)

        if not self.engine.is_initialized():
            log.warning("no_index_metadata", hint="every column classifies as MEDIUM")

        if self.apply_changes:
            self.graph.build_dependencies()

        if repositories is None:
            repositories = self.scanner.repositories()
        for fqn in repositories:
            if self.checkpoint is not None and self.checkpoint.is_processed(fqn):
                log.debug("repository_skipped", repository=fqn)
                run.skipped.append(fqn)
                continue

            report = self.analyze_repository(fqn)
            run.repositories.append(report)
            if self.stats_logger is not None:
                self.stats_logger.log_stats(report.stats)
            if self.write_changes:
                for path in self.registry.write_modified():
                    self._modified.add(self._display_path(path))
            if self.checkpoint is not None:
                self._save_checkpoint(self.checkpoint, fqn)

        run.single_column_indexes = list(self._single)
        run.multi_column_indexes = list(self._multi)
        run.modified_files = sorted(
            self._modified | {self._display_path(s.path) for s in self.registry.modified()}
        )
        log.info(
            "optimization_finished",
            repositories=len(run.repositories),
            skipped=len(run.skipped),
            issues=run.issues,
            files=len(run.modified_files),
        )
        return run

    def run(self, repositories: Iterable[str] | None = None) -> OptimizationRun:
        """Full run: analyze, write changes, then discard the checkpoint."""
        self.write_changes = True
        result = self.analyze(repositories)
        if self.checkpoint is not None:
            self.checkpoint.clear()
        return result

    def analyze_repository(self, fqn: str) -> RepositoryReport:
        queries = self.scanner.collect(fqn)
        results = self.engine.analyze_all(queries)
        stats = RepositoryStats(fqn, queries_analyzed=len(results))
        report = RepositoryReport(fqn, results, stats)

        before = len(self._single) + len(self._multi)
        for result in results:
            self._collect_index_suggestions(result)
        stats.liquibase_indexes_generated = len(self._single) + len(self._multi) - before

        if not self.apply_changes:
            return report

        counters = self.refactor.stats
        annotations = counters.annotations_changed
        signatures = counters.signatures_changed
        calls = counters.calls_updated
        dependents = set(counters.dependent_files)

        renames = self.build_renames(results)
        for result in results:
            self.refactor.act_on_analysis_result(result, renames)
        if renames:
            log.info("batched_renames", repository=fqn, count=len(renames))
            report.renames = self.refactor.batch_update_method_signatures(renames, fqn)

        stats.query_annotations_changed = counters.annotations_changed - annotations
        stats.method_signatures_changed = counters.signatures_changed - signatures
        stats.method_calls_updated = counters.calls_updated - calls
        stats.dependent_classes_modified = len(counters.dependent_files - dependents)
        return report

    def build_renames(self, results: list[QueryOptimizationResult]) -> list[MethodRename]:
        """Renames for derived query methods whose recommended name differs."""
        renames: list[MethodRename] = []
        for result in results:
            query = result.query
            if query is None or query.method is None or not result.issues:
                continue
            issue = result.issues[0]
            new_shape = issue.optimized_shape
            old_shape = query.method.shape
            if new_shape is None or new_shape.name == old_shape.name:
                continue

            position_map = issue.parameter_map
            if position_map is None:
                try:
                    position_map = issue.build_position_mapping(old_shape.arity)
                except RefactorError as e:
                    log.debug("position_map_unavailable", method=query.qualified_name, error=str(e))
            renames.append(
                MethodRename(
                    old_name=old_shape.name,
                    new_name=new_shape.name,
                    analysis_result=result,
                    issue=issue,
                    position_map=position_map,
                    old_shape=old_shape,
                    new_shape=new_shape,
                )
            )
        return renames

    def _collect_index_suggestions(self, result: QueryOptimizationResult) -> None:
        query = result.query
        if query is None or not query.primary_table:
            return
        table = query.primary_table.lower()
        classifier = self.classifier
        for issue in result.issues:
            column = issue.recommended_first_column or issue.current_first_column
            if column and not classifier.has_index_with_leading_column(table, column):
                self._single.setdefault(f"{table}|{column.lower()}", None)

            columns = list(dict.fromkeys(c.lower() for c in issue.recommended_column_order))
            if len(columns) > 1 and not classifier.has_index_covering_columns(table, columns):
                self._multi.setdefault(f"{table}|{','.join(columns)}", None)

    def _restore_from_checkpoint(self, checkpoint: CheckpointManager) -> None:
        for key in checkpoint.get_suggested_single_column_indexes():
            self._single.setdefault(key, None)
        for key in checkpoint.get_suggested_multi_column_indexes():
            self._multi.setdefault(key, None)
        self._modified.update(checkpoint.get_modified_files())
        log.info(
            "resuming_from_checkpoint",
            processed=checkpoint.get_processed_count(),
            modified=len(self._modified),
        )

    def _save_checkpoint(self, checkpoint: CheckpointManager, fqn: str) -> None:
        checkpoint.mark_processed(fqn)
        checkpoint.set_index_suggestions(self._single, self._multi)
        checkpoint.set_modified_files(
            self._modified | {self._display_path(s.path) for s in self.registry.modified()}
        )
        checkpoint.save()

    def _display_path(self, path: Path) -> str:
        if self.repo_root is not None:
            try:
                return str(path.relative_to(self.repo_root))
            except ValueError:
                pass
        return str(path)
