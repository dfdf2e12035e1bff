"""Per-repository optimization statistics, appended to a CSV file."""

from __future__ import annotations

import csv
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path

from queryplane.core.logging import get_logger

log = get_logger(__name__)

CSV_COLUMNS = (
    "timestamp",
    "repository_class",
    "queries_analyzed",
    "query_annotations_changed",
    "method_signatures_changed",
    "method_calls_updated",
    "dependent_classes_modified",
    "liquibase_indexes_generated",
)


@dataclass
class RepositoryStats:
    """Changes made while optimizing one repository."""

    repository_class: str
    queries_analyzed: int = 0
    query_annotations_changed: int = 0
    method_signatures_changed: int = 0
    method_calls_updated: int = 0
    dependent_classes_modified: int = 0
    # Kept under its historical column name; counts index suggestions
    liquibase_indexes_generated: int = 0

    @property
    def changed(self) -> bool:
        return bool(
            self.query_annotations_changed or self.method_signatures_changed or self.method_calls_updated
        )

    def add(self, other: RepositoryStats) -> None:
        for f in fields(self):
            if f.name != "repository_class":
                setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))


class OptimizationStatsLogger:
    """Appends one row per repository; the header is written with the first row."""

    def __init__(self, path: Path | str, *, enabled: bool = True) -> None:
        self.path = Path(path)
        self.enabled = enabled

    def log_stats(self, stats: RepositoryStats, timestamp: datetime | None = None) -> None:
        if not self.enabled:
            return
        row = {"timestamp": (timestamp or datetime.now()).isoformat(timespec="seconds")}
        row.update(asdict(stats))
        new_file = not self.path.exists() or self.path.stat().st_size == 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            if new_file:
                writer.writeheader()
            writer.writerow(row)
        log.debug("stats_logged", repository=stats.repository_class, path=str(self.path))

    def read(self) -> list[RepositoryStats]:
        """Rows written so far, oldest first."""
        if not self.path.exists():
            return []
        with self.path.open(newline="", encoding="utf-8") as f:
            return [
                RepositoryStats(
                    repository_class=row["repository_class"],
                    **{k: int(row[k]) for k in CSV_COLUMNS[2:]},
                )
                for row in csv.DictReader(f)
            ]
