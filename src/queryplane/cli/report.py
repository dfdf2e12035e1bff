"""Rich rendering of optimization runs."""

from rich.console import Console
from rich.table import Table

from queryplane.core.progress import make_counts_table, pluralize
from queryplane.optimizer.ops import OptimizationRun

_SEVERITY_STYLE = {"HIGH": "red", "MEDIUM": "yellow", "LOW": "dim"}


def issues_table(run: OptimizationRun) -> Table | None:
    table = Table(title="Ordering issues", show_lines=False)
    table.add_column("Severity")
    table.add_column("Method", overflow="fold")
    table.add_column("Current first")
    table.add_column("Recommended first")
    table.add_column("Fix", overflow="fold")
    for report in run.repositories:
        for result in report.results:
            for issue in result.issues:
                severity = issue.severity.value
                if issue.optimized_shape is not None:
                    fix = issue.optimized_shape.signature()
                else:
                    fix = issue.optimized_query or ""
                table.add_row(
                    f"[{_SEVERITY_STYLE.get(severity, '')}]{severity}[/]",
                    f"{result.repository_class}.{result.method_name}",
                    issue.current_first_column,
                    issue.recommended_first_column,
                    fix,
                )
    return table if table.row_count else None


def print_run(console: Console, run: OptimizationRun, *, changes: bool) -> None:
    """Print the issue table, index suggestions and counters."""
    table = issues_table(run)
    if table is not None:
        console.print(table)
    else:
        console.print("[green]No ordering issues found[/green]")

    if run.single_column_indexes or run.multi_column_indexes:
        console.print("\n[bold]Suggested indexes[/bold]")
        for key in run.single_column_indexes + run.multi_column_indexes:
            table_name, _, columns = key.partition("|")
            console.print(f"  [cyan]•[/cyan] {table_name} ({columns})", highlight=False)

    totals = run.totals()
    counts = {
        "Repositories analyzed": len(run.repositories),
        "Repositories skipped (checkpoint)": len(run.skipped),
        "Queries analyzed": totals.queries_analyzed,
        "Issues found": run.issues,
        "Index suggestions": len(run.single_column_indexes) + len(run.multi_column_indexes),
    }
    if changes:
        counts.update(
            {
                "Query annotations changed": totals.query_annotations_changed,
                "Method signatures changed": totals.method_signatures_changed,
                "Method calls updated": totals.method_calls_updated,
                "Dependent classes modified": totals.dependent_classes_modified,
            }
        )
    console.print()
    console.print(make_counts_table("Summary", counts))
    if changes and run.modified_files:
        console.print(f"\nWrote {pluralize(len(run.modified_files), 'file')}")


def run_to_dict(run: OptimizationRun) -> dict[str, object]:
    return {
        "repositories": [
            {
                "repository": report.repository_class,
                "results": [r.to_dict() for r in report.results],
                "renames": [
                    {
                        "old": o.rename.old_name,
                        "new": o.rename.new_name,
                        "applied": o.applied,
                        "call_sites": o.call_sites_updated,
                        "error": o.error,
                    }
                    for o in report.renames
                ],
            }
            for report in run.repositories
        ],
        "skipped": run.skipped,
        "suggested_indexes": {
            "single_column": run.single_column_indexes,
            "multi_column": run.multi_column_indexes,
        },
        "modified_files": run.modified_files,
    }
