from __future__ import annotations

import typer
from rich import print

from ..curation import run_curation_pass
from ..curation.housekeeping import format_bytes


def cleanup_cmd(*, store_from_path, project: str | None) -> None:
    """Run one curation pass and print its report."""

    store = store_from_path(project)
    report = run_curation_pass(store)

    print(f"[bold]Curation report for {report.project_name}[/bold]")
    print(
        f"- Patterns extracted: {report.patterns_extracted} "
        f"(from {report.activities_consolidated} activities)"
    )
    print(
        f"- Confidence updates: {report.confidence_updates} "
        f"({report.patterns_decayed} decayed)"
    )
    print(f"- Logs archived: {report.logs_archived} ({format_bytes(report.space_freed)} freed)")
    print(f"- Duplicates removed: {report.duplicates_removed}")
    print(f"- Stale uncertainties flagged: {report.stale_items_flagged}")
    print(
        f"- Archives compressed: {report.archives_compressed} "
        f"(avg ratio {report.compression_ratio:.1%})"
    )
    if report.compression_failures:
        print(f"[yellow]- Compression failures: {report.compression_failures}[/yellow]")
    print(f"- Took {report.duration_s:.2f}s")

    if not report.ok:
        print(f"[red]Failed steps: {', '.join(report.errors)}[/red]")
        raise typer.Exit(code=1)
