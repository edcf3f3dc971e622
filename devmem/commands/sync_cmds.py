from __future__ import annotations

import zipfile

import typer
from rich import print

from ..sync import ConflictDetection, ConflictResolver, MergeStrategy


def _detect_or_exit(resolver: ConflictResolver, snapshot: str) -> ConflictDetection:
    try:
        return resolver.detect_conflicts(snapshot)
    except (FileNotFoundError, ValueError, zipfile.BadZipFile) as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def _print_conflicts(detection: ConflictDetection) -> None:
    for conflict in detection.conflicts:
        newer = "remote" if conflict.remote_modified > conflict.local_modified else "local"
        print(
            f"- {conflict.file_name} ({conflict.conflict_type.value}): "
            f"local {conflict.local_modified:%Y-%m-%d %H:%M}, "
            f"remote {conflict.remote_modified:%Y-%m-%d %H:%M} ({newer} newer)"
        )


def conflicts_detect_cmd(*, store_from_path, project: str | None, snapshot: str) -> None:
    store = store_from_path(project)
    resolver = ConflictResolver(store.paths.root)
    with _detect_or_exit(resolver, snapshot) as detection:
        print(detection.message)
        _print_conflicts(detection)


def conflicts_resolve_cmd(
    *, store_from_path, project: str | None, snapshot: str, strategy: MergeStrategy
) -> None:
    """Detect conflicts against a snapshot and resolve them with one strategy."""

    store = store_from_path(project)
    resolver = ConflictResolver(store.paths.root)
    with _detect_or_exit(resolver, snapshot) as detection:
        if not detection.has_conflicts:
            print(detection.message)
            return
        _print_conflicts(detection)
        with store.lock:
            result = resolver.resolve_conflicts(detection.conflicts, strategy)
    if not result.success:
        print(f"[red]{result.message}[/red]")
        raise typer.Exit(code=1)
    print(f"[green]{result.message}[/green]")
