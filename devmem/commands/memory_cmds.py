from __future__ import annotations

import typer
from rich import print

from ..curation.housekeeping import format_bytes
from ..errors import RecordError
from ..store.types import ContextUsage


def _usage_line(usage: ContextUsage) -> str:
    line = (
        f"- Context: {usage.tokens_used:,} / {usage.tokens_limit:,} tokens "
        f"({usage.percentage:.1f}%)"
    )
    if usage.should_handoff:
        return f"[red]{line} - handoff recommended[/red]"
    if usage.should_warn:
        return f"[yellow]{line}[/yellow]"
    return line


def init_cmd(*, store_from_path, project: str | None) -> None:
    """Create the memory layout for a project and start a fresh session."""

    store = store_from_path(project)
    state = store.init_session()
    print(f"Initialized memory for {store.project_name} at {store.paths.root}")
    print(f"- Session: {state.session_id}")


def load_cmd(*, store_from_path, project: str | None) -> None:
    store = store_from_path(project)
    state = store.load_context()
    index = store.index

    print(f"[bold]{store.project_name}[/bold]")
    print(f"- Session: {state.session_id}")
    print(
        f"- Patterns: {index.total_patterns} "
        f"({len(index.high_confidence_patterns)} high confidence)"
    )
    print(f"- Mistakes: {index.total_mistakes} ({len(index.critical_mistakes)} critical)")
    print(f"- Decisions: {index.total_decisions}")
    print(_usage_line(state.context_usage))
    if state.current_task is not None:
        print(f"- Current task: {state.current_task.description} ({state.current_task.status})")
    for pending in state.decisions_pending:
        print(f"[yellow]- Pending decision: {pending.question}[/yellow]")


def record_cmd(*, store_from_path, parse_payload, project: str | None, kind: str, payload: str) -> None:
    data = parse_payload(payload)
    store = store_from_path(project)
    try:
        record = store.record(kind, data)
    except (RecordError, ValueError) as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    record_id = getattr(record, "id", "") or getattr(record, "operation", "")
    print(f"Recorded {kind} {record_id}".rstrip())


def check_cmd(
    *, store_from_path, project: str | None, description: str, dry_run: bool
) -> None:
    """Exit 1 when the planned action matches a recorded mistake."""

    store = store_from_path(project)
    persist = store.config.persist_mistake_repeats and not dry_run
    verdict = store.check(description, persist=persist)
    if verdict.should_proceed:
        print("[green]No matching mistake recorded[/green]")
        return
    print(f"[red]{verdict.reason}[/red]")
    if verdict.alternative:
        print(f"- Instead: {verdict.alternative}")
    if verdict.prior_mistake is not None and verdict.prior_mistake.lesson:
        print(f"- Lesson: {verdict.prior_mistake.lesson}")
    raise typer.Exit(code=1)


def usage_cmd(*, store_from_path, project: str | None, tokens: int) -> None:
    if tokens < 0:
        print("[red]Token count must be non-negative[/red]")
        raise typer.Exit(code=1)
    store = store_from_path(project)
    state = store.update_token_usage(tokens)
    print(_usage_line(state.context_usage))
    if state.context_usage.should_handoff:
        print(f"Handoff written to {store.paths.handoff}")


def stats_cmd(*, store_from_path, project: str | None) -> None:
    store = store_from_path(project)
    data = store.stats()

    print(f"[bold]{data['project']}[/bold]")
    print(f"- Path: {data['memory_path']}")
    print(f"- Size: {format_bytes(int(data['size_bytes']))}")
    print(
        f"- Patterns: {data['patterns']} ({data['high_confidence_patterns']} high confidence)"
    )
    print(f"- Mistakes: {data['mistakes']} ({data['critical_mistakes']} critical)")
    print(f"- Decisions: {data['decisions']}")

    print("\n[bold]Today[/bold]")
    print(f"- Activities: {data['activities_today']}")
    print(f"- Errors: {data['errors_today']}")
    if data["success_rate"] is None:
        print("- Success rate: n/a")
    else:
        print(f"- Success rate: {data['success_rate']:.0f}%")


def handoff_cmd(*, store_from_path, project: str | None) -> None:
    store = store_from_path(project)
    path = store.prepare_handoff()
    print(f"Handoff written to {path}")
