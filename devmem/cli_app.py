from __future__ import annotations

import logging

import typer
from rich import print

from . import __version__
from .commands.common import parse_payload_or_exit, store_from_path
from .commands.maintenance_cmds import cleanup_cmd
from .commands.memory_cmds import (
    check_cmd,
    handoff_cmd,
    init_cmd,
    load_cmd,
    record_cmd,
    stats_cmd,
    usage_cmd,
)
from .commands.sync_cmds import conflicts_detect_cmd, conflicts_resolve_cmd
from .sync import MergeStrategy

app = typer.Typer(help="devmem: persistent project memory for coding sessions")
conflicts_app = typer.Typer(help="Reconcile memory files with a snapshot from another machine")
app.add_typer(conflicts_app, name="conflicts")

_PROJECT_HELP = "Project directory (defaults to the current directory)"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress to stderr"),
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )


@app.command()
def init(project: str = typer.Option(None, help=_PROJECT_HELP)) -> None:
    """Create a project's memory directory and start a new session."""

    init_cmd(store_from_path=store_from_path, project=project)


@app.command()
def load(project: str = typer.Option(None, help=_PROJECT_HELP)) -> None:
    """Load session state and rebuild the memory index."""

    load_cmd(store_from_path=store_from_path, project=project)


@app.command()
def record(
    kind: str = typer.Argument(..., help="activity, pattern, mistake, decision or performance"),
    payload: str = typer.Argument(..., help="Record as a JSON object"),
    project: str = typer.Option(None, help=_PROJECT_HELP),
) -> None:
    """Append one record to the project's memory."""

    record_cmd(
        store_from_path=store_from_path,
        parse_payload=parse_payload_or_exit,
        project=project,
        kind=kind,
        payload=payload,
    )


@app.command()
def check(
    description: str = typer.Argument(..., help="The action about to be taken"),
    project: str = typer.Option(None, help=_PROJECT_HELP),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Do not write the repeat count back to MISTAKES.jsonl"
    ),
) -> None:
    """Check a planned action against recorded mistakes (exit 1 on a match)."""

    check_cmd(
        store_from_path=store_from_path, project=project, description=description, dry_run=dry_run
    )


@app.command()
def usage(
    tokens: int = typer.Argument(..., help="Tokens used so far in this session"),
    project: str = typer.Option(None, help=_PROJECT_HELP),
) -> None:
    """Update context usage; writes a handoff once the critical threshold is reached."""

    usage_cmd(store_from_path=store_from_path, project=project, tokens=tokens)


@app.command()
def stats(project: str = typer.Option(None, help=_PROJECT_HELP)) -> None:
    """Show memory size, record counts and today's activity."""

    stats_cmd(store_from_path=store_from_path, project=project)


@app.command()
def handoff(project: str = typer.Option(None, help=_PROJECT_HELP)) -> None:
    """Write session_handoff.md for the next session."""

    handoff_cmd(store_from_path=store_from_path, project=project)


@app.command()
def cleanup(project: str = typer.Option(None, help=_PROJECT_HELP)) -> None:
    """Run a curation pass: extract, decay, archive, consolidate, flag, compress."""

    cleanup_cmd(store_from_path=store_from_path, project=project)


@conflicts_app.command("detect")
def conflicts_detect(
    snapshot: str = typer.Argument(..., help="Backup zip or extracted snapshot directory"),
    project: str = typer.Option(None, help=_PROJECT_HELP),
) -> None:
    """List tracked memory files that differ from a snapshot."""

    conflicts_detect_cmd(store_from_path=store_from_path, project=project, snapshot=snapshot)


@conflicts_app.command("resolve")
def conflicts_resolve(
    snapshot: str = typer.Argument(..., help="Backup zip or extracted snapshot directory"),
    strategy: MergeStrategy = typer.Option(MergeStrategy.SMART, help="How to resolve each conflict"),
    project: str = typer.Option(None, help=_PROJECT_HELP),
) -> None:
    """Resolve conflicts with a snapshot using one merge strategy."""

    conflicts_resolve_cmd(
        store_from_path=store_from_path, project=project, snapshot=snapshot, strategy=strategy
    )


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()
