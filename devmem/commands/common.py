from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import typer
from rich import print

from ..config import load_config, read_config_file
from ..context import MemoryContext
from ..errors import ProjectNotFoundError
from ..store import MemoryStore


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def context_or_exit() -> MemoryContext:
    # Surface a broken config file instead of silently running on defaults.
    read_config_or_exit()
    return MemoryContext(load_config())


def store_from_path(project: str | None) -> MemoryStore:
    project_path = Path(project).expanduser() if project else Path(os.getcwd())
    try:
        return MemoryStore(project_path, context=context_or_exit())
    except ProjectNotFoundError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def parse_payload_or_exit(raw: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        print(f"[red]Invalid JSON: {exc}[/red]")
        raise typer.Exit(code=1) from None
    if not isinstance(payload, dict):
        print("[red]Record payload must be a JSON object[/red]")
        raise typer.Exit(code=1)
    return payload
