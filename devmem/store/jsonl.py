from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any, TypeVar

from ..errors import RecordError
from ..fs_paths import atomic_write_text, ensure_path

logger = logging.getLogger(__name__)

T = TypeVar("T")


def dumps_line(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def append_json_line(path: Path, payload: dict[str, Any]) -> None:
    ensure_path(path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(dumps_line(payload) + "\n")


def iter_json_lines(path: Path, parse: Callable[[object], T]) -> Iterator[T]:
    """Yield parsed records from a JSONL file.

    Missing files read as empty. Blank lines, lines that are not JSON, and
    lines that fail ``parse`` are skipped: the logs are hand-edited often
    enough that one bad line must never hide the rest.
    """

    if not path.exists():
        return
    with path.open(encoding="utf-8", errors="replace") as handle:
        for lineno, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                yield parse(json.loads(line))
            except (json.JSONDecodeError, RecordError) as exc:
                logger.debug("skipping malformed line %s:%d: %s", path, lineno, exc)
                continue


def rewrite_json_lines(path: Path, payloads: Iterable[dict[str, Any]]) -> None:
    text = "".join(dumps_line(payload) + "\n" for payload in payloads)
    atomic_write_text(path, text)
