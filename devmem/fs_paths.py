from __future__ import annotations

import datetime as dt
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

ACTIVITY_DIR = "Activity"
ARCHIVE_DIR = "Archive"
SNAPSHOTS_DIR = "Code_Snapshots"


def ensure_path(path: str | Path) -> Path:
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to a sibling temp file and rename it over ``path``."""

    ensure_path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class ProjectPaths:
    root: Path

    @property
    def session_state(self) -> Path:
        return self.root / "session_state.json"

    @property
    def facts(self) -> Path:
        return self.root / "FACTS.md"

    @property
    def uncertainties(self) -> Path:
        return self.root / "UNCERTAINTIES.md"

    @property
    def patterns(self) -> Path:
        return self.root / "PATTERNS.jsonl"

    @property
    def mistakes(self) -> Path:
        return self.root / "MISTAKES.jsonl"

    @property
    def decisions(self) -> Path:
        return self.root / "DECISIONS.jsonl"

    @property
    def performance(self) -> Path:
        return self.root / "PERFORMANCE.jsonl"

    @property
    def file_digests(self) -> Path:
        return self.root / "file_digests.json"

    @property
    def handoff(self) -> Path:
        return self.root / "session_handoff.md"

    @property
    def activity_dir(self) -> Path:
        return self.root / ACTIVITY_DIR

    @property
    def archive_dir(self) -> Path:
        return self.root / ARCHIVE_DIR

    @property
    def snapshots_dir(self) -> Path:
        return self.root / SNAPSHOTS_DIR

    def activity_log(self, day: dt.date) -> Path:
        return self.activity_dir / f"{day:%Y-%m-%d}.jsonl"

    def log_for_kind(self, kind: str) -> Path:
        return {
            "pattern": self.patterns,
            "mistake": self.mistakes,
            "decision": self.decisions,
            "performance": self.performance,
        }[kind]
