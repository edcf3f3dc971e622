from __future__ import annotations

import datetime as dt
import logging
import os
import shutil
import tempfile
import time
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import assert_never

from ..fs_paths import atomic_write_text
from .merge import merge_json_lines, merge_json_state, merge_markdown

logger = logging.getLogger(__name__)

TRACKED_FILES: tuple[str, ...] = (
    "FACTS.md",
    "PATTERNS.jsonl",
    "MISTAKES.jsonl",
    "DECISIONS.jsonl",
)

_CHUNK = 64 * 1024


class ConflictType(str, Enum):
    APPENDABLE_LOG = "appendable_log"
    MARKDOWN_DOCUMENT = "markdown_document"
    JSON_STATE = "json_state"
    UNKNOWN = "unknown"


class MergeStrategy(str, Enum):
    KEEP_LOCAL = "keep-local"
    KEEP_REMOTE = "keep-remote"
    KEEP_BOTH = "keep-both"
    NEWEST = "newest"
    SMART = "smart"


def classify(file_name: str) -> ConflictType:
    name = file_name.lower()
    if name.endswith(".jsonl"):
        return ConflictType.APPENDABLE_LOG
    if name.endswith(".md"):
        return ConflictType.MARKDOWN_DOCUMENT
    if name.endswith(".json"):
        return ConflictType.JSON_STATE
    return ConflictType.UNKNOWN


def files_identical(left: Path, right: Path) -> bool:
    if left.stat().st_size != right.stat().st_size:
        return False
    with left.open("rb") as a, right.open("rb") as b:
        while True:
            chunk_a = a.read(_CHUNK)
            chunk_b = b.read(_CHUNK)
            if chunk_a != chunk_b:
                return False
            if not chunk_a:
                return True


def _mtime(path: Path) -> dt.datetime:
    return dt.datetime.fromtimestamp(path.stat().st_mtime, tz=dt.UTC)


def extract_archive(archive: Path, destination: Path) -> None:
    """Extract a backup zip, keeping each entry's modification time."""

    with zipfile.ZipFile(archive) as bundle:
        for info in bundle.infolist():
            target = Path(bundle.extract(info, destination))
            if info.is_dir():
                continue
            stamp = time.mktime((*info.date_time, 0, 0, -1))
            os.utime(target, (stamp, stamp))


@dataclass(frozen=True)
class FileConflict:
    file_name: str
    local_path: Path
    remote_path: Path
    conflict_type: ConflictType
    local_modified: dt.datetime
    remote_modified: dt.datetime


@dataclass
class ConflictDetection:
    """Conflicts found against one snapshot.

    When the snapshot was a zip archive the remote files live in a scratch
    directory owned by this object; it stays until ``cleanup()`` (or the end
    of a ``with`` block) so the conflicts can still be resolved.
    """

    conflicts: list[FileConflict] = field(default_factory=list)
    message: str = ""
    workdir: Path | None = None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def cleanup(self) -> None:
        if self.workdir is not None:
            shutil.rmtree(self.workdir, ignore_errors=True)
            self.workdir = None

    def __enter__(self) -> ConflictDetection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()


@dataclass
class ResolveResult:
    resolved: int = 0
    failed: int = 0
    message: str = ""

    @property
    def success(self) -> bool:
        return self.failed == 0


class ConflictResolver:
    """Reconciles a project's memory files with a snapshot from another machine."""

    def __init__(self, memory_dir: Path, tracked_files: Sequence[str] = TRACKED_FILES) -> None:
        self.memory_dir = Path(memory_dir)
        self.tracked_files = tuple(tracked_files)

    def detect_conflicts(self, snapshot: str | Path) -> ConflictDetection:
        """Compare tracked files against a backup zip or an extracted directory.

        Only files present on both sides with differing bytes conflict.
        """

        if not self.memory_dir.is_dir():
            raise FileNotFoundError(f"memory directory not found: {self.memory_dir}")
        source = Path(snapshot).expanduser()
        if not source.exists():
            raise FileNotFoundError(f"snapshot not found: {source}")

        workdir: Path | None = None
        if source.is_dir():
            remote_root = source
        elif zipfile.is_zipfile(source):
            workdir = Path(tempfile.mkdtemp(prefix="devmem_conflict_"))
            try:
                extract_archive(source, workdir)
            except Exception:
                shutil.rmtree(workdir, ignore_errors=True)
                raise
            remote_root = workdir
        else:
            raise ValueError(f"not a backup archive or snapshot directory: {source}")

        conflicts: list[FileConflict] = []
        for name in self.tracked_files:
            local_path = self.memory_dir / name
            remote_path = remote_root / name
            if not (local_path.is_file() and remote_path.is_file()):
                continue
            if files_identical(local_path, remote_path):
                continue
            conflicts.append(
                FileConflict(
                    file_name=name,
                    local_path=local_path,
                    remote_path=remote_path,
                    conflict_type=classify(name),
                    local_modified=_mtime(local_path),
                    remote_modified=_mtime(remote_path),
                )
            )

        message = f"Found {len(conflicts)} conflict(s)" if conflicts else "No conflicts detected"
        return ConflictDetection(conflicts=conflicts, message=message, workdir=workdir)

    def resolve_conflicts(
        self, conflicts: Sequence[FileConflict], strategy: MergeStrategy
    ) -> ResolveResult:
        result = ResolveResult()
        for conflict in conflicts:
            try:
                self._resolve(conflict, strategy)
            except Exception as exc:
                logger.exception(
                    "conflict resolution failed for %s (%s)",
                    conflict.file_name,
                    strategy.value,
                    exc_info=exc,
                )
                result.failed += 1
            else:
                result.resolved += 1
        result.message = f"Resolved {result.resolved} conflict(s), {result.failed} failed"
        return result

    def _resolve(self, conflict: FileConflict, strategy: MergeStrategy) -> None:
        match strategy:
            case MergeStrategy.KEEP_LOCAL:
                return
            case MergeStrategy.KEEP_REMOTE:
                shutil.copy2(conflict.remote_path, conflict.local_path)
            case MergeStrategy.KEEP_BOTH:
                # Local stays primary; a human reconciles the .local/.remote copies.
                local = conflict.local_path
                shutil.copy2(local, local.with_name(local.name + ".local"))
                shutil.copy2(conflict.remote_path, local.with_name(local.name + ".remote"))
            case MergeStrategy.NEWEST:
                self._keep_newest(conflict)
            case MergeStrategy.SMART:
                self._smart_merge(conflict)
            case _:
                assert_never(strategy)

    @staticmethod
    def _keep_newest(conflict: FileConflict) -> None:
        if conflict.remote_modified > conflict.local_modified:
            shutil.copy2(conflict.remote_path, conflict.local_path)

    def _smart_merge(self, conflict: FileConflict) -> None:
        local_text = conflict.local_path.read_text(encoding="utf-8")
        remote_text = conflict.remote_path.read_text(encoding="utf-8")
        match conflict.conflict_type:
            case ConflictType.APPENDABLE_LOG:
                merged = merge_json_lines(local_text, remote_text)
            case ConflictType.MARKDOWN_DOCUMENT:
                merged = merge_markdown(local_text, remote_text)
            case ConflictType.JSON_STATE:
                merged = merge_json_state(
                    local_text,
                    remote_text,
                    local_is_newer=conflict.local_modified > conflict.remote_modified,
                )
            case ConflictType.UNKNOWN:
                self._keep_newest(conflict)
                return
            case _:
                assert_never(conflict.conflict_type)
        atomic_write_text(conflict.local_path, merged)
