from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any, cast
from uuid import uuid4

from ..context import MemoryContext
from ..fs_paths import ProjectPaths, atomic_write_text
from .. import handoff
from ..record_kinds import SEQUENTIAL_ID_PREFIXES, format_sequential_id, validate_record_kind
from . import jsonl
from .digests import FileDigestCache
from .index import MemoryIndex, build_index
from .mistakes import check_for_mistake
from .session import SessionStateManager
from .types import (
    RECORD_TYPES,
    Activity,
    Decision,
    Mistake,
    MistakeVerdict,
    Pattern,
    Performance,
    Record,
    SessionState,
)
from .utils import now

logger = logging.getLogger(__name__)

FACTS_TEMPLATE = """# {name} - Verified Facts
*Auto-generated - Last updated: {stamp}*
*Confidence: 100% (unless noted)*

## Project Structure
- Project path: `{project_path}`

## Build Configuration
(Facts will be added as they are discovered and verified)

## Critical Files
(Will be populated during development)

## Known Issues
(Resolved issues tracked here)
"""

UNCERTAINTIES_TEMPLATE = """# {name} - Uncertainties
*These need verification before acting on them*

## Suspected But Unverified
(Questions that need answers)

## Ambiguous Information
(Unclear or conflicting information)

## User Preference Unknown
(Decisions requiring user input)

## To Research
(Topics requiring investigation)
"""


def ensure_layout(paths: ProjectPaths, *, project_name: str, project_path: Path) -> None:
    for directory in (paths.root, paths.activity_dir, paths.archive_dir, paths.snapshots_dir):
        directory.mkdir(parents=True, exist_ok=True)
    values = {
        "name": project_name,
        "project_path": project_path,
        "stamp": f"{now():%Y-%m-%d %H:%M:%S}",
    }
    if not paths.facts.exists():
        paths.facts.write_text(FACTS_TEMPLATE.format(**values), encoding="utf-8")
    if not paths.uncertainties.exists():
        paths.uncertainties.write_text(UNCERTAINTIES_TEMPLATE.format(**values), encoding="utf-8")


class MemoryStore:
    """Record store for one project's memory directory.

    The JSONL logs on disk are the only source of truth. ``index`` is a
    summary rebuilt from them on ``load_context`` (or lazily on first use) and
    kept current by ``append``.
    """

    RECENT_ACTIVITY_LIMIT = 10

    def __init__(self, project_path: str | Path, *, context: MemoryContext | None = None):
        self.context = context or MemoryContext()
        self.config = self.context.config
        # Raises ProjectNotFoundError before anything is created on disk.
        self.paths = self.context.project_paths(project_path)
        self.project_path = Path(project_path).expanduser().resolve()
        self.project_name = self.paths.root.name
        self.lock = self.context.lock_for(self.paths.root)

        ensure_layout(self.paths, project_name=self.project_name, project_path=self.project_path)

        self.session = SessionStateManager(self.paths.session_state, self.lock)
        self.digests = FileDigestCache(self.paths.file_digests)
        self._index: MemoryIndex | None = None

    # Index -----------------------------------------------------------------

    @property
    def index(self) -> MemoryIndex:
        if self._index is None:
            self._index = self.build_index()
        return self._index

    def build_index(self) -> MemoryIndex:
        self._index = build_index(
            cast(Iterator[Pattern], self.iter_records("pattern")),
            cast(Iterator[Mistake], self.iter_records("mistake")),
            cast(Iterator[Decision], self.iter_records("decision")),
            high_confidence_threshold=self.config.high_confidence_threshold,
        )
        return self._index

    # Session ---------------------------------------------------------------

    def init_session(self) -> SessionState:
        return self.session.start_new_session(
            tokens_limit=self.config.tokens_limit,
            warning_threshold=self.config.warning_threshold,
            critical_threshold=self.config.critical_threshold,
        )

    def load_context(self) -> SessionState:
        """Session-start load: state, index, digests. Token usage resets."""

        started = time.monotonic()

        def _reset(state: SessionState) -> None:
            state.context_usage.tokens_used = 0

        state = self.session.update(_reset)
        self.build_index()
        self.digests.reload()
        logger.info(
            "context loaded for %s in %.2fs", self.project_name, time.monotonic() - started
        )
        return state

    def update_token_usage(self, tokens_used: int) -> SessionState:
        state = self.session.update_token_usage(tokens_used)
        if state.context_usage.should_handoff:
            logger.warning("context usage critical for %s, writing handoff", self.project_name)
            self.prepare_handoff(state)
        return state

    def prepare_handoff(self, state: SessionState | None = None) -> Path:
        state = state or self.session.load()
        text = handoff.render_handoff(
            self.project_name, state, self.recent_activities(self.RECENT_ACTIVITY_LIMIT)
        )
        atomic_write_text(self.paths.handoff, text)
        return self.paths.handoff

    # Records ---------------------------------------------------------------

    def append(self, kind: str, record: Record) -> Record:
        kind = validate_record_kind(kind)
        expected = RECORD_TYPES[kind]
        if not isinstance(record, expected):
            raise TypeError(f"{kind} records must be {expected.__name__}, got {type(record).__name__}")

        stamp = now()
        with self.lock:
            if isinstance(record, Activity):
                if record.timestamp is None:
                    record.timestamp = stamp
                if not record.id:
                    record.id = f"ACT{record.timestamp:%Y%m%d}_{uuid4().hex[:8]}"
                jsonl.append_json_line(
                    self.paths.activity_log(record.timestamp.date()), record.to_dict()
                )
                return record

            if isinstance(record, Performance):
                if record.timestamp is None:
                    record.timestamp = stamp
                if record.baseline is None:
                    baseline = self.performance_baseline(record.operation)
                    record.baseline = baseline.duration if baseline else None
                jsonl.append_json_line(self.paths.performance, record.to_dict())
                if record.is_outlier:
                    logger.warning(
                        "performance outlier: %s took %s%s (baseline %s%s)",
                        record.operation,
                        record.duration,
                        record.unit,
                        record.baseline,
                        record.unit,
                    )
                return record

            index = self.index
            if not record.id:
                record.id = format_sequential_id(kind, self._count(kind, index) + 1)
            if isinstance(record, Pattern):
                record.created = record.created or stamp
                record.last_seen = record.last_seen or stamp
                jsonl.append_json_line(self.paths.patterns, record.to_dict())
                index.add_pattern(record)
            elif isinstance(record, Mistake):
                record.timestamp = record.timestamp or stamp
                jsonl.append_json_line(self.paths.mistakes, record.to_dict())
                index.add_mistake(record)
            elif isinstance(record, Decision):
                record.timestamp = record.timestamp or stamp
                jsonl.append_json_line(self.paths.decisions, record.to_dict())
                index.add_decision(record)
            return record

    def record(self, kind: str, payload: dict[str, Any]) -> Record:
        """Parse a wire-shaped payload (CLI / bridge input) and append it."""

        kind = validate_record_kind(kind)
        return self.append(kind, RECORD_TYPES[kind].from_dict(payload))

    def iter_records(self, kind: str) -> Iterator[Record]:
        kind = validate_record_kind(kind)
        parse = RECORD_TYPES[kind].from_dict
        if kind == "activity":
            for path in self.activity_files():
                yield from jsonl.iter_json_lines(path, parse)
            return
        yield from jsonl.iter_json_lines(self.paths.log_for_kind(kind), parse)

    def read_all(self, kind: str) -> list[Record]:
        return list(self.iter_records(kind))

    def read_recent(self, kind: str, n: int) -> list[Record]:
        """Last ``n`` records by file order (not a global time ordering)."""

        if n <= 0:
            return []
        return self.read_all(kind)[-n:]

    def rewrite(self, kind: str, records: Sequence[Record]) -> None:
        kind = validate_record_kind(kind)
        if kind == "activity":
            raise ValueError("activity logs are append-only and partitioned by day")
        with self.lock:
            jsonl.rewrite_json_lines(
                self.paths.log_for_kind(kind), (record.to_dict() for record in records)
            )
            if kind in SEQUENTIAL_ID_PREFIXES:
                self._index = None

    def activity_files(self) -> list[Path]:
        if not self.paths.activity_dir.is_dir():
            return []
        return sorted(self.paths.activity_dir.glob("*.jsonl"))

    def recent_activities(self, count: int) -> list[Activity]:
        """Today's activities, newest first."""

        log = self.paths.activity_log(now().date())
        activities = list(jsonl.iter_json_lines(log, Activity.from_dict))
        activities.sort(key=lambda item: item.timestamp or now(), reverse=True)
        return activities[:count]

    def find_patterns(self, tag: str) -> list[Pattern]:
        patterns = [
            cast(Pattern, pattern)
            for pattern in self.iter_records("pattern")
            if tag in cast(Pattern, pattern).applies_to
        ]
        patterns.sort(key=lambda pattern: pattern.confidence, reverse=True)
        return patterns

    def performance_baseline(self, operation: str) -> Performance | None:
        samples = [
            cast(Performance, sample)
            for sample in self.iter_records("performance")
            if cast(Performance, sample).operation == operation
        ]
        if not samples:
            return None
        return Performance(
            operation=operation,
            duration=sum(sample.duration for sample in samples) / len(samples),
            unit=samples[0].unit,
            context="Baseline from historical data",
        )

    # Mistakes --------------------------------------------------------------

    def check(self, description: str, *, persist: bool = False) -> MistakeVerdict:
        """Look for a recorded mistake matching a planned action.

        A match bumps the mistake's ``repeat_count``; only with ``persist`` is
        the bump written back to MISTAKES.jsonl.
        """

        mistakes = cast(list[Mistake], self.read_all("mistake"))
        verdict = check_for_mistake(mistakes, description)
        if persist and verdict.prior_mistake is not None:
            self._persist_mistake(verdict.prior_mistake)
        return verdict

    def _persist_mistake(self, mistake: Mistake) -> None:
        if not mistake.id:
            logger.debug("mistake without id, repeat count not persisted")
            return
        path = self.paths.mistakes
        with self.lock:
            if not path.exists():
                return
            lines = path.read_text(encoding="utf-8").splitlines()
            replaced = False
            out: list[str] = []
            for line in lines:
                if not replaced and line.strip():
                    try:
                        parsed = json.loads(line)
                    except json.JSONDecodeError:
                        parsed = None
                    if isinstance(parsed, dict) and parsed.get("id") == mistake.id:
                        line = jsonl.dumps_line(mistake.to_dict())
                        replaced = True
                out.append(line)
            if replaced:
                atomic_write_text(path, "\n".join(out) + "\n")

    # Stats -----------------------------------------------------------------

    def storage_size(self) -> int:
        total = 0
        for path in self.paths.root.rglob("*"):
            try:
                if path.is_file():
                    total += path.stat().st_size
            except OSError:
                continue
        return total

    def stats(self) -> dict[str, Any]:
        index = self.index
        today = self.recent_activities(100)
        failures = sum(1 for activity in today if activity.outcome == "failure")
        successes = sum(1 for activity in today if activity.outcome == "success")
        decided = failures + successes
        return {
            "project": self.project_name,
            "memory_path": str(self.paths.root),
            "size_bytes": self.storage_size(),
            "patterns": index.total_patterns,
            "high_confidence_patterns": len(index.high_confidence_patterns),
            "mistakes": index.total_mistakes,
            "critical_mistakes": len(index.critical_mistakes),
            "decisions": index.total_decisions,
            "activities_today": len(today),
            "errors_today": failures,
            "success_rate": (successes / decided * 100) if decided else None,
        }

    @staticmethod
    def _count(kind: str, index: MemoryIndex) -> int:
        return {
            "pattern": index.total_patterns,
            "mistake": index.total_mistakes,
            "decision": index.total_decisions,
        }[kind]
