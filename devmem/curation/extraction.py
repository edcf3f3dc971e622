from __future__ import annotations

import datetime as dt
import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from ..store import jsonl
from ..store.types import Activity, Pattern
from ..store.utils import now as local_now

if TYPE_CHECKING:
    from ..store import MemoryStore

logger = logging.getLogger(__name__)

CONFIDENCE_CAP = 95
_PREFIX_BREAK = re.compile(r"[_.\-0-9]")


@dataclass
class ExtractionStats:
    patterns_found: int = 0
    activities_consolidated: int = 0
    new_patterns: list[Pattern] = field(default_factory=list)
    reinforced: list[str] = field(default_factory=list)


def file_prefix(file_path: str | None) -> str:
    """First word of a file's base name: ``config_42.json`` -> ``config``."""

    if not file_path:
        return "unknown"
    stem = PurePosixPath(file_path.replace("\\", "/")).stem
    return _PREFIX_BREAK.split(stem, maxsplit=1)[0]


def pattern_confidence(occurrences: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(CONFIDENCE_CAP, math.floor(100 * occurrences / total + 0.5))


def describe_pattern(action: str, prefix: str, outcome: str | None) -> str:
    return f"{action} on {prefix} files typically results in {outcome or ''}"


def find_patterns_in_group(
    activities: Sequence[Activity],
    *,
    min_occurrences: int = 3,
    min_confidence: int = 70,
    decay_rate: float = 0.95,
    now: dt.datetime | None = None,
) -> list[Pattern]:
    """Candidate patterns for one action group.

    Activities are sub-grouped by ``(action, file prefix, outcome)``; a
    missing outcome is a key value of its own.
    """

    stamp = now or local_now()
    subgroups: dict[tuple[str, str, str | None], list[Activity]] = {}
    for activity in activities:
        key = (activity.action, file_prefix(activity.file), activity.outcome)
        subgroups.setdefault(key, []).append(activity)

    patterns: list[Pattern] = []
    for (action, prefix, outcome), members in subgroups.items():
        if len(members) < min_occurrences:
            continue
        confidence = pattern_confidence(len(members), len(activities))
        if confidence < min_confidence:
            continue
        patterns.append(
            Pattern(
                description=describe_pattern(action, prefix, outcome),
                confidence=confidence,
                evidence=[member.id for member in members],
                applies_to=[action],
                created=stamp,
                last_seen=stamp,
                occurrences=len(members),
                decay_rate=decay_rate,
            )
        )
    return patterns


def recent_activity_files(activity_dir: Path, *, window_days: int, now: dt.datetime) -> list[Path]:
    if not activity_dir.is_dir():
        return []
    cutoff = (now - dt.timedelta(days=window_days)).timestamp()
    return sorted(
        path for path in activity_dir.glob("*.jsonl") if path.stat().st_mtime > cutoff
    )


def group_by_action(activities: Sequence[Activity]) -> dict[str, list[Activity]]:
    groups: dict[str, list[Activity]] = {}
    for activity in activities:
        groups.setdefault(activity.action, []).append(activity)
    return groups


def extract_patterns(store: MemoryStore, *, now: dt.datetime | None = None) -> ExtractionStats:
    """Turn repeated recent activity into Pattern records.

    A pattern whose description already exists is only logged as
    reinforced; duplicates that slip through are merged by consolidation.
    """

    cfg = store.config
    stamp = now or local_now()
    stats = ExtractionStats()

    activities: list[Activity] = []
    for path in recent_activity_files(
        store.paths.activity_dir, window_days=cfg.extraction_window_days, now=stamp
    ):
        activities.extend(jsonl.iter_json_lines(path, Activity.from_dict))

    for group in group_by_action(activities).values():
        if len(group) < cfg.pattern_min_occurrences:
            continue
        candidates = find_patterns_in_group(
            group,
            min_occurrences=cfg.pattern_min_occurrences,
            min_confidence=cfg.pattern_min_confidence,
            decay_rate=cfg.default_decay_rate,
            now=stamp,
        )
        stats.patterns_found += len(candidates)
        for candidate in candidates:
            tag = candidate.applies_to[0] if candidate.applies_to else "general"
            existing = store.find_patterns(tag)
            if any(pattern.description == candidate.description for pattern in existing):
                stats.reinforced.append(candidate.description)
                logger.info("reinforced pattern: %s", candidate.description)
            else:
                store.append("pattern", candidate)
                stats.new_patterns.append(candidate)
                logger.info("new pattern: %s", candidate.description)
            stats.activities_consolidated += len(group)
    return stats
