from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass, field

from .types import Decision, Mistake, Pattern
from .utils import now

HIGH_CONFIDENCE_THRESHOLD = 80


@dataclass
class MemoryIndex:
    """In-memory summary of the record logs, rebuilt on every session load.

    This is a cache over PATTERNS/MISTAKES/DECISIONS.jsonl, never a source of
    truth, and is not persisted.
    """

    built: dt.datetime | None = None
    total_patterns: int = 0
    total_mistakes: int = 0
    total_decisions: int = 0
    tag_index: dict[str, list[str]] = field(default_factory=dict)
    high_confidence_patterns: list[str] = field(default_factory=list)
    critical_mistakes: list[str] = field(default_factory=list)
    high_confidence_threshold: int = HIGH_CONFIDENCE_THRESHOLD

    def add_pattern(self, pattern: Pattern) -> None:
        self.total_patterns += 1
        if pattern.confidence >= self.high_confidence_threshold:
            self.high_confidence_patterns.append(pattern.id)
        for tag in pattern.applies_to:
            self.tag_index.setdefault(tag, []).append(pattern.id)

    def add_mistake(self, mistake: Mistake) -> None:
        self.total_mistakes += 1
        if mistake.is_critical:
            self.critical_mistakes.append(mistake.id)

    def add_decision(self, decision: Decision) -> None:
        self.total_decisions += 1

    def patterns_for_tag(self, tag: str) -> list[str]:
        return list(self.tag_index.get(tag, []))


def build_index(
    patterns: Iterable[Pattern],
    mistakes: Iterable[Mistake],
    decisions: Iterable[Decision],
    *,
    high_confidence_threshold: int = HIGH_CONFIDENCE_THRESHOLD,
) -> MemoryIndex:
    index = MemoryIndex(built=now(), high_confidence_threshold=high_confidence_threshold)
    for pattern in patterns:
        index.add_pattern(pattern)
    for mistake in mistakes:
        index.add_mistake(mistake)
    for decision in decisions:
        index.add_decision(decision)
    return index
