from __future__ import annotations

import datetime as dt
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, cast

from ..store.types import Pattern
from ..store.utils import days_between
from ..store.utils import now as local_now

if TYPE_CHECKING:
    from ..store import MemoryStore

logger = logging.getLogger(__name__)

DECAY_GRACE_DAYS = 30


@dataclass
class DecayStats:
    updated: int = 0
    decayed: int = 0


def update_confidence(
    pattern: Pattern, *, now: dt.datetime | None = None, grace_days: int = DECAY_GRACE_DAYS
) -> Pattern:
    """Return ``pattern`` with confidence decayed for time since last seen.

    Past the grace period, ``confidence = floor(confidence * rate ** (days / 30))``.
    The rate is clamped to [0, 1] so confidence never rises.
    """

    if pattern.last_seen is None:
        return replace(pattern)
    days = days_between(pattern.last_seen, now or local_now())
    if days <= grace_days:
        return replace(pattern)
    rate = min(max(pattern.decay_rate, 0.0), 1.0)
    confidence = math.floor(pattern.confidence * rate ** (days / 30))
    return replace(pattern, confidence=min(confidence, pattern.confidence))


def decay_patterns(store: MemoryStore, *, now: dt.datetime | None = None) -> DecayStats:
    stats = DecayStats()
    if not store.paths.patterns.exists():
        return stats
    stamp = now or local_now()
    updated: list[Pattern] = []
    with store.lock:
        for pattern in cast(list[Pattern], store.read_all("pattern")):
            decayed = update_confidence(pattern, now=stamp, grace_days=store.config.decay_grace_days)
            if decayed.confidence != pattern.confidence:
                stats.decayed += 1
                logger.info(
                    "decayed %s: %d%% -> %d%%",
                    pattern.description,
                    pattern.confidence,
                    decayed.confidence,
                )
            updated.append(decayed)
            stats.updated += 1
        store.rewrite("pattern", updated)
    return stats


def consolidate_patterns(patterns: Sequence[Pattern]) -> tuple[list[Pattern], int]:
    """Merge patterns sharing an exact description.

    The first of each group survives with the max confidence, summed
    occurrences, de-duplicated evidence and the latest ``last_seen``.
    Returns the consolidated list (first-appearance order) and the number
    of records merged away.
    """

    groups: dict[str, list[Pattern]] = {}
    for pattern in patterns:
        groups.setdefault(pattern.description, []).append(pattern)

    consolidated: list[Pattern] = []
    removed = 0
    for description, group in groups.items():
        if len(group) == 1:
            consolidated.append(group[0])
            continue
        evidence: list[str] = []
        for pattern in group:
            for item in pattern.evidence:
                if item not in evidence:
                    evidence.append(item)
        seen = [pattern.last_seen for pattern in group if pattern.last_seen is not None]
        merged = replace(
            group[0],
            confidence=max(pattern.confidence for pattern in group),
            occurrences=sum(pattern.occurrences for pattern in group),
            evidence=evidence,
            last_seen=max(seen) if seen else None,
        )
        consolidated.append(merged)
        removed += len(group) - 1
        logger.info("merged %d duplicate patterns: %s", len(group), description)
    return consolidated, removed


def consolidate_duplicates(store: MemoryStore) -> int:
    if not store.paths.patterns.exists():
        return 0
    with store.lock:
        consolidated, removed = consolidate_patterns(
            cast(list[Pattern], store.read_all("pattern"))
        )
        if removed:
            store.rewrite("pattern", consolidated)
    return removed
