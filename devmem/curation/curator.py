from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..store.utils import now as local_now
from .confidence import consolidate_duplicates, decay_patterns
from .extraction import extract_patterns
from .housekeeping import archive_old_logs, compress_archives, flag_stale_items

if TYPE_CHECKING:
    from ..store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class CurationReport:
    timestamp: dt.datetime
    project_name: str
    patterns_extracted: int = 0
    activities_consolidated: int = 0
    confidence_updates: int = 0
    patterns_decayed: int = 0
    logs_archived: int = 0
    space_freed: int = 0
    duplicates_removed: int = 0
    stale_items_flagged: int = 0
    archives_compressed: int = 0
    compression_failures: int = 0
    compression_ratio: float = 0.0
    # Steps that raised; their counters stay at whatever they reached.
    errors: list[str] = field(default_factory=list)
    completed_at: dt.datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def duration_s(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.timestamp).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "project_name": self.project_name,
            "patterns_extracted": self.patterns_extracted,
            "activities_consolidated": self.activities_consolidated,
            "confidence_updates": self.confidence_updates,
            "patterns_decayed": self.patterns_decayed,
            "logs_archived": self.logs_archived,
            "space_freed": self.space_freed,
            "duplicates_removed": self.duplicates_removed,
            "stale_items_flagged": self.stale_items_flagged,
            "archives_compressed": self.archives_compressed,
            "compression_failures": self.compression_failures,
            "compression_ratio": self.compression_ratio,
            "errors": list(self.errors),
            "duration_s": self.duration_s,
        }


class MemoryCurator:
    """Daily maintenance pass over one project's memory directory.

    Steps run in a fixed order and each one is isolated: a failing step is
    logged and recorded in ``report.errors`` and the next step still runs.
    The whole pass holds the project lock.
    """

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def run_curation_pass(self, *, now: dt.datetime | None = None) -> CurationReport:
        stamp = now or local_now()
        report = CurationReport(timestamp=stamp, project_name=self.store.project_name)
        steps: list[tuple[str, Callable[[CurationReport, dt.datetime], None]]] = [
            ("extract_patterns", self._extract),
            ("update_confidence", self._decay),
            ("archive_logs", self._archive),
            ("consolidate_duplicates", self._consolidate),
            ("flag_stale_items", self._flag_stale),
            ("compress_archives", self._compress),
        ]
        with self.store.lock:
            for position, (name, step) in enumerate(steps, start=1):
                logger.info("[%d/%d] %s", position, len(steps), name)
                try:
                    step(report, stamp)
                except Exception as exc:
                    logger.exception("curation step %s failed", name, exc_info=exc)
                    report.errors.append(name)
        report.completed_at = local_now()
        return report

    def _extract(self, report: CurationReport, now: dt.datetime) -> None:
        stats = extract_patterns(self.store, now=now)
        report.patterns_extracted = stats.patterns_found
        report.activities_consolidated = stats.activities_consolidated

    def _decay(self, report: CurationReport, now: dt.datetime) -> None:
        stats = decay_patterns(self.store, now=now)
        report.confidence_updates = stats.updated
        report.patterns_decayed = stats.decayed

    def _archive(self, report: CurationReport, now: dt.datetime) -> None:
        paths = self.store.paths
        stats = archive_old_logs(
            paths.activity_dir,
            paths.archive_dir,
            older_than_days=self.store.config.archive_after_days,
            now=now,
        )
        report.logs_archived = stats.files_archived
        report.space_freed = stats.bytes_freed

    def _consolidate(self, report: CurationReport, now: dt.datetime) -> None:
        report.duplicates_removed = consolidate_duplicates(self.store)

    def _flag_stale(self, report: CurationReport, now: dt.datetime) -> None:
        report.stale_items_flagged = flag_stale_items(
            self.store.paths.uncertainties,
            threshold=self.store.config.stale_uncertainty_threshold,
        )

    def _compress(self, report: CurationReport, now: dt.datetime) -> None:
        stats = compress_archives(
            self.store.paths.archive_dir,
            older_than_days=self.store.config.compress_after_days,
            now=now,
        )
        report.archives_compressed = stats.compressed
        report.compression_failures = stats.failed
        report.compression_ratio = stats.ratio


def run_curation_pass(store: MemoryStore, *, now: dt.datetime | None = None) -> CurationReport:
    return MemoryCurator(store).run_curation_pass(now=now)
