from __future__ import annotations

import datetime as dt
import gzip
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

CHECKLIST_PREFIXES = ("- [ ]", "- [x]")


@dataclass
class ArchiveStats:
    files_archived: int = 0
    bytes_freed: int = 0


@dataclass
class CompressionStats:
    compressed: int = 0
    failed: int = 0
    ratio: float = 0.0


def format_bytes(size: int) -> str:
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def _older_than(path: Path, cutoff: dt.datetime) -> bool:
    return path.stat().st_mtime < cutoff.timestamp()


def archive_old_logs(
    activity_dir: Path, archive_dir: Path, *, older_than_days: int, now: dt.datetime
) -> ArchiveStats:
    """Move per-day activity logs not written for ``older_than_days`` to the archive."""

    stats = ArchiveStats()
    if not activity_dir.is_dir():
        return stats
    archive_dir.mkdir(parents=True, exist_ok=True)
    cutoff = now - dt.timedelta(days=older_than_days)
    for path in sorted(activity_dir.glob("*.jsonl")):
        if not _older_than(path, cutoff):
            continue
        target = archive_dir / path.name
        # A rename keeps the mtime, which compression relies on.
        os.replace(path, target)
        size = target.stat().st_size
        stats.files_archived += 1
        stats.bytes_freed += size
        logger.info("archived %s (%s)", path.name, format_bytes(size))
    return stats


def compress_file(path: Path) -> tuple[int, int]:
    gz_path = path.with_name(path.name + ".gz")
    original_size = path.stat().st_size
    with path.open("rb") as source, gzip.open(gz_path, "wb") as target:
        shutil.copyfileobj(source, target)
    compressed_size = gz_path.stat().st_size
    path.unlink()
    return original_size, compressed_size


def compress_archives(archive_dir: Path, *, older_than_days: int, now: dt.datetime) -> CompressionStats:
    """Gzip archived logs older than ``older_than_days``; the ratio is averaged."""

    stats = CompressionStats()
    if not archive_dir.is_dir():
        return stats
    cutoff = now - dt.timedelta(days=older_than_days)
    ratio_total = 0.0
    for path in sorted(archive_dir.glob("*.jsonl")):
        try:
            if not _older_than(path, cutoff):
                continue
            original_size, compressed_size = compress_file(path)
        except OSError as exc:
            stats.failed += 1
            logger.warning("compression failed for %s", path, exc_info=exc)
            continue
        ratio = 1.0 - (compressed_size / original_size) if original_size else 0.0
        stats.compressed += 1
        ratio_total += ratio
        logger.info(
            "compressed %s (%s -> %s, %.0f%% reduction)",
            path.name,
            format_bytes(original_size),
            format_bytes(compressed_size),
            ratio * 100,
        )
    if stats.compressed:
        stats.ratio = ratio_total / stats.compressed
    return stats


def count_checklist_items(text: str) -> int:
    return sum(1 for line in text.split("\n") if line.startswith(CHECKLIST_PREFIXES))


def flag_stale_items(uncertainties: Path, *, threshold: int) -> int:
    """Number of checklist items in UNCERTAINTIES.md when above ``threshold``, else 0.

    Advisory only; nothing is resolved or rewritten.
    """

    if not uncertainties.exists():
        return 0
    count = count_checklist_items(uncertainties.read_text(encoding="utf-8"))
    if count > threshold:
        logger.warning("%d uncertainties - consider reviewing", count)
        return count
    return 0
