from __future__ import annotations

from .confidence import consolidate_patterns, update_confidence
from .curator import CurationReport, MemoryCurator, run_curation_pass
from .extraction import extract_patterns, file_prefix, find_patterns_in_group, pattern_confidence

__all__ = [
    "CurationReport",
    "MemoryCurator",
    "consolidate_patterns",
    "extract_patterns",
    "file_prefix",
    "find_patterns_in_group",
    "pattern_confidence",
    "run_curation_pass",
    "update_confidence",
]
