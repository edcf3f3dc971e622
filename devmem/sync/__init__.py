from .conflicts import (
    TRACKED_FILES,
    ConflictDetection,
    ConflictResolver,
    ConflictType,
    FileConflict,
    MergeStrategy,
    ResolveResult,
    classify,
)
from .merge import merge_json_lines, merge_json_state, merge_markdown

__all__ = [
    "TRACKED_FILES",
    "ConflictDetection",
    "ConflictResolver",
    "ConflictType",
    "FileConflict",
    "MergeStrategy",
    "ResolveResult",
    "classify",
    "merge_json_lines",
    "merge_json_state",
    "merge_markdown",
]
