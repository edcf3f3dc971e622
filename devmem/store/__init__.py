from __future__ import annotations

from ._store import MemoryStore, ensure_layout
from .index import MemoryIndex, build_index
from .types import (
    Activity,
    ContextUsage,
    CurrentTask,
    Decision,
    FileDigest,
    FileStructure,
    Mistake,
    MistakeVerdict,
    Pattern,
    PendingDecision,
    Performance,
    Record,
    SessionState,
)

__all__ = [
    "Activity",
    "ContextUsage",
    "CurrentTask",
    "Decision",
    "FileDigest",
    "FileStructure",
    "MemoryIndex",
    "MemoryStore",
    "Mistake",
    "MistakeVerdict",
    "Pattern",
    "PendingDecision",
    "Performance",
    "Record",
    "SessionState",
    "build_index",
    "ensure_layout",
]
