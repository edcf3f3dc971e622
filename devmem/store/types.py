from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any

from ..errors import RecordError
from .utils import format_timestamp, parse_iso8601

# Field coercion helpers. Records are validated here, at the JSON boundary,
# so the rest of the code works with plain attributes.


def _require_mapping(data: object, record: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise RecordError(f"{record} must be a JSON object")
    return data


def _str(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise RecordError(f"{key} must be a string")
    return value


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    if data.get(key) is None:
        return None
    return _str(data, key)


def _int(data: dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordError(f"{key} must be a number")
    return int(value)


def _opt_int(data: dict[str, Any], key: str) -> int | None:
    if data.get(key) is None:
        return None
    return _int(data, key)


def _float(data: dict[str, Any], key: str, default: float = 0.0) -> float:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordError(f"{key} must be a number")
    return float(value)


def _opt_float(data: dict[str, Any], key: str) -> float | None:
    if data.get(key) is None:
        return None
    return _float(data, key)


def _bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise RecordError(f"{key} must be a boolean")
    return value


def _opt_bool(data: dict[str, Any], key: str) -> bool | None:
    if data.get(key) is None:
        return None
    return _bool(data, key, False)


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise RecordError(f"{key} must be a list of strings")
    return list(value)


def _int_list(data: dict[str, Any], key: str) -> list[int]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(
        isinstance(item, int) and not isinstance(item, bool) for item in value
    ):
        raise RecordError(f"{key} must be a list of integers")
    return list(value)


def _opt_dict(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise RecordError(f"{key} must be an object")
    return value


def _opt_dt(data: dict[str, Any], key: str) -> dt.datetime | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RecordError(f"{key} must be an ISO-8601 string")
    parsed = parse_iso8601(value)
    if parsed is None:
        raise RecordError(f"{key} is not a valid timestamp: {value!r}")
    return parsed


@dataclass
class Activity:
    action: str = ""
    description: str = ""
    id: str = ""
    timestamp: dt.datetime | None = None
    file: str | None = None
    line: int | None = None
    change: str | None = None
    reason: str = ""
    context: str = ""
    outcome: str | None = None
    duration_ms: int | None = None
    tokens_used: int | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "action": self.action,
            "description": self.description,
            "file": self.file,
            "line": self.line,
            "change": self.change,
            "reason": self.reason,
            "context": self.context,
            "outcome": self.outcome,
            "duration_ms": self.duration_ms,
            "tokens_used": self.tokens_used,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: object) -> Activity:
        raw = _require_mapping(data, "activity")
        return cls(
            id=_str(raw, "id"),
            timestamp=_opt_dt(raw, "timestamp"),
            action=_str(raw, "action"),
            description=_str(raw, "description"),
            file=_opt_str(raw, "file"),
            line=_opt_int(raw, "line"),
            change=_opt_str(raw, "change"),
            reason=_str(raw, "reason"),
            context=_str(raw, "context"),
            outcome=_opt_str(raw, "outcome"),
            duration_ms=_opt_int(raw, "duration_ms"),
            tokens_used=_opt_int(raw, "tokens_used"),
            metadata=_opt_dict(raw, "metadata"),
        )


@dataclass
class Pattern:
    description: str = ""
    confidence: int = 0
    id: str = ""
    evidence: list[str] = field(default_factory=list)
    applies_to: list[str] = field(default_factory=list)
    created: dt.datetime | None = None
    last_seen: dt.datetime | None = None
    occurrences: int = 0
    is_antipattern: bool = False
    recommended_instead: str | None = None
    decay_rate: float = 0.95

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pattern": self.description,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
            "applies_to": list(self.applies_to),
            "created": format_timestamp(self.created),
            "last_seen": format_timestamp(self.last_seen),
            "occurrences": self.occurrences,
            "is_antipattern": self.is_antipattern,
            "recommended_instead": self.recommended_instead,
            "decay_rate": self.decay_rate,
        }

    @classmethod
    def from_dict(cls, data: object) -> Pattern:
        raw = _require_mapping(data, "pattern")
        return cls(
            id=_str(raw, "id"),
            description=_str(raw, "pattern"),
            confidence=_int(raw, "confidence"),
            evidence=_str_list(raw, "evidence"),
            applies_to=_str_list(raw, "applies_to"),
            created=_opt_dt(raw, "created"),
            last_seen=_opt_dt(raw, "last_seen"),
            occurrences=_int(raw, "occurrences"),
            is_antipattern=_bool(raw, "is_antipattern", False),
            recommended_instead=_opt_str(raw, "recommended_instead"),
            decay_rate=_float(raw, "decay_rate", 0.95),
        )


CRITICAL_SEVERITIES = frozenset({"high", "critical"})


@dataclass
class Mistake:
    description: str = ""
    id: str = ""
    timestamp: dt.datetime | None = None
    impact: str = ""
    fix: str = ""
    lesson: str = ""
    severity: str = "medium"
    preventable: bool = True
    how_to_prevent: str = ""
    context: dict[str, Any] | None = None
    repeat_count: int = 0

    @property
    def is_critical(self) -> bool:
        return self.severity in CRITICAL_SEVERITIES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "mistake": self.description,
            "impact": self.impact,
            "fix": self.fix,
            "lesson": self.lesson,
            "severity": self.severity,
            "preventable": self.preventable,
            "how_to_prevent": self.how_to_prevent,
            "context": self.context,
            "repeat_count": self.repeat_count,
        }

    @classmethod
    def from_dict(cls, data: object) -> Mistake:
        raw = _require_mapping(data, "mistake")
        # unrecognised severities are kept as given and count as non-critical
        severity = _str(raw, "severity", "medium").strip().lower() or "medium"
        return cls(
            id=_str(raw, "id"),
            timestamp=_opt_dt(raw, "timestamp"),
            description=_str(raw, "mistake"),
            impact=_str(raw, "impact"),
            fix=_str(raw, "fix"),
            lesson=_str(raw, "lesson"),
            severity=severity,
            preventable=_bool(raw, "preventable", True),
            how_to_prevent=_str(raw, "how_to_prevent"),
            context=_opt_dict(raw, "context"),
            repeat_count=_int(raw, "repeat_count"),
        )


@dataclass
class Decision:
    description: str = ""
    id: str = ""
    timestamp: dt.datetime | None = None
    file: str | None = None
    alternatives_considered: list[str] = field(default_factory=list)
    chose: str = ""
    reasoning: str = ""
    outcome: str | None = None
    would_repeat: bool | None = None
    follow_up: str | None = None
    context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "decision": self.description,
            "file": self.file,
            "alternatives_considered": list(self.alternatives_considered),
            "chose": self.chose,
            "reasoning": self.reasoning,
            "outcome": self.outcome,
            "would_repeat": self.would_repeat,
            "follow_up": self.follow_up,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: object) -> Decision:
        raw = _require_mapping(data, "decision")
        return cls(
            id=_str(raw, "id"),
            timestamp=_opt_dt(raw, "timestamp"),
            description=_str(raw, "decision"),
            file=_opt_str(raw, "file"),
            alternatives_considered=_str_list(raw, "alternatives_considered"),
            chose=_str(raw, "chose"),
            reasoning=_str(raw, "reasoning"),
            outcome=_opt_str(raw, "outcome"),
            would_repeat=_opt_bool(raw, "would_repeat"),
            follow_up=_opt_str(raw, "follow_up"),
            context=_opt_dict(raw, "context"),
        )


@dataclass
class Performance:
    operation: str = ""
    duration: float = 0.0
    timestamp: dt.datetime | None = None
    unit: str = "seconds"
    context: str = ""
    baseline: float | None = None
    metadata: dict[str, Any] | None = None

    @property
    def deviation(self) -> float | None:
        if self.baseline is None:
            return None
        return self.duration - self.baseline

    @property
    def is_outlier(self) -> bool:
        deviation = self.deviation
        if self.baseline is None or deviation is None:
            return False
        return abs(deviation) > self.baseline * 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "timestamp": format_timestamp(self.timestamp),
            "duration": self.duration,
            "unit": self.unit,
            "context": self.context,
            "baseline": self.baseline,
            "deviation": self.deviation,
            "is_outlier": self.is_outlier,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: object) -> Performance:
        raw = _require_mapping(data, "performance")
        # deviation / is_outlier are derived and ignored on read.
        return cls(
            operation=_str(raw, "operation"),
            timestamp=_opt_dt(raw, "timestamp"),
            duration=_float(raw, "duration"),
            unit=_str(raw, "unit", "seconds"),
            context=_str(raw, "context"),
            baseline=_opt_float(raw, "baseline"),
            metadata=_opt_dict(raw, "metadata"),
        )


Record = Activity | Pattern | Mistake | Decision | Performance

RECORD_TYPES: dict[str, type[Record]] = {
    "activity": Activity,
    "pattern": Pattern,
    "mistake": Mistake,
    "decision": Decision,
    "performance": Performance,
}


@dataclass
class ContextUsage:
    tokens_used: int = 0
    tokens_limit: int = 200000
    warning_threshold: int = 150000
    critical_threshold: int = 180000

    @property
    def percentage(self) -> float:
        if self.tokens_limit <= 0:
            return 0.0
        return self.tokens_used / self.tokens_limit * 100

    @property
    def should_warn(self) -> bool:
        return self.tokens_used > self.warning_threshold

    @property
    def should_handoff(self) -> bool:
        return self.tokens_used >= self.critical_threshold

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens_used": self.tokens_used,
            "tokens_limit": self.tokens_limit,
            "percentage": self.percentage,
            "warning_threshold": self.warning_threshold,
            "critical_threshold": self.critical_threshold,
            "should_handoff": self.should_handoff,
        }

    @classmethod
    def from_dict(cls, data: object) -> ContextUsage:
        raw = _require_mapping(data, "context_usage")
        return cls(
            tokens_used=_int(raw, "tokens_used"),
            tokens_limit=_int(raw, "tokens_limit", 200000),
            warning_threshold=_int(raw, "warning_threshold", 150000),
            critical_threshold=_int(raw, "critical_threshold", 180000),
        )


@dataclass
class CurrentTask:
    description: str = ""
    status: str = "not_started"
    next_steps: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    files_to_modify: list[str] = field(default_factory=list)
    blockers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "status": self.status,
            "next_steps": list(self.next_steps),
            "files_modified": list(self.files_modified),
            "files_to_modify": list(self.files_to_modify),
            "blockers": list(self.blockers),
        }

    @classmethod
    def from_dict(cls, data: object) -> CurrentTask:
        raw = _require_mapping(data, "current_task")
        return cls(
            description=_str(raw, "description"),
            status=_str(raw, "status", "not_started"),
            next_steps=_str_list(raw, "next_steps"),
            files_modified=_str_list(raw, "files_modified"),
            files_to_modify=_str_list(raw, "files_to_modify"),
            blockers=_str_list(raw, "blockers"),
        )


@dataclass
class PendingDecision:
    question: str = ""
    options: list[str] = field(default_factory=list)
    needs_user_input: bool = True
    created: dt.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "needs_user_input": self.needs_user_input,
            "created": format_timestamp(self.created),
        }

    @classmethod
    def from_dict(cls, data: object) -> PendingDecision:
        raw = _require_mapping(data, "pending decision")
        return cls(
            question=_str(raw, "question"),
            options=_str_list(raw, "options"),
            needs_user_input=_bool(raw, "needs_user_input", True),
            created=_opt_dt(raw, "created"),
        )


@dataclass
class SessionState:
    session_id: str = ""
    started: dt.datetime | None = None
    last_activity: dt.datetime | None = None
    current_task: CurrentTask | None = None
    context_usage: ContextUsage = field(default_factory=ContextUsage)
    decisions_pending: list[PendingDecision] = field(default_factory=list)
    uncertainties_flagged: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started": format_timestamp(self.started),
            "last_activity": format_timestamp(self.last_activity),
            "current_task": self.current_task.to_dict() if self.current_task else None,
            "context_usage": self.context_usage.to_dict(),
            "decisions_pending": [item.to_dict() for item in self.decisions_pending],
            "uncertainties_flagged": list(self.uncertainties_flagged),
        }

    @classmethod
    def from_dict(cls, data: object) -> SessionState:
        raw = _require_mapping(data, "session state")
        task_raw = raw.get("current_task")
        usage_raw = raw.get("context_usage")
        pending_raw = raw.get("decisions_pending") or []
        if not isinstance(pending_raw, list):
            raise RecordError("decisions_pending must be a list")
        return cls(
            session_id=_str(raw, "session_id"),
            started=_opt_dt(raw, "started"),
            last_activity=_opt_dt(raw, "last_activity"),
            current_task=CurrentTask.from_dict(task_raw) if task_raw is not None else None,
            context_usage=(
                ContextUsage.from_dict(usage_raw) if usage_raw is not None else ContextUsage()
            ),
            decisions_pending=[PendingDecision.from_dict(item) for item in pending_raw],
            uncertainties_flagged=_str_list(raw, "uncertainties_flagged"),
        )


@dataclass
class FileStructure:
    classes: list[str] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)
    critical_lines: list[int] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "classes": list(self.classes),
            "methods": list(self.methods),
            "critical_lines": list(self.critical_lines),
            "imports": list(self.imports),
        }

    @classmethod
    def from_dict(cls, data: object) -> FileStructure:
        raw = _require_mapping(data, "structure")
        return cls(
            classes=_str_list(raw, "classes"),
            methods=_str_list(raw, "methods"),
            critical_lines=_int_list(raw, "critical_lines"),
            imports=_str_list(raw, "imports"),
        )


@dataclass
class FileDigest:
    path: str
    size: int = 0
    lines: int = 0
    last_modified: dt.datetime | None = None
    hash: str = ""
    structure: FileStructure | None = None
    facts: list[str] = field(default_factory=list)
    last_read: dt.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "lines": self.lines,
            "last_modified": format_timestamp(self.last_modified),
            "hash": self.hash,
            "structure": self.structure.to_dict() if self.structure else None,
            "facts": list(self.facts),
            "last_read": format_timestamp(self.last_read),
        }

    @classmethod
    def from_dict(cls, data: object) -> FileDigest:
        raw = _require_mapping(data, "file digest")
        structure_raw = raw.get("structure")
        return cls(
            path=_str(raw, "path"),
            size=_int(raw, "size"),
            lines=_int(raw, "lines"),
            last_modified=_opt_dt(raw, "last_modified"),
            hash=_str(raw, "hash"),
            structure=FileStructure.from_dict(structure_raw) if structure_raw is not None else None,
            facts=_str_list(raw, "facts"),
            last_read=_opt_dt(raw, "last_read"),
        )


@dataclass
class MistakeVerdict:
    should_proceed: bool
    reason: str = ""
    alternative: str | None = None
    prior_mistake: Mistake | None = None

    @property
    def found_prior_attempt(self) -> bool:
        return self.prior_mistake is not None
