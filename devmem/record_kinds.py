from __future__ import annotations

from typing import Final

ALLOWED_RECORD_KINDS: Final[tuple[str, ...]] = (
    "activity",
    "pattern",
    "mistake",
    "decision",
    "performance",
)

# Kinds whose ids are sequential (PAT001, ERR002, ...). Activities carry a
# date + random suffix instead, performance samples carry no id at all.
SEQUENTIAL_ID_PREFIXES: Final[dict[str, str]] = {
    "pattern": "PAT",
    "mistake": "ERR",
    "decision": "DEC",
}


def normalize_record_kind(kind: str) -> str:
    normalized = (kind or "").strip().lower()
    if normalized.endswith("s") and normalized[:-1] in ALLOWED_RECORD_KINDS:
        return normalized[:-1]
    return normalized


def validate_record_kind(kind: str) -> str:
    normalized = normalize_record_kind(kind)
    if normalized in ALLOWED_RECORD_KINDS:
        return normalized

    if normalized in {"fact", "facts"}:
        raise ValueError(
            f"Invalid record kind '{normalized}'. Facts live in FACTS.md and are not "
            f"recorded as JSON lines. Allowed kinds: {', '.join(ALLOWED_RECORD_KINDS)}"
        )

    raise ValueError(
        f"Invalid record kind '{normalized}'. Allowed kinds: {', '.join(ALLOWED_RECORD_KINDS)}"
    )


def format_sequential_id(kind: str, number: int) -> str:
    return f"{SEQUENTIAL_ID_PREFIXES[kind]}{number:03d}"
