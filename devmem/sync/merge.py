from __future__ import annotations

import datetime as dt
import json
from typing import Any

from ..store.utils import parse_iso8601

_EARLIEST = dt.datetime.min.replace(tzinfo=dt.UTC)


def _parse_object(line: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _line_timestamp(line: str) -> dt.datetime:
    parsed = _parse_object(line)
    if parsed is None:
        return _EARLIEST
    value = parsed.get("timestamp")
    if not isinstance(value, str):
        return _EARLIEST
    return parse_iso8601(value) or _EARLIEST


def merge_json_lines(local: str, remote: str) -> str:
    """Union of two JSONL logs.

    Entries are de-duplicated by their ``id`` (local copy wins); lines with
    no usable id are kept verbatim and de-duplicated as raw strings. The
    result is ordered by ``timestamp``, unparseable timestamps first.
    """

    seen_ids: set[str] = set()
    seen_raw: set[str] = set()
    merged: list[str] = []
    for line in [*local.splitlines(), *remote.splitlines()]:
        if not line.strip():
            continue
        parsed = _parse_object(line)
        record_id = parsed.get("id") if parsed is not None else None
        if isinstance(record_id, str):
            if record_id in seen_ids:
                continue
            seen_ids.add(record_id)
        else:
            if line in seen_raw:
                continue
            seen_raw.add(line)
        merged.append(line)
    merged.sort(key=_line_timestamp)
    return "".join(line + "\n" for line in merged)


def merge_markdown(local: str, remote: str) -> str:
    """Line-set union: trimmed, non-blank, de-duplicated, sorted.

    Lossy for structured documents; FACTS.md is a flat bag of statements.
    """

    lines = {line.strip() for line in local.split("\n")} | {
        line.strip() for line in remote.split("\n")
    }
    merged = sorted(line for line in lines if line)
    return "\n".join(merged) + "\n" if merged else ""


def merge_json_state(local: str, remote: str, *, local_is_newer: bool) -> str:
    """Shallow per-key merge of two JSON objects.

    Keys on both sides take the newer file's value; one-sided keys pass
    through.
    """

    local_obj = json.loads(local)
    remote_obj = json.loads(remote)
    if not isinstance(local_obj, dict) or not isinstance(remote_obj, dict):
        raise ValueError("json state merge needs two JSON objects")
    merged: dict[str, Any] = {}
    for key in [*local_obj, *(k for k in remote_obj if k not in local_obj)]:
        if key in local_obj and key in remote_obj:
            merged[key] = local_obj[key] if local_is_newer else remote_obj[key]
        elif key in local_obj:
            merged[key] = local_obj[key]
        else:
            merged[key] = remote_obj[key]
    return json.dumps(merged, ensure_ascii=False, indent=2) + "\n"
