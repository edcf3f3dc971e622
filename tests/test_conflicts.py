import datetime as dt
import json
import os
import zipfile
from pathlib import Path

import pytest

from devmem.sync import (
    ConflictResolver,
    ConflictType,
    MergeStrategy,
    classify,
    merge_json_lines,
    merge_json_state,
    merge_markdown,
)

T1 = dt.datetime(2026, 5, 1, 9, 0, tzinfo=dt.UTC).timestamp()
T2 = dt.datetime(2026, 5, 2, 9, 0, tzinfo=dt.UTC).timestamp()


def _write(path: Path, text: str, mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def _line(record_id: str, day: int, text: str = "p") -> str:
    return json.dumps(
        {"id": record_id, "timestamp": f"2026-05-{day:02d}T10:00:00+00:00", "pattern": text}
    )


@pytest.fixture
def local_dir(tmp_path: Path) -> Path:
    return tmp_path / "local"


@pytest.fixture
def remote_dir(tmp_path: Path) -> Path:
    return tmp_path / "remote"


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("PATTERNS.jsonl", ConflictType.APPENDABLE_LOG),
        ("FACTS.md", ConflictType.MARKDOWN_DOCUMENT),
        ("session_state.json", ConflictType.JSON_STATE),
        ("snapshot.bin", ConflictType.UNKNOWN),
    ],
)
def test_classify(name: str, expected: ConflictType) -> None:
    assert classify(name) is expected


def test_detection_is_content_based(local_dir: Path, remote_dir: Path) -> None:
    _write(local_dir / "FACTS.md", "- same\n")
    _write(remote_dir / "FACTS.md", "- same\n")
    _write(local_dir / "PATTERNS.jsonl", "abc\n")
    _write(remote_dir / "PATTERNS.jsonl", "abd\n")
    _write(local_dir / "MISTAKES.jsonl", "only local\n")
    _write(remote_dir / "DECISIONS.jsonl", "only remote\n")

    detection = ConflictResolver(local_dir).detect_conflicts(remote_dir)

    assert detection.has_conflicts
    assert [conflict.file_name for conflict in detection.conflicts] == ["PATTERNS.jsonl"]
    assert detection.conflicts[0].conflict_type is ConflictType.APPENDABLE_LOG
    assert detection.message == "Found 1 conflict(s)"


def test_no_conflicts_message(local_dir: Path, remote_dir: Path) -> None:
    _write(local_dir / "FACTS.md", "- same\n")
    _write(remote_dir / "FACTS.md", "- same\n")
    detection = ConflictResolver(local_dir).detect_conflicts(remote_dir)
    assert not detection.has_conflicts
    assert detection.message == "No conflicts detected"


def test_newest_and_keep_local(local_dir: Path, remote_dir: Path) -> None:
    local_text = _line("PAT001", 1) + "\n" + _line("PAT002", 2, "local") + "\n"
    remote_text = _line("PAT001", 1) + "\n" + _line("PAT002", 2, "remote") + "\n"
    local = _write(local_dir / "PATTERNS.jsonl", local_text, T1)
    _write(remote_dir / "PATTERNS.jsonl", remote_text, T2)
    resolver = ConflictResolver(local_dir)

    kept = resolver.resolve_conflicts(
        resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.KEEP_LOCAL
    )
    assert kept.success
    assert local.read_text(encoding="utf-8") == local_text

    conflicts = resolver.detect_conflicts(remote_dir).conflicts
    assert conflicts[0].remote_modified > conflicts[0].local_modified
    result = resolver.resolve_conflicts(conflicts, MergeStrategy.NEWEST)
    assert result.resolved == 1
    assert local.read_text(encoding="utf-8") == remote_text


def test_newest_keeps_local_when_remote_is_older(local_dir: Path, remote_dir: Path) -> None:
    local = _write(local_dir / "FACTS.md", "- local\n", T2)
    _write(remote_dir / "FACTS.md", "- remote\n", T1)
    resolver = ConflictResolver(local_dir)
    resolver.resolve_conflicts(resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.NEWEST)
    assert local.read_text(encoding="utf-8") == "- local\n"


def test_keep_remote(local_dir: Path, remote_dir: Path) -> None:
    local = _write(local_dir / "FACTS.md", "- local\n", T2)
    _write(remote_dir / "FACTS.md", "- remote\n", T1)
    resolver = ConflictResolver(local_dir)
    resolver.resolve_conflicts(
        resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.KEEP_REMOTE
    )
    assert local.read_text(encoding="utf-8") == "- remote\n"


def test_keep_both_writes_side_copies(local_dir: Path, remote_dir: Path) -> None:
    local = _write(local_dir / "MISTAKES.jsonl", "local\n")
    _write(remote_dir / "MISTAKES.jsonl", "remote\n")
    resolver = ConflictResolver(local_dir)
    resolver.resolve_conflicts(
        resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.KEEP_BOTH
    )
    assert local.read_text(encoding="utf-8") == "local\n"
    assert (local_dir / "MISTAKES.jsonl.local").read_text(encoding="utf-8") == "local\n"
    assert (local_dir / "MISTAKES.jsonl.remote").read_text(encoding="utf-8") == "remote\n"


def test_smart_merge_jsonl_is_id_union(local_dir: Path, remote_dir: Path) -> None:
    local = _write(
        local_dir / "DECISIONS.jsonl",
        "\n".join([_line("DEC002", 3, "local"), _line("DEC001", 1)]) + "\n",
    )
    _write(
        remote_dir / "DECISIONS.jsonl",
        "\n".join([_line("DEC001", 1), _line("DEC002", 3, "remote"), _line("DEC003", 2)]) + "\n",
    )
    resolver = ConflictResolver(local_dir)
    result = resolver.resolve_conflicts(
        resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.SMART
    )
    assert result.success
    records = [json.loads(line) for line in local.read_text(encoding="utf-8").splitlines()]
    assert [record["id"] for record in records] == ["DEC001", "DEC003", "DEC002"]
    assert records[-1]["pattern"] == "local"


def test_smart_merge_markdown(local_dir: Path, remote_dir: Path) -> None:
    local = _write(local_dir / "FACTS.md", "# Facts\n- b\n\n- a\n")
    _write(remote_dir / "FACTS.md", "# Facts\n  - c\n- a\n")
    resolver = ConflictResolver(local_dir)
    resolver.resolve_conflicts(resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.SMART)
    assert local.read_text(encoding="utf-8") == "# Facts\n- a\n- b\n- c\n"


def test_smart_merge_json_state_and_unknown(local_dir: Path, remote_dir: Path) -> None:
    state = _write(local_dir / "session_state.json", '{"a": 1, "b": 1}', T1)
    _write(remote_dir / "session_state.json", '{"b": 2, "c": 3}', T2)
    notes = _write(local_dir / "notes.txt", "old", T1)
    _write(remote_dir / "notes.txt", "new", T2)
    resolver = ConflictResolver(local_dir, tracked_files=["session_state.json", "notes.txt"])

    result = resolver.resolve_conflicts(
        resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.SMART
    )

    assert result.resolved == 2
    assert json.loads(state.read_text(encoding="utf-8")) == {"a": 1, "b": 2, "c": 3}
    assert notes.read_text(encoding="utf-8") == "new"


def test_resolution_failures_are_tallied(local_dir: Path, remote_dir: Path) -> None:
    _write(local_dir / "state.json", "[not an object]")
    _write(remote_dir / "state.json", "{}")
    _write(local_dir / "FACTS.md", "- x\n")
    _write(remote_dir / "FACTS.md", "- y\n")
    resolver = ConflictResolver(local_dir, tracked_files=["state.json", "FACTS.md"])

    result = resolver.resolve_conflicts(
        resolver.detect_conflicts(remote_dir).conflicts, MergeStrategy.SMART
    )

    assert (result.resolved, result.failed) == (1, 1)
    assert not result.success
    assert result.message == "Resolved 1 conflict(s), 1 failed"


def test_zip_snapshot_keeps_timestamps_until_cleanup(local_dir: Path, tmp_path: Path) -> None:
    local = _write(local_dir / "PATTERNS.jsonl", _line("PAT001", 1) + "\n")
    archive = tmp_path / "backup.zip"
    remote_text = _line("PAT001", 1) + "\n" + _line("PAT002", 2) + "\n"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr(zipfile.ZipInfo("PATTERNS.jsonl", date_time=(2030, 6, 1, 12, 0, 0)), remote_text)

    resolver = ConflictResolver(local_dir)
    with resolver.detect_conflicts(archive) as detection:
        workdir = detection.workdir
        assert workdir is not None and workdir.is_dir()
        conflict = detection.conflicts[0]
        assert conflict.remote_modified.year == 2030
        result = resolver.resolve_conflicts(detection.conflicts, MergeStrategy.NEWEST)

    assert result.success
    assert local.read_text(encoding="utf-8") == remote_text
    assert not workdir.exists()
    assert detection.workdir is None


def test_detection_preconditions(local_dir: Path, tmp_path: Path) -> None:
    local_dir.mkdir()
    resolver = ConflictResolver(local_dir)
    with pytest.raises(FileNotFoundError):
        resolver.detect_conflicts(tmp_path / "missing.zip")
    not_zip = _write(tmp_path / "backup.txt", "plain text")
    with pytest.raises(ValueError):
        resolver.detect_conflicts(not_zip)
    with pytest.raises(FileNotFoundError):
        ConflictResolver(tmp_path / "absent").detect_conflicts(tmp_path)


def test_merge_json_lines_orders_and_dedupes() -> None:
    local = "\n".join(["garbage", _line("A", 5), "", _line("B", 1)])
    remote = "\n".join([_line("A", 5, "remote copy"), "garbage", _line("C", 3)])
    merged = merge_json_lines(local, remote).splitlines()
    assert merged[0] == "garbage"
    ids = [json.loads(line)["id"] for line in merged[1:]]
    assert ids == ["B", "C", "A"]
    assert json.loads(merged[-1])["pattern"] == "p"


def test_merge_markdown_empty() -> None:
    assert merge_markdown("\n\n", "  ") == ""


def test_merge_json_state_prefers_newer_side() -> None:
    local = '{"x": "local", "only_local": 1}'
    remote = '{"x": "remote", "only_remote": 2}'
    newer_local = json.loads(merge_json_state(local, remote, local_is_newer=True))
    newer_remote = json.loads(merge_json_state(local, remote, local_is_newer=False))
    assert newer_local == {"x": "local", "only_local": 1, "only_remote": 2}
    assert newer_remote["x"] == "remote"
    with pytest.raises(ValueError):
        merge_json_state("[]", "{}", local_is_newer=True)
