import datetime as dt
import json
import re
from pathlib import Path
from typing import cast

import pytest

from devmem.context import MemoryContext
from devmem.errors import ProjectNotFoundError
from devmem.store import MemoryStore
from devmem.store.types import Activity, Decision, Mistake, Pattern, Performance

UTC = dt.UTC


def _stamp(day: int, hour: int = 12) -> dt.datetime:
    return dt.datetime(2026, 3, day, hour, 30, tzinfo=UTC)


def test_store_creates_layout_and_templates(store: MemoryStore, project_dir: Path) -> None:
    root = store.paths.root
    assert root.name == project_dir.name
    assert store.paths.activity_dir.is_dir()
    assert store.paths.archive_dir.is_dir()
    assert store.paths.snapshots_dir.is_dir()
    facts = store.paths.facts.read_text(encoding="utf-8")
    assert facts.startswith(f"# {project_dir.name} - Verified Facts")
    assert str(project_dir.resolve()) in facts
    assert "## To Research" in store.paths.uncertainties.read_text(encoding="utf-8")


def test_existing_templates_are_not_overwritten(
    project_dir: Path, context: MemoryContext
) -> None:
    store = MemoryStore(project_dir, context=context)
    store.paths.facts.write_text("- custom fact\n", encoding="utf-8")
    MemoryStore(project_dir, context=context)
    assert store.paths.facts.read_text(encoding="utf-8") == "- custom fact\n"


def test_missing_project_raises_before_creating_anything(
    tmp_path: Path, context: MemoryContext
) -> None:
    with pytest.raises(ProjectNotFoundError, match="Project path does not exist"):
        MemoryStore(tmp_path / "nope", context=context)
    assert not context.projects_root.exists()


def test_sequential_ids_per_kind(store: MemoryStore) -> None:
    first = store.append("pattern", Pattern(description="a", confidence=50))
    second = store.append("patterns", Pattern(description="b", confidence=90))
    mistake = store.append("mistake", Mistake(description="broke it"))
    decision = store.append("decision", Decision(description="use sqlite"))

    assert (first.id, second.id) == ("PAT001", "PAT002")
    assert mistake.id == "ERR001"
    assert decision.id == "DEC001"
    assert store.index.total_patterns == 2
    assert store.index.high_confidence_patterns == ["PAT002"]


def test_ids_continue_after_reopen(project_dir: Path, context: MemoryContext) -> None:
    MemoryStore(project_dir, context=context).append("mistake", Mistake(description="one"))
    reopened = MemoryStore(project_dir, context=context)
    assert reopened.append("mistake", Mistake(description="two")).id == "ERR002"


def test_activity_goes_to_day_file_with_generated_id(store: MemoryStore) -> None:
    activity = store.append(
        "activity", Activity(action="file_edit", description="tweak", timestamp=_stamp(4))
    )
    assert re.fullmatch(r"ACT20260304_[0-9a-f]{8}", activity.id)
    log = store.paths.activity_dir / "2026-03-04.jsonl"
    assert log.exists()
    assert json.loads(log.read_text(encoding="utf-8"))["id"] == activity.id


def test_round_trip_preserves_every_field(store: MemoryStore) -> None:
    pattern = Pattern(
        description="file_edit on config files typically results in success",
        confidence=88,
        id="PAT042",
        evidence=["ACT1", "ACT2"],
        applies_to=["file_edit", "config"],
        created=_stamp(1),
        last_seen=_stamp(2),
        occurrences=7,
        is_antipattern=True,
        recommended_instead="use the settings API",
        decay_rate=0.9,
    )
    mistake = Mistake(
        description="deleted build folder",
        id="ERR009",
        timestamp=_stamp(3),
        impact="lost artifacts",
        fix="clean via the build tool",
        lesson="never rm -rf build",
        severity="critical",
        preventable=False,
        how_to_prevent="alias rm",
        context={"file": "Makefile"},
        repeat_count=2,
    )
    decision = Decision(
        description="store memory as jsonl",
        id="DEC003",
        timestamp=_stamp(5),
        file="store.py",
        alternatives_considered=["sqlite", "yaml"],
        chose="jsonl",
        reasoning="append only",
        outcome="good",
        would_repeat=True,
        follow_up="benchmark",
        context={"size": 3},
    )
    activity = Activity(
        action="build",
        description="ran build",
        id="ACT20260306_deadbeef",
        timestamp=_stamp(6),
        file="src/app.py",
        line=12,
        change="added import",
        reason="fix error",
        context="ci",
        outcome="success",
        duration_ms=1500,
        tokens_used=320,
        metadata={"attempt": 1},
    )
    performance = Performance(
        operation="build",
        duration=12.5,
        timestamp=_stamp(7),
        unit="seconds",
        context="release",
        baseline=10.0,
        metadata={"cpu": 8},
    )

    for kind, record in [
        ("pattern", pattern),
        ("mistake", mistake),
        ("decision", decision),
        ("activity", activity),
        ("performance", performance),
    ]:
        store.append(kind, record)
        assert record in store.read_all(kind)


def test_malformed_lines_are_skipped(store: MemoryStore) -> None:
    good = Mistake(description="one", id="ERR001", timestamp=_stamp(1)).to_dict()
    other = Mistake(description="two", id="ERR002", timestamp=_stamp(2)).to_dict()
    store.paths.mistakes.write_text(
        "\n".join(
            [
                json.dumps(good),
                "{not json",
                "",
                json.dumps({"mistake": 42}),
                json.dumps(["a", "list"]),
                json.dumps(other),
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    mistakes = cast(list[Mistake], store.read_all("mistake"))
    assert [mistake.id for mistake in mistakes] == ["ERR001", "ERR002"]


def test_missing_file_reads_as_empty(store: MemoryStore) -> None:
    assert store.read_all("decision") == []
    assert store.read_recent("decision", 5) == []


def test_read_recent_uses_file_order(store: MemoryStore) -> None:
    for name in ("a", "b", "c"):
        store.append("decision", Decision(description=name))
    recent = cast(list[Decision], store.read_recent("decision", 2))
    assert [decision.description for decision in recent] == ["b", "c"]
    assert store.read_recent("decision", 0) == []


def test_find_patterns_sorted_by_confidence(store: MemoryStore) -> None:
    store.append("pattern", Pattern(description="low", confidence=40, applies_to=["build"]))
    store.append("pattern", Pattern(description="high", confidence=90, applies_to=["build"]))
    store.append("pattern", Pattern(description="other", confidence=99, applies_to=["test"]))
    found = store.find_patterns("build")
    assert [pattern.description for pattern in found] == ["high", "low"]
    assert store.index.patterns_for_tag("build") == ["PAT001", "PAT002"]


def test_performance_baseline_and_outlier(store: MemoryStore) -> None:
    first = cast(Performance, store.append("performance", Performance(operation="build", duration=10)))
    assert first.baseline is None
    assert not first.is_outlier
    store.append("performance", Performance(operation="build", duration=10))
    slow = cast(Performance, store.append("performance", Performance(operation="build", duration=30)))
    assert slow.baseline == 10
    assert slow.is_outlier
    stored = json.loads(store.paths.performance.read_text(encoding="utf-8").splitlines()[-1])
    assert stored["is_outlier"] is True
    assert stored["deviation"] == 20


def test_append_rejects_mismatched_record(store: MemoryStore) -> None:
    with pytest.raises(TypeError):
        store.append("pattern", Mistake(description="wrong"))


def test_unknown_kind_is_rejected(store: MemoryStore) -> None:
    with pytest.raises(ValueError, match="Allowed kinds"):
        store.read_all("observation")
    with pytest.raises(ValueError, match="FACTS.md"):
        store.record("fact", {})


def test_record_parses_wire_payload(store: MemoryStore) -> None:
    mistake = cast(
        Mistake,
        store.record("mistake", {"mistake": "forgot migration", "severity": "HIGH"}),
    )
    assert mistake.id == "ERR001"
    assert mistake.severity == "high"
    assert mistake.timestamp is not None
    assert store.index.critical_mistakes == ["ERR001"]
    odd = cast(Mistake, store.record("mistake", {"mistake": "x", "severity": "Apocalyptic"}))
    assert odd.severity == "apocalyptic"
    assert not odd.is_critical
    assert store.index.critical_mistakes == ["ERR001"]


def test_rewrite_refuses_activity(store: MemoryStore) -> None:
    with pytest.raises(ValueError):
        store.rewrite("activity", [])


def test_rewrite_resets_index(store: MemoryStore) -> None:
    store.append("pattern", Pattern(description="a", confidence=10))
    store.append("pattern", Pattern(description="b", confidence=10))
    assert store.index.total_patterns == 2
    store.rewrite("pattern", store.read_all("pattern")[:1])
    assert store.index.total_patterns == 1


def test_recent_activities_are_todays_newest_first(store: MemoryStore) -> None:
    today = dt.datetime.now().astimezone().replace(hour=9, minute=0, second=0, microsecond=0)
    store.append("activity", Activity(action="a", timestamp=today))
    store.append("activity", Activity(action="b", timestamp=today + dt.timedelta(hours=1)))
    store.append("activity", Activity(action="old", timestamp=today - dt.timedelta(days=3)))
    recent = store.recent_activities(10)
    assert [activity.action for activity in recent] == ["b", "a"]
    assert len(store.read_all("activity")) == 3


def test_stats_counts(store: MemoryStore) -> None:
    store.append("mistake", Mistake(description="x", severity="high"))
    store.append("activity", Activity(action="build", outcome="success"))
    store.append("activity", Activity(action="build", outcome="failure"))
    data = store.stats()
    assert data["project"] == store.project_name
    assert data["mistakes"] == 1
    assert data["critical_mistakes"] == 1
    assert data["activities_today"] == 2
    assert data["errors_today"] == 1
    assert data["success_rate"] == 50
    assert data["size_bytes"] > 0
