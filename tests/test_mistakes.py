import datetime as dt
import json
from typing import cast

import pytest

from devmem.store import MemoryStore
from devmem.store.index import build_index
from devmem.store.mistakes import check_for_mistake, matches_action
from devmem.store.types import Decision, Mistake, Pattern


@pytest.mark.parametrize(
    ("stored", "query", "expected"),
    [
        ("deleted build folder", "I should avoid deleted build folder again", True),
        ("Deleted Build Folder", "deleted build folder", True),
        ("deleted the build folder before packaging", "BUILD FOLDER", True),
        ("deleted build folder", "deleted build directory", False),
        ("", "anything", False),
        ("deleted build folder", "   ", False),
    ],
)
def test_matching_is_symmetric_containment(stored: str, query: str, expected: bool) -> None:
    assert matches_action(Mistake(description=stored), query) is expected


def test_first_match_wins_and_bumps_repeat_count() -> None:
    mistakes = [
        Mistake(description="unrelated", id="ERR001"),
        Mistake(
            description="force push",
            id="ERR002",
            timestamp=dt.datetime(2026, 2, 1, 10, 0, tzinfo=dt.UTC),
            impact="lost commits",
            fix="push with --force-with-lease",
        ),
        Mistake(description="force push to main", id="ERR003"),
    ]
    verdict = check_for_mistake(mistakes, "git force push to main")
    assert not verdict.should_proceed
    assert verdict.found_prior_attempt
    assert verdict.prior_mistake is mistakes[1]
    assert verdict.reason == "I tried this on 2026-02-01 and it failed: lost commits"
    assert verdict.alternative == "push with --force-with-lease"
    assert mistakes[1].repeat_count == 1
    assert mistakes[2].repeat_count == 0


def test_no_match_allows_proceeding() -> None:
    verdict = check_for_mistake([Mistake(description="drop table")], "add a column")
    assert verdict.should_proceed
    assert verdict.reason == ""
    assert not verdict.found_prior_attempt


def test_check_references_recorded_mistake(store: MemoryStore) -> None:
    store.paths.mistakes.write_text(
        json.dumps({"id": "ERR001", "mistake": "deleted build folder", "impact": "rebuild"})
        + "\n"
        + json.dumps({"id": "ERR002", "mistake": "ran tests against prod"})
        + "\n",
        encoding="utf-8",
    )
    verdict = store.check("I should avoid deleted build folder again")
    assert verdict.should_proceed is False
    assert verdict.prior_mistake is not None
    assert verdict.prior_mistake.id == "ERR001"


def test_check_without_persist_leaves_file_alone(store: MemoryStore) -> None:
    store.append("mistake", Mistake(description="skip migrations"))
    before = store.paths.mistakes.read_text(encoding="utf-8")
    store.check("skip migrations")
    assert store.paths.mistakes.read_text(encoding="utf-8") == before


def test_check_persist_rewrites_only_matching_line(store: MemoryStore) -> None:
    store.append("mistake", Mistake(description="skip migrations"))
    store.append("mistake", Mistake(description="edit lockfile by hand"))
    with store.paths.mistakes.open("a", encoding="utf-8") as handle:
        handle.write("not json at all\n")
    original = store.paths.mistakes.read_text(encoding="utf-8").splitlines()

    store.check("please edit lockfile by hand", persist=True)
    store.check("edit lockfile by hand", persist=True)

    lines = store.paths.mistakes.read_text(encoding="utf-8").splitlines()
    assert lines[0] == original[0]
    assert lines[2] == "not json at all"
    assert json.loads(lines[1])["repeat_count"] == 2
    mistakes = cast(list[Mistake], store.read_all("mistake"))
    assert [mistake.repeat_count for mistake in mistakes] == [0, 2]


def test_build_index_single_pass() -> None:
    index = build_index(
        [
            Pattern(description="a", id="PAT001", confidence=80, applies_to=["build", "ci"]),
            Pattern(description="b", id="PAT002", confidence=79, applies_to=["build"]),
        ],
        [
            Mistake(description="x", id="ERR001", severity="critical"),
            Mistake(description="y", id="ERR002", severity="low"),
            Mistake(description="z", id="ERR003", severity="high"),
        ],
        [Decision(description="d", id="DEC001")],
    )
    assert index.built is not None
    assert (index.total_patterns, index.total_mistakes, index.total_decisions) == (2, 3, 1)
    assert index.high_confidence_patterns == ["PAT001"]
    assert index.critical_mistakes == ["ERR001", "ERR003"]
    assert index.tag_index == {"build": ["PAT001", "PAT002"], "ci": ["PAT001"]}


def test_index_reflects_full_scan_after_load(store: MemoryStore) -> None:
    store.append("pattern", Pattern(description="a", confidence=95))
    with store.paths.patterns.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(Pattern(description="b", id="PAT009").to_dict()) + "\n")
    assert store.index.total_patterns == 1
    store.load_context()
    assert store.index.total_patterns == 2


def test_unrecognised_severity_is_kept(store: MemoryStore) -> None:
    store.paths.mistakes.write_text(
        json.dumps({"id": "ERR001", "mistake": "deleted build folder", "severity": "urgent"}) + "\n",
        encoding="utf-8",
    )

    verdict = store.check("I deleted build folder again")
    assert not verdict.should_proceed
    assert verdict.prior_mistake is not None
    assert verdict.prior_mistake.severity == "urgent"
    assert not verdict.prior_mistake.is_critical

    appended = store.append("mistake", Mistake(description="other"))
    assert appended.id == "ERR002"
    assert store.index.total_mistakes == 2
    assert store.index.critical_mistakes == []
