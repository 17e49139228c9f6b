from __future__ import annotations

from pathlib import Path

import pytest

from subtask_orchestrator.planning import (
    BUILTIN_PATTERNS,
    PatternRegistry,
    RawSubtask,
    WorkflowPattern,
    WorkflowStep,
    classify,
    decompose,
    link,
    parse_bullets,
)


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


def test_builtin_patterns_keep_declaration_order() -> None:
    assert [p.name for p in BUILTIN_PATTERNS] == [
        "development",
        "research",
        "bugfix",
        "documentation",
        "data_analysis",
        "optimization",
        "integration",
    ]
    assert PatternRegistry().get("bugfix").chain() == ["reproduce", "diagnose", "fix", "verify"]


def test_classify_bug_report_as_bugfix() -> None:
    result = classify("Fix login bug")
    assert result.pattern == "bugfix"
    assert result.score == 2
    assert [step.name for step in result.steps] == ["Reproduce", "Diagnose", "Fix", "Verify"]


def test_classify_is_deterministic() -> None:
    first = classify("Optimize query performance", "the dashboard is slow")
    second = classify("Optimize query performance", "the dashboard is slow")
    assert first == second


def test_classify_tie_goes_to_first_declared_pattern() -> None:
    # research and data_analysis both score 1
    assert classify("research data").pattern == "research"


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Write a script", "development"),
        ("Generate docs", "documentation"),
        ("Something vague", "development"),
    ],
)
def test_classify_zero_score_fallbacks(title: str, expected: str) -> None:
    result = classify(title)
    assert result.score == 0
    assert result.pattern == expected


def test_classify_with_custom_registry_pattern() -> None:
    registry = PatternRegistry()
    registry.register(
        WorkflowPattern(
            name="security",
            keywords=("vulnerability", "cve"),
            steps=(WorkflowStep("Audit"), WorkflowStep("Patch")),
        )
    )
    assert registry.names()[-1] == "security"
    assert classify("Patch CVE vulnerability", registry=registry).pattern == "security"


def test_registry_rejects_pattern_without_steps() -> None:
    with pytest.raises(ValueError):
        PatternRegistry().register(WorkflowPattern(name="empty", keywords=("x",), steps=()))


def test_registry_loads_yaml_directory(tmp_path: Path) -> None:
    (tmp_path / "security.yaml").write_text(
        "name: security\n"
        "keywords: [vulnerability, cve]\n"
        "steps:\n"
        "  - name: Audit\n"
        "    description: Find affected code\n"
        "    keywords: [audit, scan]\n"
        "  - Patch\n",
        encoding="utf-8",
    )
    (tmp_path / "broken.yaml").write_text("name: broken\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    registry = PatternRegistry()
    registry.load_from_yaml(tmp_path)

    pattern = registry.get("security")
    assert pattern.chain() == ["audit", "patch"]
    assert pattern.steps[0].description == "Find affected code"
    assert registry.find("broken") is None
    with pytest.raises(KeyError):
        registry.get("broken")


# ---------------------------------------------------------------------------
# Decomposer
# ---------------------------------------------------------------------------


def test_parse_bullets_folds_detail_lines() -> None:
    items = parse_bullets("Intro text\n- First item\n  more about it\n\n  and more\n* Second item\n")
    assert [item.title for item in items] == ["First item", "Second item"]
    assert items[0].description == "more about it and more"
    assert items[1].description == ""
    assert [item.index for item in items] == [1, 2]


def test_decompose_uses_pattern_steps_without_bullets() -> None:
    result = decompose("Fix login bug")
    assert result.pattern == "bugfix"
    assert [item.title for item in result.subtasks] == [
        "Reproduce Fix login bug",
        "Diagnose Fix login bug",
        "Fix Fix login bug",
        "Verify Fix login bug",
    ]
    assert result.subtasks[1].workflow_chain == "bugfix"
    assert result.subtasks[1].workflow_step == "diagnose"
    assert "diagnose" in result.subtasks[1].workflow_keywords


def test_decompose_prefers_explicit_bullets() -> None:
    result = decompose("Ship it", "- Write spec\n- Write tests\n- Write code")
    assert result.pattern == "explicit"
    assert [item.title for item in result.subtasks] == ["Write spec", "Write tests", "Write code"]
    assert all(not item.workflow_keywords for item in result.subtasks)


@pytest.mark.parametrize("title", ["", "x", "Fix login bug", "Research vendors", "Integrate billing export"])
def test_decompose_never_returns_empty(title: str) -> None:
    assert decompose(title).subtasks


# ---------------------------------------------------------------------------
# Linker
# ---------------------------------------------------------------------------


def test_link_chains_bugfix_steps_sequentially() -> None:
    subtasks = link(decompose("Fix login bug").subtasks)
    assert [s.execution_mode for s in subtasks] == ["sequential"] * 4
    assert subtasks[0].depends_on == []
    assert subtasks[1].depends_on == [subtasks[0].id]
    assert subtasks[2].depends_on == [subtasks[1].id]
    assert subtasks[3].depends_on == [subtasks[2].id]


def test_link_leaves_explicit_bullets_parallel() -> None:
    subtasks = link(decompose("Ship it", "- Write spec\n- Write tests\n- Write code").subtasks)
    assert len(subtasks) == 3
    assert all(s.execution_mode == "parallel" for s in subtasks)
    assert all(s.depends_on == [] for s in subtasks)
    assert all(s.workflow_chain == "other" for s in subtasks)


@pytest.mark.parametrize(
    "title",
    ["Fix login bug", "Research vendors", "Optimize build speed", "Integrate billing export", "Write user guide"],
)
def test_link_produces_backward_single_edges(title: str) -> None:
    subtasks = link(decompose(title).subtasks)
    position = {s.id: idx for idx, s in enumerate(subtasks)}
    assert len({s.id for s in subtasks}) == len(subtasks)
    for idx, subtask in enumerate(subtasks):
        assert len(subtask.depends_on) <= 1
        for dep in subtask.depends_on:
            assert position[dep] < idx


def test_link_duplicate_steps_only_link_nearest_preceding() -> None:
    raw = [
        RawSubtask(index=1, title="Reproduce on web", workflow_chain="bugfix", workflow_step="reproduce", workflow_keywords=["reproduce"]),
        RawSubtask(index=2, title="Reproduce on mobile", workflow_chain="bugfix", workflow_step="reproduce", workflow_keywords=["reproduce"]),
        RawSubtask(index=3, title="Diagnose crash", workflow_chain="bugfix", workflow_step="diagnose", workflow_keywords=["diagnose"]),
    ]

    first, second, third = link(raw)

    assert first.depends_on == []
    assert second.depends_on == []
    assert third.depends_on == [second.id]
    assert {s.workflow_step for s in (first, second)} == {"reproduce"}
