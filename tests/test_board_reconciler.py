from __future__ import annotations

from pathlib import Path
from unittest import mock

import pytest

from subtask_orchestrator.board import BoardReconciler, Comment, FileTaskBoard
from subtask_orchestrator.domain.models import Plan, Subtask


@pytest.fixture()
def board(tmp_path: Path) -> FileTaskBoard:
    return FileTaskBoard(tmp_path / "board.yaml", tmp_path / "board.lock")


def _completed_plan(result: str = "done") -> Plan:
    return Plan(
        parent_task_id="task-1",
        title="Fix login bug",
        status="completed",
        subtasks=[
            Subtask(index=1, title="Reproduce", status="completed", result=result),
            Subtask(index=2, title="Verify", status="completed", result=None),
        ],
    )


def test_file_board_move_and_comments(board: FileTaskBoard) -> None:
    card = board.add_card("Fix login bug", card_id="task-1")
    assert card.lane == "backlog"

    board.move_task("task-1", "backlog", "todo")
    assert board.find_task_by_id("task-1").lane == "todo"
    with pytest.raises(ValueError):
        board.move_task("task-1", "backlog", "done")
    with pytest.raises(ValueError):
        board.move_task("task-1", "todo", "archive")
    with pytest.raises(KeyError):
        board.move_task("task-missing", "todo", "done")

    board.append_comment("task-1", Comment(author="me", text="first"))
    replaced = board.replace_comment("task-1", lambda c: c.text == "first", Comment(author="me", text="second"))
    missing = board.replace_comment("task-1", lambda c: c.text == "nope", Comment(author="me", text="third"))

    assert replaced is True
    assert missing is False
    assert [c.text for c in board.find_task_by_id("task-1").comments] == ["second"]
    assert [c.id for c in board.list_cards("todo")] == ["task-1"]
    with pytest.raises(ValueError):
        board.add_card("Duplicate", card_id="task-1")


def test_execution_start_only_moves_forward(board: FileTaskBoard) -> None:
    board.add_card("Early", card_id="task-1")
    board.add_card("Late", card_id="task-2", lane="done")
    reconciler = BoardReconciler(board)

    assert reconciler.execution_started(Plan(parent_task_id="task-1")) is True
    assert reconciler.execution_started(Plan(parent_task_id="task-2")) is False
    assert reconciler.execution_started(Plan(parent_task_id="task-missing")) is False

    assert board.find_task_by_id("task-1").lane == "in-progress"
    assert board.find_task_by_id("task-2").lane == "done"


def test_plan_completed_moves_to_review_comments_and_notifies(board: FileTaskBoard) -> None:
    board.add_card("Fix login bug", card_id="task-1", lane="in-progress")
    notifier = mock.Mock()
    reconciler = BoardReconciler(board, notifier, author="Bot")

    reconciler.plan_completed(_completed_plan(result="x" * 150))

    card = board.find_task_by_id("task-1")
    assert card.lane == "review"
    [comment] = card.comments
    assert comment.author == "Bot"
    assert "- Reproduce: " + "x" * 100 + "..." in comment.text
    assert "- Verify: No result" in comment.text
    notifier.notify.assert_called_once()
    assert "Fix login bug" in notifier.notify.call_args.args[0]


def test_plan_completed_never_moves_card_backwards(board: FileTaskBoard) -> None:
    board.add_card("Fix login bug", card_id="task-1", lane="done")
    notifier = mock.Mock()

    BoardReconciler(board, notifier).plan_completed(_completed_plan())

    assert board.find_task_by_id("task-1").lane == "done"
    notifier.notify.assert_called_once()


def test_partial_annotation_is_replaced_not_duplicated(board: FileTaskBoard) -> None:
    board.add_card("Fix login bug", card_id="task-1")
    plan = Plan(
        parent_task_id="task-1",
        status="partial",
        subtasks=[Subtask(index=1, title="Reproduce", status="failed", error="no repro")],
    )
    reconciler = BoardReconciler(board)

    reconciler.plan_partial(plan)
    plan.subtasks[0].error = "still no repro"
    reconciler.plan_partial(plan)

    [comment] = board.find_task_by_id("task-1").comments
    assert "Review Required" in comment.text
    assert "still no repro" in comment.text


def test_progress_comments_are_scoped_per_plan(board: FileTaskBoard) -> None:
    board.add_card("Fix login bug", card_id="task-1")
    reconciler = BoardReconciler(board)
    first = Plan(parent_task_id="task-1", subtasks=[Subtask(index=1, title="A", status="completed")])
    second = Plan(parent_task_id="task-1", subtasks=[Subtask(index=1, title="B", status="in-progress")])

    assert reconciler.sync_progress(first, 100) is True
    assert reconciler.sync_progress(second, 0) is True
    assert reconciler.sync_progress(first, 100) is False

    texts = [c.text for c in board.find_task_by_id("task-1").comments]
    assert len(texts) == 2
    assert any("[x] A" in text and "(100%)" in text for text in texts)
    assert any("[~] B" in text and "(0%)" in text for text in texts)


def test_board_and_notifier_failures_are_contained() -> None:
    board = mock.Mock()
    board.find_task_by_id.side_effect = RuntimeError("board offline")
    notifier = mock.Mock()
    notifier.notify.side_effect = RuntimeError("notifier offline")
    reconciler = BoardReconciler(board, notifier)
    plan = _completed_plan()

    assert reconciler.execution_started(plan) is False
    reconciler.plan_completed(plan)
    reconciler.plan_partial(plan)
    assert reconciler.sync_progress(plan, 100) is False
    notifier.notify.assert_called_once()


def test_reconciler_without_board_is_a_no_op() -> None:
    notifier = mock.Mock()
    reconciler = BoardReconciler(None, notifier)
    plan = _completed_plan()

    assert reconciler.execution_started(plan) is False
    assert reconciler.sync_progress(plan, 100) is False
    reconciler.plan_completed(plan)
    notifier.notify.assert_called_once()


def test_from_config_uses_custom_lanes(tmp_path: Path) -> None:
    lanes = ["queued", "doing", "qa", "shipped"]
    board = FileTaskBoard(tmp_path / "board.yaml", tmp_path / "board.lock", lanes=lanes)
    board.add_card("Fix login bug", card_id="task-1")
    reconciler = BoardReconciler.from_config(
        board,
        None,
        {"lanes": lanes, "in_progress_lane": "doing", "review_lane": "qa", "comment_author": "Ops"},
    )

    reconciler.execution_started(Plan(parent_task_id="task-1"))
    assert board.find_task_by_id("task-1").lane == "doing"
    reconciler.plan_completed(_completed_plan())
    card = board.find_task_by_id("task-1")
    assert card.lane == "qa"
    assert card.comments[0].author == "Ops"
