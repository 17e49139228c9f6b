from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, TypeVar

from loguru import logger

from ..constants import (
    DEFAULT_BOARD_LANES,
    DEFAULT_COMMENT_AUTHOR,
    DEFAULT_IN_PROGRESS_LANE,
    DEFAULT_REVIEW_LANE,
    PROGRESS_MARKER,
    RESULT_PREVIEW_CHARS,
    REVIEW_REQUIRED_MARKER,
    SUBTASK_CANCELLED,
    SUBTASK_COMPLETED,
    SUBTASK_FAILED,
    SUBTASK_IN_PROGRESS,
)
from ..domain.models import Plan
from ..notifications import ReviewNotifier, build_review_message
from .interfaces import Comment, TaskBoard


T = TypeVar("T")

_STATUS_ICONS = {
    SUBTASK_COMPLETED: "[x]",
    SUBTASK_IN_PROGRESS: "[~]",
    SUBTASK_FAILED: "[!]",
    SUBTASK_CANCELLED: "[-]",
}


def _preview(result: Optional[str]) -> str:
    if not result:
        return "No result"
    if len(result) > RESULT_PREVIEW_CHARS:
        return result[:RESULT_PREVIEW_CHARS] + "..."
    return result


def _plan_tag(plan: Plan) -> str:
    return f"(plan {plan.id})"


class BoardReconciler:
    """Mirror plan lifecycle changes onto the parent card of a task board.

    Every board and notifier call is guarded: failures are logged and never
    propagate into the engine.
    """

    def __init__(
        self,
        board: Optional[TaskBoard],
        notifier: Optional[ReviewNotifier] = None,
        *,
        lanes: Sequence[str] = DEFAULT_BOARD_LANES,
        in_progress_lane: str = DEFAULT_IN_PROGRESS_LANE,
        review_lane: str = DEFAULT_REVIEW_LANE,
        author: str = DEFAULT_COMMENT_AUTHOR,
    ) -> None:
        self.board = board
        self.notifier = notifier
        self.lanes = list(lanes)
        self.in_progress_lane = in_progress_lane
        self.review_lane = review_lane
        self.author = author

    @classmethod
    def from_config(cls, board: Optional[TaskBoard], notifier: Optional[ReviewNotifier], board_cfg: dict[str, Any]) -> "BoardReconciler":
        return cls(
            board,
            notifier,
            lanes=board_cfg.get("lanes") or DEFAULT_BOARD_LANES,
            in_progress_lane=str(board_cfg.get("in_progress_lane") or DEFAULT_IN_PROGRESS_LANE),
            review_lane=str(board_cfg.get("review_lane") or DEFAULT_REVIEW_LANE),
            author=str(board_cfg.get("comment_author") or DEFAULT_COMMENT_AUTHOR),
        )

    def _guard(self, action: str, fn: Callable[[], T], fallback: T) -> T:
        try:
            return fn()
        except Exception:
            logger.exception("Board reconciliation failed during {}", action)
            return fallback

    def _lane_rank(self, lane: str) -> int:
        return self.lanes.index(lane) if lane in self.lanes else -1

    def _advance(self, task_id: str, target: str) -> bool:
        if self.board is None:
            return False
        card = self.board.find_task_by_id(task_id)
        if card is None:
            logger.info("Parent task {} not found on board", task_id)
            return False
        if self._lane_rank(card.lane) >= self._lane_rank(target):
            return False
        self.board.move_task(task_id, card.lane, target)
        logger.info("Moved parent task {} from {} to {}", task_id, card.lane, target)
        return True

    def _upsert_comment(self, task_id: str, marker: str, plan: Plan, text: str) -> bool:
        """Replace this plan's ``marker`` comment with ``text``; False when already identical."""
        if self.board is None:
            return False
        card = self.board.find_task_by_id(task_id)
        if card is None:
            return False
        tag = _plan_tag(plan)

        def _matches(comment: Comment) -> bool:
            return comment.author == self.author and marker in comment.text and tag in comment.text

        current = [comment for comment in card.comments if _matches(comment)]
        if len(current) == 1 and current[0].text == text:
            return False
        comment = Comment(author=self.author, text=text)
        if not self.board.replace_comment(task_id, _matches, comment):
            self.board.append_comment(task_id, comment)
        return True

    # -- lifecycle hooks -----------------------------------------------------

    def execution_started(self, plan: Plan) -> bool:
        return self._guard("execution start", lambda: self._advance(plan.parent_task_id, self.in_progress_lane), False)

    def plan_completed(self, plan: Plan) -> None:
        def _complete() -> None:
            if self.board is None:
                return
            card = self.board.find_task_by_id(plan.parent_task_id)
            if card is None:
                logger.info("Parent task {} not found on board", plan.parent_task_id)
                return
            self._advance(plan.parent_task_id, self.review_lane)
            results = "\n".join(f"- {subtask.title}: {_preview(subtask.result)}" for subtask in plan.subtasks)
            text = (
                "**Sub-task Work Complete - Ready for Review**\n\n"
                f"All {len(plan.subtasks)} sub-tasks completed. {_plan_tag(plan)}\n\n"
                f"**Results Summary:**\n{results}\n\n"
                "Please review and verify before marking as done."
            )
            self.board.append_comment(plan.parent_task_id, Comment(author=self.author, text=text))

        self._guard("plan completion", _complete, None)
        if self.notifier is not None:
            notifier = self.notifier
            self._guard("review notification", lambda: notifier.notify(build_review_message(plan)), None)

    def plan_partial(self, plan: Plan) -> None:
        failed = [subtask for subtask in plan.subtasks if subtask.status == SUBTASK_FAILED]
        lines = "\n".join(f"- {subtask.title}: {subtask.error or 'failed'}" for subtask in failed)
        text = (
            f"**{REVIEW_REQUIRED_MARKER}** {_plan_tag(plan)}\n\n"
            f"{len(failed)} of {len(plan.subtasks)} sub-tasks failed; the plan finished as partial.\n\n"
            f"{lines}"
        )
        self._guard("partial annotation", lambda: self._upsert_comment(plan.parent_task_id, REVIEW_REQUIRED_MARKER, plan, text), False)

    def sync_progress(self, plan: Plan, percent: int) -> bool:
        """Rewrite the single progress comment for ``plan``; False when nothing changed."""
        lines = "\n".join(f"{_STATUS_ICONS.get(subtask.status, '[ ]')} {subtask.title}" for subtask in plan.subtasks)
        text = f"**{PROGRESS_MARKER}** ({percent}%) {_plan_tag(plan)}\n\n{lines}"
        return self._guard("progress sync", lambda: self._upsert_comment(plan.parent_task_id, PROGRESS_MARKER, plan, text), False)
