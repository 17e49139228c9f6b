from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional, Protocol

from ..domain.models import now_iso


@dataclass
class Comment:
    id: str = field(default_factory=lambda: f"cmt-{uuid.uuid4().hex[:10]}")
    author: str = ""
    text: str = ""
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Comment":
        return cls(
            id=str(data.get("id") or f"cmt-{uuid.uuid4().hex[:10]}"),
            author=str(data.get("author") or ""),
            text=str(data.get("text") or ""),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class TaskCard:
    id: str = field(default_factory=lambda: f"task-{uuid.uuid4().hex[:10]}")
    title: str = ""
    description: str = ""
    lane: str = "backlog"
    comments: list[Comment] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["comments"] = [comment.to_dict() for comment in self.comments]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskCard":
        return cls(
            id=str(data.get("id") or f"task-{uuid.uuid4().hex[:10]}"),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            lane=str(data.get("lane") or "backlog"),
            comments=[Comment.from_dict(item) for item in list(data.get("comments") or []) if isinstance(item, dict)],
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )


CommentMatcher = Callable[[Comment], bool]


class TaskBoard(Protocol):
    def find_task_by_id(self, task_id: str) -> Optional[TaskCard]:
        ...

    def move_task(self, task_id: str, from_lane: str, to_lane: str) -> None:
        ...

    def append_comment(self, task_id: str, comment: Comment) -> None:
        ...

    def replace_comment(self, task_id: str, matcher: CommentMatcher, comment: Comment) -> bool:
        ...
