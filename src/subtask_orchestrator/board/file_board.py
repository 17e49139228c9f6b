from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from ..constants import DEFAULT_BOARD_LANES
from ..domain.models import now_iso
from ..storage.file_repos import _YamlCollectionRepo
from .interfaces import Comment, CommentMatcher, TaskCard


class FileTaskBoard:
    """Minimal YAML-backed board holding the cards that plans are attached to."""

    def __init__(self, path: Path, lock_path: Path, lanes: Sequence[str] = DEFAULT_BOARD_LANES) -> None:
        self.lanes = list(lanes)
        self._repo = _YamlCollectionRepo[TaskCard](
            path,
            lock_path,
            "cards",
            loader=TaskCard.from_dict,
            dumper=lambda c: c.to_dict(),
        )

    def _check_lane(self, lane: str) -> None:
        if lane not in self.lanes:
            raise ValueError(f"Unknown lane '{lane}' (lanes: {', '.join(self.lanes)})")

    def add_card(self, title: str, description: str = "", lane: Optional[str] = None, card_id: Optional[str] = None) -> TaskCard:
        lane = lane or self.lanes[0]
        self._check_lane(lane)
        card = TaskCard(title=title, description=description, lane=lane)
        if card_id:
            card.id = card_id
        with self._repo.locked():
            cards = self._repo._load()
            if any(existing.id == card.id for existing in cards):
                raise ValueError(f"Card already exists: {card.id}")
            cards.append(card)
            self._repo._save(cards)
        return card

    def list_cards(self, lane: Optional[str] = None) -> list[TaskCard]:
        cards = self._repo.read()
        if lane is not None:
            cards = [card for card in cards if card.lane == lane]
        return cards

    def find_task_by_id(self, task_id: str) -> Optional[TaskCard]:
        for card in self._repo.read():
            if card.id == task_id:
                return card
        return None

    def move_task(self, task_id: str, from_lane: str, to_lane: str) -> None:
        self._check_lane(to_lane)
        with self._repo.locked():
            cards = self._repo._load()
            card = next((item for item in cards if item.id == task_id), None)
            if card is None:
                raise KeyError(f"Card not found: {task_id}")
            if card.lane != from_lane:
                raise ValueError(f"Card {task_id} is in lane '{card.lane}', not '{from_lane}'")
            card.lane = to_lane
            card.updated_at = now_iso()
            self._repo._save(cards)

    def append_comment(self, task_id: str, comment: Comment) -> None:
        with self._repo.locked():
            cards = self._repo._load()
            card = next((item for item in cards if item.id == task_id), None)
            if card is None:
                raise KeyError(f"Card not found: {task_id}")
            card.comments.append(comment)
            card.updated_at = now_iso()
            self._repo._save(cards)

    def replace_comment(self, task_id: str, matcher: CommentMatcher, comment: Comment) -> bool:
        """Swap the first matching comment for ``comment`` and drop any other matches.

        Returns False, leaving the card untouched, when nothing matches.
        """
        with self._repo.locked():
            cards = self._repo._load()
            card = next((item for item in cards if item.id == task_id), None)
            if card is None:
                raise KeyError(f"Card not found: {task_id}")
            kept: list[Comment] = []
            replaced = False
            for existing in card.comments:
                if not matcher(existing):
                    kept.append(existing)
                elif not replaced:
                    kept.append(comment)
                    replaced = True
            if not replaced:
                return False
            card.comments = kept
            card.updated_at = now_iso()
            self._repo._save(cards)
        return True
