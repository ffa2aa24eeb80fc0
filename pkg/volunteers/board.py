"""
In-memory kanban board.

Holds the lists with their cards and persists every change through the
AutoSaver. The "All Volunteers" list is derived on read and never stored.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from .autosave import AutoSaver, DATA_FORCE_SAVED
from .debug_log import debug_log
from .schema import (
    ALL_VOLUNTEERS_LIST_ID,
    ALL_VOLUNTEERS_LIST_TITLE,
    BoardList,
    VolunteerCard,
    new_id,
)
from .store import VolunteerStore

logger = logging.getLogger(__name__)


class KanbanBoard:
    """Lists of volunteer cards with list and card operations."""

    def __init__(self, store: VolunteerStore, autosaver: Optional[AutoSaver] = None):
        self.store = store
        self.autosaver = autosaver or AutoSaver(store)
        self.lists: List[BoardList] = []
        self._lock = threading.RLock()
        self.autosaver.subscribe(DATA_FORCE_SAVED, self.reload)

    # ── Loading and saving ──────────────────────────────────────────────────

    def load(self) -> "KanbanBoard":
        with self._lock:
            self.lists = self.store.load_board()
        return self

    def reload(self) -> None:
        debug_log("Reloading board data")
        self.load()

    def _changed(self) -> None:
        self.autosaver.schedule(lists=list(self.lists), volunteers=self.store.flatten(self.lists))

    def flush(self, strict: bool = False) -> None:
        """Write pending changes now; strict raises if they cannot be stored."""
        self.autosaver.flush(strict=strict)

    @contextmanager
    def sync(self) -> Iterator[VolunteerStore]:
        """
        Hand the store to code that edits storage directly (imports, checklist,
        storage tools): pending saves land first, the board reloads after.
        If pending changes cannot be stored the error is raised before the
        body runs and the in-memory board is kept.
        """
        with self._lock:
            self.autosaver.flush(strict=True)
            try:
                yield self.store
            finally:
                self.load()

    # ── Views ───────────────────────────────────────────────────────────────

    def all_volunteers(self) -> BoardList:
        """Aggregate list: every card on the board, once."""
        with self._lock:
            seen = set()
            cards = []
            for lst in self.lists:
                for card in lst.cards:
                    if card.id not in seen:
                        seen.add(card.id)
                        cards.append(card)
            return BoardList(id=ALL_VOLUNTEERS_LIST_ID, title=ALL_VOLUNTEERS_LIST_TITLE, cards=cards)

    def board_view(self) -> List[BoardList]:
        with self._lock:
            return [self.all_volunteers()] + list(self.lists)

    def get_list(self, list_id: str) -> Optional[BoardList]:
        if list_id == ALL_VOLUNTEERS_LIST_ID:
            return self.all_volunteers()
        for lst in self.lists:
            if lst.id == list_id:
                return lst
        return None

    def find_card(self, card_id: str) -> Optional[Tuple[BoardList, VolunteerCard]]:
        with self._lock:
            for lst in self.lists:
                i = lst.find(card_id)
                if i != -1:
                    return lst, lst.cards[i]
        return None

    # ── Lists ───────────────────────────────────────────────────────────────

    def add_list(self, title: str) -> Optional[BoardList]:
        if not title or not title.strip():
            return None
        new_list = BoardList(id=new_id(), title=title.strip())
        with self._lock:
            self.lists.append(new_list)
            self._changed()
        debug_log("Added new list", new_list.to_dict())
        return new_list

    def rename_list(self, list_id: str, title: str) -> bool:
        with self._lock:
            lst = self.get_list(list_id)
            if lst is None or list_id == ALL_VOLUNTEERS_LIST_ID:
                return False
            lst.title = title
            self._changed()
            return True

    def move_list(self, from_index: int, to_index: int) -> bool:
        with self._lock:
            if from_index == to_index:
                return True
            if not (0 <= from_index < len(self.lists) and 0 <= to_index < len(self.lists)):
                return False
            moved = self.lists.pop(from_index)
            self.lists.insert(to_index, moved)
            self._changed()
            return True

    def delete_list(self, list_id: str) -> bool:
        """Remove a list; its cards move to the first remaining list."""
        with self._lock:
            index = next((i for i, lst in enumerate(self.lists) if lst.id == list_id), -1)
            if index == -1:
                return False
            doomed = self.lists[index]
            if doomed.cards and len(self.lists) > 1:
                target = next(lst for lst in self.lists if lst.id != list_id)
                for card in doomed.cards:
                    card.list_id = target.id
                    target.cards.append(card)
            del self.lists[index]
            self._changed()
        debug_log("Deleted list", {"listId": list_id, "listTitle": doomed.title})
        return True

    # ── Cards ───────────────────────────────────────────────────────────────

    def add_card(self, list_id: str, card: VolunteerCard) -> Optional[VolunteerCard]:
        with self._lock:
            lst = self.get_list(list_id)
            if lst is None or list_id == ALL_VOLUNTEERS_LIST_ID:
                return None
            card.list_id = list_id
            lst.cards.append(card)
            self._changed()
        return card

    def update_card(self, list_id: str, card: VolunteerCard) -> bool:
        with self._lock:
            lst = self.get_list(list_id)
            if lst is None or list_id == ALL_VOLUNTEERS_LIST_ID:
                return False
            i = lst.find(card.id)
            if i == -1:
                return False
            card.list_id = list_id
            lst.cards[i] = card
            self._changed()
        debug_log("Updating card in KanbanBoard", {
            "id": card.id,
            "name": card.title,
            "hasImage": bool(card.image),
            "imageLength": len(card.image) if card.image else 0,
        })
        return True

    def move_card(self, card_id: str, from_list_id: str, to_list_id: str) -> bool:
        """Move a card between lists; a same-id card in the target is replaced."""
        with self._lock:
            source = self.get_list(from_list_id)
            dest = self.get_list(to_list_id)
            if source is None or dest is None or ALL_VOLUNTEERS_LIST_ID in (from_list_id, to_list_id):
                return False
            i = source.find(card_id)
            if i == -1:
                return False
            moved = source.cards.pop(i)
            moved.list_id = to_list_id
            j = dest.find(card_id)
            if j != -1:
                dest.cards[j] = moved
            else:
                dest.cards.append(moved)
            self._changed()
        debug_log("Moved card between lists", {
            "cardId": card_id, "fromListId": from_list_id, "toListId": to_list_id,
        })
        return True

    def delete_card(self, list_id: str, card_id: str) -> bool:
        with self._lock:
            lst = self.get_list(list_id)
            if lst is None or list_id == ALL_VOLUNTEERS_LIST_ID:
                return False
            before = len(lst.cards)
            lst.cards = [c for c in lst.cards if c.id != card_id]
            if len(lst.cards) == before:
                return False
            self._changed()
            return True

    def upsert_first_list(self, card: VolunteerCard) -> VolunteerCard:
        """
        Merge into a card with the same id wherever it is, else add it to the
        first list. A merge takes the incoming contact details, description
        and data, adds any new tags, and keeps everything else on the card.
        """
        with self._lock:
            found = self.find_card(card.id)
            if found:
                lst, existing = found
                existing.title = card.title or existing.title
                existing.email = card.email or existing.email
                existing.phone = card.phone or existing.phone
                existing.description = card.description or existing.description
                existing.data = {**existing.data, **card.data}
                existing.tags = existing.tags + [t for t in card.tags if t not in existing.tags]
                if not existing.image and card.image:
                    existing.image = card.image
                if existing.checklist_progress is None:
                    existing.checklist_progress = card.checklist_progress
                self.update_card(lst.id, existing)
                return existing
            if not self.lists:
                raise ValueError("Board has no lists")
            return self.add_card(self.lists[0].id, card)

    def to_dict(self) -> dict:
        with self._lock:
            lists = self.board_view()
            return {
                "lists": [lst.to_dict(with_cards=True) for lst in lists],
                "stats": {
                    "totalLists": len(self.lists),
                    "totalVolunteers": len(lists[0].cards),
                    "withImages": sum(1 for c in lists[0].cards if c.image),
                    "byList": {lst.title: len(lst.cards) for lst in self.lists},
                },
            }
