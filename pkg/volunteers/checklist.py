"""
Master onboarding checklist and per-volunteer progress.

Progress for a volunteer is kept in two places: under its own
volunteerProgress_<id> key and on the volunteer record. Reads prefer the
dedicated key and back-fill items added to the master list since.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .schema import ChecklistItem, ChecklistProgress, new_id, utc_now
from .storage import (
    CHECKLIST_ITEMS_KEY,
    VOLUNTEERS_STORAGE_KEY,
    LocalStorage,
    progress_key,
)

logger = logging.getLogger(__name__)

DEFAULT_COMPLETED_BY = "Current User"

DEFAULT_CHECKLIST_ITEMS = [
    "Complete application form",
    "Background check submitted",
    "Background check cleared",
    "Orientation completed",
    "Training session 1 completed",
    "Training session 2 completed",
    "Signed confidentiality agreement",
    "Emergency contact information provided",
]


def default_items() -> List[ChecklistItem]:
    return [
        ChecklistItem(id=str(i + 1), text=text, order=i)
        for i, text in enumerate(DEFAULT_CHECKLIST_ITEMS)
    ]


def completion_percentage(progress: Optional[List[ChecklistProgress]]) -> Optional[int]:
    """Rounded percent complete; None when there are no items."""
    if not progress:
        return None
    done = sum(1 for p in progress if p.completed)
    return round(done / len(progress) * 100)


class ChecklistService:
    """Reads and edits the master checklist and volunteer progress."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    # ── Master list ─────────────────────────────────────────────────────────

    def get_items(self) -> List[ChecklistItem]:
        """Stored items sorted by order; seeds the defaults when none are stored."""
        raw = self.storage.get_json(CHECKLIST_ITEMS_KEY)
        if raw is None:
            items = default_items()
            self.storage.set_json(CHECKLIST_ITEMS_KEY, [i.to_dict() for i in items])
            return items
        items = [ChecklistItem.from_dict(i) for i in raw if isinstance(i, dict)]
        return sorted(items, key=lambda i: i.order)

    def save_items(self, items: List[ChecklistItem]) -> List[ChecklistItem]:
        """Store the master list and add any new items to every volunteer."""
        previous = self.storage.get_json(CHECKLIST_ITEMS_KEY, []) or []
        previous_ids = {str(i.get("id")) for i in previous if isinstance(i, dict)}

        self.storage.set_json(CHECKLIST_ITEMS_KEY, [i.to_dict() for i in items])

        new_items = [i for i in items if i.id not in previous_ids]
        if new_items:
            logger.info(f"Found {len(new_items)} new checklist items, updating all volunteers")
            self._add_items_to_volunteers(new_items)
        return new_items

    def _add_items_to_volunteers(self, new_items: List[ChecklistItem]) -> int:
        volunteers = self.storage.get_json(VOLUNTEERS_STORAGE_KEY)
        if not volunteers:
            return 0

        updated_count = 0
        for volunteer in volunteers:
            progress = volunteer.setdefault("checklistProgress", []) or []
            volunteer["checklistProgress"] = progress
            have = {str(p.get("itemId")) for p in progress}
            updated = False
            for item in new_items:
                if item.id not in have:
                    progress.append(ChecklistProgress(item_id=item.id).to_dict())
                    updated = True
            if updated:
                updated_count += 1
                self.storage.set_json(progress_key(volunteer["id"]), progress)

        self.storage.set_json(VOLUNTEERS_STORAGE_KEY, volunteers)
        logger.info(f"Updated {updated_count} volunteers with new checklist items")
        return updated_count

    def add_item(self, text: str) -> Optional[ChecklistItem]:
        if not text or not text.strip():
            return None
        items = self.get_items()
        item = ChecklistItem(id=new_id(), text=text.strip(), order=len(items))
        items.append(item)
        self.save_items(items)
        return item

    def update_item(self, item_id: str, **changes: Any) -> Optional[ChecklistItem]:
        items = self.get_items()
        for item in items:
            if item.id == item_id:
                for key in ("text", "show_scheduled_date", "show_completed_date"):
                    if key in changes:
                        setattr(item, key, changes[key])
                self.save_items(items)
                return item
        return None

    def remove_item(self, item_id: str) -> bool:
        items = self.get_items()
        kept = [i for i in items if i.id != item_id]
        if len(kept) == len(items):
            return False
        self.save_items(kept)
        return True

    def move_item(self, from_index: int, to_index: int) -> List[ChecklistItem]:
        """Reorder and renumber the master list."""
        items = self.get_items()
        if not (0 <= from_index < len(items) and 0 <= to_index < len(items)):
            raise IndexError("checklist index out of range")
        moved = items.pop(from_index)
        items.insert(to_index, moved)
        for order, item in enumerate(items):
            item.order = order
        self.save_items(items)
        return items

    # ── Volunteer progress ──────────────────────────────────────────────────

    def initial_progress(self) -> List[ChecklistProgress]:
        return [ChecklistProgress(item_id=i.id) for i in self.get_items()]

    def _backfill(self, progress: List[Dict[str, Any]], items: List[ChecklistItem]) -> List[Dict[str, Any]]:
        have = {str(p.get("itemId")) for p in progress}
        missing = [i for i in items if i.id not in have]
        return progress + [ChecklistProgress(item_id=i.id).to_dict() for i in missing]

    def get_volunteer_progress(self, volunteer_id: str) -> List[ChecklistProgress]:
        items = self.get_items()
        key = progress_key(volunteer_id)

        stored = self.storage.get_json(key)
        if stored is not None:
            filled = self._backfill(stored, items)
            if len(filled) != len(stored):
                logger.info(
                    f"Adding {len(filled) - len(stored)} missing checklist items "
                    f"to volunteer {volunteer_id}"
                )
                self.storage.set_json(key, filled)
            return [ChecklistProgress.from_dict(p) for p in filled]

        volunteers = self.storage.get_json(VOLUNTEERS_STORAGE_KEY, []) or []
        for volunteer in volunteers:
            if volunteer.get("id") == volunteer_id and volunteer.get("checklistProgress"):
                current = volunteer["checklistProgress"]
                filled = self._backfill(current, items)
                if len(filled) != len(current):
                    self.storage.set_json(key, filled)
                    volunteer["checklistProgress"] = filled
                    self.storage.set_json(VOLUNTEERS_STORAGE_KEY, volunteers)
                return [ChecklistProgress.from_dict(p) for p in filled]

        return [ChecklistProgress(item_id=i.id) for i in items]

    def update_volunteer_progress(self, volunteer_id: str, progress: List[ChecklistProgress]) -> None:
        """Write progress to the dedicated key and to the volunteer record."""
        data = [p.to_dict() for p in progress]
        self.storage.set_json(progress_key(volunteer_id), data)

        volunteers = self.storage.get_json(VOLUNTEERS_STORAGE_KEY)
        if volunteers:
            for volunteer in volunteers:
                if volunteer.get("id") == volunteer_id:
                    volunteer["checklistProgress"] = data
                    self.storage.set_json(VOLUNTEERS_STORAGE_KEY, volunteers)
                    logger.debug(f"Updated checklist progress in main volunteer list for {volunteer_id}")
                    break

    def _edit(self, volunteer_id: str, item_id: str, fn) -> List[ChecklistProgress]:
        progress = self.get_volunteer_progress(volunteer_id)
        for p in progress:
            if p.item_id == item_id:
                fn(p)
                break
        else:
            raise KeyError(item_id)
        self.update_volunteer_progress(volunteer_id, progress)
        return progress

    def toggle_item(
        self,
        volunteer_id: str,
        item_id: str,
        completed: bool,
        completed_by: str = DEFAULT_COMPLETED_BY,
    ) -> List[ChecklistProgress]:
        def apply(p: ChecklistProgress):
            p.completed = completed
            p.completed_at = utc_now() if completed else None
            p.completed_by = completed_by if completed else None
        return self._edit(volunteer_id, item_id, apply)

    def set_scheduled_date(self, volunteer_id: str, item_id: str, when: Optional[datetime]) -> List[ChecklistProgress]:
        def apply(p: ChecklistProgress):
            p.scheduled_date = _iso(when)
        return self._edit(volunteer_id, item_id, apply)

    def set_completed_date(
        self,
        volunteer_id: str,
        item_id: str,
        when: Optional[datetime],
        completed_by: str = DEFAULT_COMPLETED_BY,
    ) -> List[ChecklistProgress]:
        def apply(p: ChecklistProgress):
            p.completed_at = _iso(when)
            p.completed_by = completed_by if when else None
        return self._edit(volunteer_id, item_id, apply)


def _iso(when: Optional[datetime]) -> Optional[str]:
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
