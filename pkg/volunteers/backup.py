"""
Backup and restore.

A backup is a JSON object holding the raw stored strings for lists,
volunteers and checklist items, so a restore writes back exactly what was
saved (images included).
"""
import json
import logging
from typing import Dict

from .schema import utc_now
from .storage import (
    CHECKLIST_ITEMS_KEY,
    LISTS_STORAGE_KEY,
    VOLUNTEERS_STORAGE_KEY,
    LocalStorage,
)

logger = logging.getLogger(__name__)

BACKUP_KEYS = {
    "lists": LISTS_STORAGE_KEY,
    "volunteers": VOLUNTEERS_STORAGE_KEY,
    "checklistItems": CHECKLIST_ITEMS_KEY,
}


class BackupError(Exception):
    """Raised when backup data cannot be restored."""
    pass


def _count_images(volunteers_json: str) -> Dict[str, int]:
    try:
        volunteers = json.loads(volunteers_json or "[]")
    except json.JSONDecodeError:
        return {"volunteers": 0, "withImages": 0}
    return {
        "volunteers": len(volunteers),
        "withImages": sum(1 for v in volunteers if isinstance(v, dict) and v.get("image")),
    }


def create_backup(storage: LocalStorage) -> str:
    data = {name: storage.get_item(key) for name, key in BACKUP_KEYS.items()}
    data["timestamp"] = utc_now()
    counts = _count_images(data["volunteers"])
    logger.info(
        f"Created backup with {counts['volunteers']} volunteers "
        f"({counts['withImages']} with images)"
    )
    return json.dumps(data)


def restore_backup(storage: LocalStorage, text: str) -> Dict[str, int]:
    """Write the stored strings from a backup back into storage."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise BackupError(
            "Failed to restore data. Make sure your backup data is valid JSON."
        ) from e
    if not isinstance(data, dict):
        raise BackupError("Backup data must be a JSON object")

    sections = {}
    for name, key in BACKUP_KEYS.items():
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            # Accept already-parsed sections as well as stored strings
            value = json.dumps(value)
        try:
            json.loads(value)
        except json.JSONDecodeError as e:
            raise BackupError(f"Backup section '{name}' is not valid JSON") from e
        sections[key] = value

    for key, value in sections.items():
        storage.set_item(key, value)

    counts = _count_images(sections.get(VOLUNTEERS_STORAGE_KEY, "[]"))
    logger.info(f"Restored backup with {counts['volunteers']} volunteers")
    return counts
