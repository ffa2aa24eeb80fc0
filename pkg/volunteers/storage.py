"""
Local storage backend (SQLite).

A per-board string key/value store with a fixed capacity ceiling, measured the
way browsers measure it: total characters of all stored values.
"""
import sqlite3
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUOTA = 5 * 1024 * 1024   # most browsers allow ~5MB per origin
NEARLY_FULL_PERCENT = 80

LISTS_STORAGE_KEY = "volunteerTrackerLists"
VOLUNTEERS_STORAGE_KEY = "testVolunteers"
CHECKLIST_ITEMS_KEY = "volunteerTrackerChecklistItems"
DEBUG_LOGS_KEY = "debugLogs"
PROGRESS_KEY_PREFIX = "volunteerProgress_"


def progress_key(volunteer_id: str) -> str:
    return f"{PROGRESS_KEY_PREFIX}{volunteer_id}"


class QuotaExceededError(Exception):
    """Raised when a write would push storage past its quota."""

    def __init__(self, key: str, needed: int, quota: int):
        super().__init__(
            f"Setting '{key}' needs {needed} chars, over the {quota} char storage quota"
        )
        self.key = key
        self.needed = needed
        self.quota = quota


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


@dataclass
class StorageReport:
    """Snapshot of storage usage, as shown by the storage tools."""
    total_size: int
    used_size: int
    usage_percentage: float
    volunteers: int
    volunteers_with_images: int
    total_image_size: int

    def to_dict(self) -> dict:
        return {
            "totalSize": self.total_size,
            "usedSize": self.used_size,
            "usagePercentage": self.usage_percentage,
            "volunteers": self.volunteers,
            "volunteersWithImages": self.volunteers_with_images,
            "totalImageSize": self.total_image_size,
        }


class LocalStorage:
    """SQLite-backed key/value store with a capacity ceiling."""

    def __init__(self, db_path: str = None, quota: int = DEFAULT_QUOTA):
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "volunteer-board" / "storage.db")
        self.db_path = db_path
        self.quota = quota
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    # ── Web Storage style API ───────────────────────────────────────────────

    def get_item(self, key: str) -> Optional[str]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM local_storage WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """Store a value. Raises QuotaExceededError if it does not fit."""
        value = str(value)
        now = datetime.now(timezone.utc).isoformat()
        with _connect(self.db_path) as conn:
            used = conn.execute(
                "SELECT COALESCE(SUM(LENGTH(value)), 0) FROM local_storage WHERE key != ?",
                (key,),
            ).fetchone()[0]
            if used + len(value) > self.quota:
                raise QuotaExceededError(key, used + len(value), self.quota)
            conn.execute("""
                INSERT INTO local_storage (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """, (key, value, now))
            conn.commit()

    def remove_item(self, key: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
            conn.commit()

    def keys(self) -> List[str]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM local_storage ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    def clear(self) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM local_storage")
            conn.commit()

    @property
    def length(self) -> int:
        with _connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM local_storage").fetchone()[0]

    # ── JSON helpers ────────────────────────────────────────────────────────

    def get_json(self, key: str, default: Any = None) -> Any:
        """Parse a stored JSON value; corrupt or missing values give default."""
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Corrupt JSON under '{key}': {e}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))

    # ── Usage ───────────────────────────────────────────────────────────────

    def usage(self) -> int:
        """Characters currently stored across all keys."""
        with _connect(self.db_path) as conn:
            return conn.execute(
                "SELECT COALESCE(SUM(LENGTH(value)), 0) FROM local_storage"
            ).fetchone()[0]

    def usage_percentage(self) -> float:
        return self.usage() / self.quota * 100

    def is_nearly_full(self, threshold: float = NEARLY_FULL_PERCENT) -> bool:
        try:
            return self.usage_percentage() > threshold
        except sqlite3.Error as e:
            logger.error(f"Error checking storage size: {e}")
            return False

    def analyze(self) -> StorageReport:
        """Usage plus how much of it is volunteer images."""
        used = self.usage()
        volunteers = self.get_json(VOLUNTEERS_STORAGE_KEY, []) or []

        with_images = 0
        image_size = 0
        for v in volunteers:
            if v.get("image"):
                with_images += 1
                image_size += len(v["image"])
            for att in v.get("attachments") or []:
                if att.get("url"):
                    image_size += len(att["url"])

        return StorageReport(
            total_size=self.quota,
            used_size=used,
            usage_percentage=used / self.quota * 100,
            volunteers=len(volunteers),
            volunteers_with_images=with_images,
            total_image_size=image_size,
        )
