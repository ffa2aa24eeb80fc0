"""
Debounced saving of board state.

Changes are merged into a pending save and written 500ms after the last one,
so a burst of edits (a drag across several lists) costs one storage write.
"""
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from .debug_log import debug_log
from .schema import BoardList, VolunteerCard
from .store import VolunteerStore

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.5

DATA_SAVED = "data_saved"
DATA_FORCE_SAVED = "data_force_saved"


class AutoSaver:
    """Merges pending changes and writes them after a quiet period."""

    def __init__(self, store: VolunteerStore, delay: float = DEFAULT_DELAY):
        self.store = store
        self.delay = delay
        self.subscribers: Dict[str, list] = {}
        self._pending: dict = {}
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.RLock()
        self.last_error: Optional[Exception] = None

    def subscribe(self, event: str, callback: Callable) -> None:
        """Register a callback for DATA_SAVED or DATA_FORCE_SAVED."""
        self.subscribers.setdefault(event, []).append(callback)

    def _emit(self, event: str) -> None:
        for callback in self.subscribers.get(event, []):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")

    @property
    def pending(self) -> bool:
        return bool(self._pending)

    def schedule(
        self,
        lists: Optional[List[BoardList]] = None,
        volunteers: Optional[List[VolunteerCard]] = None,
        immediate: bool = False,
    ) -> None:
        """Queue lists and/or volunteers for saving; later calls overwrite earlier ones."""
        with self._lock:
            if lists is not None:
                self._pending["lists"] = lists
            if volunteers is not None:
                self._pending["volunteers"] = volunteers

            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

            if immediate:
                self._perform_save()
                return

            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self, strict: bool = False) -> None:
        """
        Write any pending save now. With strict, a save that fails (now or
        on an earlier attempt) re-raises its error; the data stays pending.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._pending:
                self._perform_save()
            if strict and self._pending and self.last_error is not None:
                raise self.last_error

    def cancel(self) -> None:
        """Drop the pending save without writing it."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = {}

    def _perform_save(self) -> None:
        start = time.perf_counter()
        pending = self._pending
        try:
            if pending.get("lists") is not None:
                self.store.save_lists(pending["lists"])
            if pending.get("volunteers") is not None:
                self.store.save_volunteers(pending["volunteers"])
        except Exception as e:
            self.last_error = e
            logger.error(f"Error during auto-save: {e}")
            debug_log("Auto-save failed", {"error": str(e)})
            return

        debug_log("Auto-save completed", {
            "duration": f"{(time.perf_counter() - start) * 1000:.2f}ms",
            "savedLists": len(pending.get("lists") or []),
            "savedVolunteers": len(pending.get("volunteers") or []),
        })
        self._pending = {}
        self.last_error = None
        self._emit(DATA_SAVED)

    def force_save(self, lists: List[BoardList], volunteers: List[VolunteerCard]) -> None:
        """Save immediately and tell listeners to reload. Raises if the save fails."""
        with self._lock:
            self.schedule(lists=lists, volunteers=volunteers, immediate=True)
            if self._pending and self.last_error is not None:
                raise self.last_error
        self._emit(DATA_FORCE_SAVED)

    def load_all_data(self) -> Tuple[List[BoardList], List[VolunteerCard]]:
        """Stored lists (defaults seeded) and volunteers, or empty on error."""
        try:
            volunteers = self.store.load_volunteers()
            lists = self.store.load_lists()
            return lists, volunteers
        except Exception as e:
            logger.error(f"Error loading data: {e}")
            debug_log("Data load failed", {"error": str(e)})
            return [], []
