# Volunteer board: debug log
#
# Logs through `logging` and also keeps the last 100 entries in local storage
# so they can be inspected from the debug-logs page.

import json
import logging
from datetime import datetime
from typing import Any, Optional

from .storage import LocalStorage, DEBUG_LOGS_KEY

logger = logging.getLogger("volunteer_board.debug")

MAX_ENTRIES = 100

# Set by board_server.py at startup
STORAGE: Optional[LocalStorage] = None


def attach_storage(storage: Optional[LocalStorage]) -> None:
    global STORAGE
    STORAGE = storage


def debug_log(message: str, data: Any = None) -> None:
    """Log a message and append it to the persistent ring buffer. Never raises."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    if data is not None:
        logger.debug(f"{message} {data}")
    else:
        logger.debug(message)

    if STORAGE is None:
        return
    try:
        logs = STORAGE.get_json(DEBUG_LOGS_KEY, []) or []
        logs.append({
            "timestamp": timestamp,
            "message": message,
            "data": json.dumps(data, default=str) if data is not None else None,
        })
        if len(logs) > MAX_ENTRIES:
            logs = logs[-MAX_ENTRIES:]
        STORAGE.set_json(DEBUG_LOGS_KEY, logs)
    except Exception as e:
        logger.error(f"Failed to save debug log: {e}")


def get_debug_logs() -> list:
    if STORAGE is None:
        return []
    return STORAGE.get_json(DEBUG_LOGS_KEY, []) or []


def clear_debug_logs() -> None:
    if STORAGE is not None:
        STORAGE.remove_item(DEBUG_LOGS_KEY)
