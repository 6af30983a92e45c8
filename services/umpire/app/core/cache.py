"""In-memory decision cache keeping repeated requests consistent."""
import logging
import os
import threading
from typing import Dict, Optional

from app.core.decision import Decision

logger = logging.getLogger(__name__)


class DecisionCache:
    """
    Process-lifetime memo of final decisions, keyed by upload name and sport.

    Created once at service startup and handed to the pipeline. There is no
    expiry and no size bound; keys are effectively request-scoped because
    uploads get unique generated names.

    Keys use the file's base name, not its content. Two different uploads that
    end up with the same generated name would share a decision.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Decision] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(video_path: str, sport: str) -> str:
        return f"{os.path.basename(video_path)}_{sport}"

    def get(self, key: str) -> Optional[Decision]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, decision: Decision) -> None:
        with self._lock:
            self._entries[key] = decision
        logger.debug(f"Cached decision {key}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
