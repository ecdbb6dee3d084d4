import logging
import threading
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 5 * 60


class FlagMemory:
    """Time-windowed record of messages that already produced a notice.

    Entries map a message id to the clock reading at which its notice was
    claimed. An entry older than ``ttl_seconds`` counts as absent and is
    dropped the next time that id is looked up. ``sweep`` drops every expired
    entry at once for deployments that run the periodic sweeper.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_S, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _expired(self, ts: float, now: float) -> bool:
        return now - ts > self.ttl_seconds

    def _lookup(self, message_id: str, now: float) -> bool:
        ts = self._seen.get(message_id)
        if ts is None:
            return False
        if self._expired(ts, now):
            del self._seen[message_id]
            return False
        return True

    def was_recently_flagged(self, message_id: str) -> bool:
        with self._lock:
            return self._lookup(message_id, self._clock())

    def remember(self, message_id: str) -> None:
        with self._lock:
            self._seen[message_id] = self._clock()

    def claim(self, message_id: str) -> bool:
        """Check-and-mark in one step.

        Returns True for the first caller in a window, which now owns the
        notice for ``message_id``; False for everyone else.
        """
        with self._lock:
            now = self._clock()
            if self._lookup(message_id, now):
                return False
            self._seen[message_id] = now
            return True

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [mid for mid, ts in self._seen.items() if self._expired(ts, now)]
            for mid in stale:
                del self._seen[mid]
        if stale:
            logger.debug("flag memory sweep evicted %d entries", len(stale))
        return len(stale)

    def __contains__(self, message_id: object) -> bool:
        return isinstance(message_id, str) and self.was_recently_flagged(message_id)

    def __len__(self) -> int:
        return len(self._seen)
