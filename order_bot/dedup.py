# order_bot/dedup.py

import logging
import threading
import time
from collections import deque
from typing import Deque, List, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_MAX_EVENT_AGE_SEC = 60.0


class RecentKeySet:
    """
    Process-local set of recently seen keys.

    - Fixed capacity.
    - Oldest inserted key is evicted first; lookups do not refresh a key.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._order: Deque[str] = deque()
        self._keys: Set[str] = set()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def add(self, key: str) -> bool:
        """
        Record a key. Returns False if it was already present.
        """
        with self._lock:
            return self._add_locked(key)

    def _add_locked(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._order.append(key)
        self._keys.add(key)
        while len(self._order) > self.capacity:
            self._keys.discard(self._order.popleft())
        return True

    def snapshot(self) -> List[str]:
        """
        Return the keys currently tracked, oldest first.
        """
        with self._lock:
            return list(self._order)


class EventDeduplicator(RecentKeySet):
    """
    Drops Slack deliveries we have already handled or that arrive too late.

    Message events and edit/delete events are keyed by event_id, button
    clicks by trigger_id; all of them share one key set.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, max_event_age: float = DEFAULT_MAX_EVENT_AGE_SEC) -> None:
        super().__init__(capacity)
        self.max_event_age = max_event_age

    def should_skip(self, identity: Optional[str], event_time: Optional[float] = None, now: Optional[float] = None) -> bool:
        if not identity:
            return False

        now = time.time() if now is None else now
        with self._lock:
            if identity in self._keys:
                logger.info(f"Skipping duplicate delivery {identity}")
                return True

            if event_time is not None and now - float(event_time) > self.max_event_age:
                logger.info(f"Skipping stale delivery {identity} ({now - float(event_time):.0f}s old)")
                return True

            self._add_locked(identity)
            return False

    def should_skip_event(self, event, now: Optional[float] = None) -> bool:
        """Dedup check for a SlackEvent or ActionEvent."""
        identity = getattr(event, "event_id", None) or getattr(event, "trigger_id", None)
        return self.should_skip(identity, getattr(event, "event_time", None), now=now)
