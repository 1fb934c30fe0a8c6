from __future__ import annotations

import heapq
import itertools
import threading
from typing import List, Optional, Set, Tuple

from loguru import logger

from .models import WorkItem, WorkKind


class Frontier:
    """Thread-safe deduplicated priority queue of pending work.

    Higher priority dequeues first (LISTING before DETAIL); equal priorities
    come out in insertion order. Accepted DETAIL items are capped at
    ``max_details`` unless ``unlimited`` is set. Keys are remembered for the
    whole run, so an item that has been dequeued is still a duplicate.
    """

    def __init__(self, max_details: int = 500, unlimited: bool = False) -> None:
        self._max_details = max_details
        self._unlimited = unlimited
        self._heap: List[Tuple[int, int, WorkItem]] = []
        self._seq = itertools.count()
        self._seen: Set[str] = set()
        self._details_accepted = 0
        self._cv = threading.Condition(threading.Lock())

    def add(self, item: WorkItem) -> bool:
        """Queue ``item``; False when it is a duplicate or over the DETAIL cap."""
        with self._cv:
            key = item.unique_key
            if key in self._seen:
                return False
            if item.kind == WorkKind.DETAIL:
                if self._cap_reached():
                    return False
                self._details_accepted += 1
            self._seen.add(key)
            self._push(item)
            return True

    def requeue(self, item: WorkItem) -> None:
        """Put a previously accepted item back for another attempt."""
        with self._cv:
            self._push(item)

    def next(self) -> Optional[WorkItem]:
        """Pop the highest-priority item, or None when empty."""
        with self._cv:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[2]

    def wait(self, timeout: float) -> bool:
        """Block until an item is queued or ``timeout`` elapses. True if non-empty."""
        with self._cv:
            if not self._heap:
                self._cv.wait(timeout=timeout)
            return bool(self._heap)

    def size(self) -> int:
        with self._cv:
            return len(self._heap)

    def is_empty(self) -> bool:
        return self.size() == 0

    @property
    def details_accepted(self) -> int:
        with self._cv:
            return self._details_accepted

    def detail_cap_reached(self) -> bool:
        with self._cv:
            return self._cap_reached()

    def _cap_reached(self) -> bool:
        return not self._unlimited and self._details_accepted >= self._max_details

    def _push(self, item: WorkItem) -> None:
        heapq.heappush(self._heap, (-item.priority, next(self._seq), item))
        logger.debug("Frontier: queued {} {} (size={})", item.kind.value, item.key, len(self._heap))
        self._cv.notify()
