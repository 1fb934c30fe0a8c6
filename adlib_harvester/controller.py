from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .models import ErrorKind, Outcome, WorkItem

Handler = Callable[[WorkItem], Outcome]


class ThreadPoolController:
    """Runs work items on a bounded thread pool with a runtime-adjustable limit.

    The executor is sized for the ceiling; ``limit`` caps how many items are
    in flight at once. Lowering the limit never blocks: running items finish
    and no new ones start until ``active`` drops below it.
    """

    def __init__(self, max_workers: int, initial_limit: int) -> None:
        self._max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="worker")
        self._cv = threading.Condition(threading.Lock())
        self._limit = self._clamp(initial_limit)
        self._active = 0
        self._running = False

    def start(self) -> None:
        self._running = True

    def stop(self, wait: bool = True) -> None:
        with self._cv:
            self._running = False
            self._cv.notify_all()
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def _clamp(self, limit: int) -> int:
        return min(self._max_workers, max(1, int(limit)))

    def _has_slot(self) -> bool:
        return self._active < self._limit

    def wait_for_capacity(self, timeout: Optional[float] = None) -> bool:
        """Block until a slot is free. False when stopped or ``timeout`` elapsed first."""
        with self._cv:
            self._cv.wait_for(lambda: not self._running or self._has_slot(), timeout=timeout)
            return self._running and self._has_slot()

    def submit(self, fn: Handler, item: WorkItem) -> Future:
        """Run ``fn(item)`` on the pool once a slot is free."""
        with self._cv:
            self._cv.wait_for(lambda: not self._running or self._has_slot())
            if not self._running:
                return self._executor.submit(self._stopped_outcome, item)

            self._active += 1

        return self._executor.submit(self._wrap, fn, item)

    def _wrap(self, fn: Handler, item: WorkItem) -> Outcome:
        try:
            return fn(item)
        finally:
            with self._cv:
                self._active = max(0, self._active - 1)
                self._cv.notify_all()

    @staticmethod
    def _stopped_outcome(item: WorkItem) -> Outcome:
        return Outcome.failure(item, ErrorKind.UNEXPECTED, "ControllerStopped")

    def set_concurrency_limit(self, new_limit: int) -> tuple[int, int]:
        """Move the in-flight cap within [1, max_workers]. Returns (old, new)."""
        with self._cv:
            old_limit = self._limit
            self._limit = self._clamp(new_limit)
            self._cv.notify_all()
            return old_limit, self._limit

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        with self._cv:
            return self._active
