from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from .models import BackoffMode

BACKOFF_FLOOR_MS = 10_000
BACKOFF_CEILING_MS = 60_000
BACKOFF_FACTOR = 1.5


class BackoffStrategy:
    """Exponential backoff with jitter for transport retry delays.

    Computes sleep duration as base * 2^(attempt-1) plus random jitter,
    capped at a configurable maximum."""

    def __init__(self, base_seconds: float = 0.5, max_seconds: float = 10.0) -> None:
        self._base = base_seconds
        self._max = max_seconds

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        jitter = random.uniform(0, exp * 0.1)
        return exp + jitter


@dataclass(frozen=True)
class BackoffState:
    mode: BackoffMode
    current_delay_ms: float
    consecutive_failures: int


class BackoffGovernor:
    """Shared rate-limit backoff, the only writer of BackoffState.

    The first rate-limit signal waits ``floor_ms``; each further consecutive
    signal multiplies the wait by ``factor`` up to ``ceiling_ms``. A success
    after one or more signals resets to the floor. Other workers call
    ``gate`` before each request and wait out a running backoff.
    """

    def __init__(
        self,
        floor_ms: float = BACKOFF_FLOOR_MS,
        ceiling_ms: float = BACKOFF_CEILING_MS,
        factor: float = BACKOFF_FACTOR,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._floor = floor_ms
        self._ceiling = ceiling_ms
        self._factor = factor
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._current = floor_ms
        self._failures = 0
        self._resume_at = 0.0

    def on_rate_limited(self) -> float:
        """Escalate and block the caller for the new delay. Returns the delay in ms."""
        with self._lock:
            if self._failures > 0:
                self._current = min(self._current * self._factor, self._ceiling)
            self._failures += 1
            delay, failures = self._current, self._failures
            self._resume_at = max(self._resume_at, self._clock() + delay / 1000)
        logger.warning("Rate limit backoff: waiting {:.1f}s (consecutive signals: {})", delay / 1000, failures)
        self._sleep(delay / 1000)
        logger.info("Rate limit backoff: finished waiting {:.1f}s, resuming", delay / 1000)
        return delay

    def gate(self) -> float:
        """Hold a worker that is about to send while a backoff wait is running.

        Returns the seconds waited (0.0 in NORMAL mode)."""
        with self._lock:
            remaining = self._resume_at - self._clock() if self._failures else 0.0
        if remaining <= 0:
            return 0.0
        logger.debug("Backoff gate: holding request for {:.1f}s", remaining)
        self._sleep(remaining)
        return remaining

    def on_success(self) -> None:
        with self._lock:
            if self._failures == 0:
                return
            failures = self._failures
            self._failures = 0
            self._current = self._floor
        logger.info("Rate limit recovery: request succeeded after {} signal(s), backoff reset", failures)

    @property
    def state(self) -> BackoffState:
        with self._lock:
            mode = BackoffMode.BACKOFF if self._failures else BackoffMode.NORMAL
            return BackoffState(mode=mode, current_delay_ms=self._current, consecutive_failures=self._failures)
