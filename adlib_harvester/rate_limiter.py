from __future__ import annotations

import random
import time
from typing import Callable, Optional


class JitterPacer:
    """Random per-request delay drawn uniformly from [min_ms, max_ms].

    Calling acquire() blocks the current thread for the drawn delay so that
    concurrent workers do not fire in lockstep. Each call draws independently;
    nothing is shared between threads besides the random source."""

    def __init__(
        self,
        min_ms: int,
        max_ms: int,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_ms < 0 or max_ms < min_ms:
            raise ValueError(f"invalid jitter window [{min_ms}, {max_ms}]")
        self._min = min_ms
        self._max = max_ms
        self._rng = rng or random.Random()
        self._sleep = sleep

    def next_delay_ms(self) -> float:
        return self._rng.uniform(self._min, self._max)

    def acquire(self) -> float:
        """Sleep for one jitter delay and return it in milliseconds."""
        delay = self.next_delay_ms()
        if delay > 0:
            self._sleep(delay / 1000)
        return delay
