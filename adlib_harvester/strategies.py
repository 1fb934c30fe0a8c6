from __future__ import annotations

from abc import ABC, abstractmethod

from .controller import ThreadPoolController
from .models import MetricsSnapshot


def _share(count: int, snapshot: MetricsSnapshot) -> float:
    return count / snapshot.total_requests if snapshot.total_requests else 0.0


class ControlStrategy(ABC):
    """One rule of the concurrency scaler.

    ``should_apply`` inspects a sampled window; ``apply`` moves the worker
    limit by one step. The SmartController stops at the first rule that fires."""

    name = "strategy"

    @abstractmethod
    def should_apply(self, snapshot: MetricsSnapshot) -> bool:
        raise NotImplementedError

    @abstractmethod
    def apply(self, controller: ThreadPoolController, snapshot: MetricsSnapshot) -> None:
        raise NotImplementedError

    @staticmethod
    def _step(controller: ThreadPoolController, delta: int, floor: int, ceiling: int) -> None:
        controller.set_concurrency_limit(min(ceiling, max(floor, controller.limit + delta)))


class ReduceConcurrencyStrategy(ControlStrategy):
    """Sheds a worker when the ad library pushes back.

    Fires when the window's share of 429s, of blocks (403/999) or of
    timeouts reaches its threshold."""

    name = "reduce"

    def __init__(
        self,
        max_rate_limited_share: float = 0.05,
        max_blocked_share: float = 0.10,
        max_timeout_share: float = 0.10,
        min_limit: int = 1,
    ) -> None:
        self._max_rate_limited = max_rate_limited_share
        self._max_blocked = max_blocked_share
        self._max_timeouts = max_timeout_share
        self._min_limit = min_limit

    def should_apply(self, snapshot: MetricsSnapshot) -> bool:
        if snapshot.total_requests == 0:
            return False
        return (
            _share(snapshot.http_429_count, snapshot) >= self._max_rate_limited
            or _share(snapshot.http_403_count, snapshot) >= self._max_blocked
            or _share(snapshot.timeout_count, snapshot) >= self._max_timeouts
        )

    def apply(self, controller: ThreadPoolController, snapshot: MetricsSnapshot) -> None:
        self._step(controller, -1, self._min_limit, controller.limit)


class ResourcePressureStrategy(ControlStrategy):
    """Sheds a worker when the host or the target is struggling.

    Triggers on CPU or memory use above their ceilings, or on an average
    fetch latency above ``max_latency_ms``."""

    name = "resource_pressure"

    def __init__(
        self,
        max_cpu_percent: float = 85.0,
        max_memory_percent: float = 85.0,
        max_latency_ms: float = 15000.0,
        min_limit: int = 1,
    ) -> None:
        self._max_cpu = max_cpu_percent
        self._max_memory = max_memory_percent
        self._max_latency = max_latency_ms
        self._min_limit = min_limit

    def should_apply(self, snapshot: MetricsSnapshot) -> bool:
        return (
            snapshot.cpu_percent >= self._max_cpu
            or snapshot.memory_percent >= self._max_memory
            or (snapshot.total_requests > 0 and snapshot.avg_latency_ms >= self._max_latency)
        )

    def apply(self, controller: ThreadPoolController, snapshot: MetricsSnapshot) -> None:
        self._step(controller, -1, self._min_limit, controller.limit)


class IncreaseConcurrencyStrategy(ControlStrategy):
    """Adds a worker while the frontier has pending work and the window is clean.

    A clean window has no 429s, no blocks and a timeout share below
    ``max_timeout_share``."""

    name = "increase"

    def __init__(self, max_timeout_share: float = 0.02, max_limit: int = 20) -> None:
        self._max_timeouts = max_timeout_share
        self._max_limit = max_limit

    def should_apply(self, snapshot: MetricsSnapshot) -> bool:
        if snapshot.total_requests == 0 or snapshot.queue_depth == 0:
            return False
        if snapshot.http_429_count or snapshot.http_403_count:
            return False
        return _share(snapshot.timeout_count, snapshot) < self._max_timeouts

    def apply(self, controller: ThreadPoolController, snapshot: MetricsSnapshot) -> None:
        self._step(controller, 1, controller.limit, self._max_limit)
