from __future__ import annotations

import threading
from dataclasses import replace
from typing import Callable, Iterable, Optional

import psutil
from loguru import logger

from .controller import ThreadPoolController
from .metrics import MetricsCollector
from .models import MetricsSnapshot
from .strategies import ControlStrategy


class SmartController:
    """Scales the crawl's worker limit between its floor and ceiling.

    Every few seconds it samples the fetch window, host load from psutil
    and the frontier depth, then lets the first matching strategy move the
    limit by one step."""

    def __init__(
        self,
        metrics: MetricsCollector,
        controller: ThreadPoolController,
        strategies: Iterable[ControlStrategy],
        queue_depth: Optional[Callable[[], int]] = None,
        eval_interval_secs: float = 5,
        window_secs: int = 30,
    ) -> None:
        self._metrics = metrics
        self._controller = controller
        self._strategies = list(strategies)
        self._queue_depth = queue_depth or (lambda: 0)
        self._eval_interval = eval_interval_secs
        self._window_secs = window_secs
        self._stopped = threading.Event()
        self._log = logger.bind(component="smart_controller")

    def start(self) -> None:
        """Evaluate until stop() is called (blocking; run in a daemon thread)."""
        while not self._stopped.is_set():
            self._apply_strategies(self.sample())
            self._stopped.wait(self._eval_interval)

    def stop(self) -> None:
        """Signal the evaluation loop to stop; wakes it if it is waiting."""
        self._stopped.set()

    def sample(self) -> MetricsSnapshot:
        snapshot = self._metrics.snapshot(self._window_secs)
        return replace(
            snapshot,
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_percent=psutil.virtual_memory().percent,
            queue_depth=self._queue_depth(),
        )

    def _apply_strategies(self, snapshot: MetricsSnapshot) -> None:
        for strategy in self._strategies:
            if strategy.should_apply(snapshot):
                old_limit = self._controller.limit
                strategy.apply(self._controller, snapshot)
                new_limit = self._controller.limit
                self._log.bind(
                    strategy=strategy.name,
                    old_limit=old_limit,
                    new_limit=new_limit,
                ).info(
                    "Concurrency {} -> {} by {} (requests={} 429={} 403={} timeouts={} "
                    "latency={:.0f}ms cpu={:.0f}% mem={:.0f}% queued={})",
                    old_limit,
                    new_limit,
                    strategy.name,
                    snapshot.total_requests,
                    snapshot.http_429_count,
                    snapshot.http_403_count,
                    snapshot.timeout_count,
                    snapshot.avg_latency_ms,
                    snapshot.cpu_percent,
                    snapshot.memory_percent,
                    snapshot.queue_depth,
                )
                break
