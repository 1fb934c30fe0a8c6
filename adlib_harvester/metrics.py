from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict
from threading import Lock
from typing import Deque, Dict, List, Tuple

from .models import FetchEvent, MetricsSnapshot

BLOCK_STATUSES = (403, 999)
IP_BAN_BLOCKS = 3


class MetricsCollector:
    """Final outcome of every fetch, kept for the concurrency scaler.

    Events are timestamped on arrival; ``snapshot`` folds the ones inside
    a trailing window into a MetricsSnapshot. Blocks count 403 and the
    anti-bot 999 together, and three or more of them in one window flag a
    suspected IP ban."""

    def __init__(self, max_events: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[Tuple[float, FetchEvent]] = deque(maxlen=max_events)

    def record_event(self, event: FetchEvent) -> None:
        with self._lock:
            self._events.append((time.time(), event))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            events = [e for ts, e in self._events if ts >= cutoff]

        ok = timeouts = conn_errors = rate_limited = blocks = 0
        latency_total = 0.0
        for e in events:
            latency_total += e.latency_ms
            if e.success:
                ok += 1
            if e.error_type == "Timeout":
                timeouts += 1
            elif e.error_type == "ConnectionError":
                conn_errors += 1
            if e.status_code == 429:
                rate_limited += 1
            elif e.status_code in BLOCK_STATUSES:
                blocks += 1

        return MetricsSnapshot(
            window_secs=window_secs,
            total_requests=len(events),
            success_count=ok,
            timeout_count=timeouts,
            conn_error_count=conn_errors,
            http_429_count=rate_limited,
            http_403_count=blocks,
            ip_ban_suspected_count=1 if blocks >= IP_BAN_BLOCKS else 0,
            avg_latency_ms=latency_total / len(events) if events else 0.0,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        """All retained events as plain dicts, oldest first."""
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]
