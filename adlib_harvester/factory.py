from __future__ import annotations

from typing import Dict, Optional

from .backoff import BackoffStrategy
from .base import BaseFetcher
from .fetchers import CurlFetcher, RequestsFetcher
from .metrics import MetricsCollector

FETCHERS = {
    "curl": CurlFetcher,
    "requests": RequestsFetcher,
}


class FetcherFactory:
    """Factory for fetcher instances by transport name.

    Fetchers hold no per-request state (a fresh session per call), so one
    instance per name is shared by all workers.
    """

    def __init__(
        self,
        metrics: Optional[MetricsCollector] = None,
        backoff: Optional[BackoffStrategy] = None,
        max_retries: int = 3,
        timeout: int = 20,
    ) -> None:
        self._metrics = metrics
        self._backoff = backoff or BackoffStrategy()
        self._max_retries = max_retries
        self._timeout = timeout
        self._cache: Dict[str, BaseFetcher] = {}

    def create(self, name: str) -> BaseFetcher:
        if name in self._cache:
            return self._cache[name]
        cls = FETCHERS.get(name)
        if cls is None:
            raise ValueError(f"Unknown fetcher: {name}")
        fetcher = cls(
            metrics=self._metrics,
            backoff=self._backoff,
            max_retries=self._max_retries,
            timeout=self._timeout,
        )
        self._cache[name] = fetcher
        return fetcher
