from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from loguru import logger

from .backoff import BackoffStrategy
from .errors import TransportError
from .identity import Identity
from .metrics import MetricsCollector
from .models import FetchEvent, FetchResponse

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def error_type_of(exc: BaseException) -> str:
    """Collapse transport exceptions of either HTTP stack onto the metric names."""
    names = [cls.__name__ for cls in type(exc).__mro__]
    if any("Timeout" in name for name in names):
        return "Timeout"
    if "ConnectionError" in names:
        return "ConnectionError"
    return type(exc).__name__


class BaseFetcher(ABC):
    """Abstract document fetcher with a common retry pipeline.

    - Retries transport exceptions and 5xx statuses up to ``max_retries``
      attempts, sleeping per ``BackoffStrategy`` in between.
    - Every final attempt is recorded into the metrics collector.
    - Any other status is returned as-is; the caller decides what it means.
    - Raises TransportError when the last attempt still raised.
    """

    def __init__(
        self,
        metrics: Optional[MetricsCollector] = None,
        backoff: Optional[BackoffStrategy] = None,
        max_retries: int = 3,
        timeout: int = 20,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._metrics = metrics
        self._backoff = backoff or BackoffStrategy()
        self._max_retries = max(1, max_retries)
        self._timeout = timeout
        self._sleep = sleep

    def fetch(self, url: str, identity: Optional[Identity] = None) -> FetchResponse:
        if not url:
            raise ValueError("url is required")

        attempt = 0
        while True:
            attempt += 1
            start_ms = self._now_ms()
            try:
                response = self._request(url, identity)
            except Exception as exc:  # noqa: BLE001
                error_type = error_type_of(exc)
                if attempt >= self._max_retries:
                    self._record(FetchEvent(url, False, None, self._now_ms() - start_ms, error_type))
                    raise TransportError(url, error_type, attempt) from exc
                logger.debug("Fetch {} failed ({}), attempt {}/{}", url, error_type, attempt, self._max_retries)
                self._sleep(self._backoff.get_sleep(attempt, error_type))
                continue

            if response.status_code >= 500 and attempt < self._max_retries:
                logger.debug("Fetch {} got HTTP {}, attempt {}/{}", url, response.status_code, attempt, self._max_retries)
                self._sleep(self._backoff.get_sleep(attempt, f"HTTP_{response.status_code}"))
                continue

            self._record(FetchEvent(
                url=url,
                success=response.ok,
                status_code=response.status_code,
                latency_ms=response.latency_ms,
                error_type=None if response.ok else f"HTTP_{response.status_code}",
            ))
            return response

    def _record(self, event: FetchEvent) -> None:
        if self._metrics:
            self._metrics.record_event(event)

    @staticmethod
    def request_kwargs(identity: Optional[Identity]) -> dict:
        kwargs: dict = {"headers": dict(DEFAULT_HEADERS)}
        if identity is not None:
            kwargs["cookies"] = dict(identity.cookies) or None
            if identity.proxy_url:
                kwargs["proxies"] = {"http": identity.proxy_url, "https": identity.proxy_url}
        return kwargs

    @abstractmethod
    def _request(self, url: str, identity: Optional[Identity]) -> FetchResponse:
        ...

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)
