from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

from loguru import logger

from .backoff import BackoffGovernor
from .base import BaseFetcher
from .config import CrawlConfig
from .controller import ThreadPoolController
from .dom import PlaceholderPolicy
from .errors import TransportError
from .factory import FetcherFactory
from .frontier import Frontier
from .handlers import DetailHandler, ListingHandler
from .identity import Identity, IdentityPool, parse_cookie_header
from .listing import INITIAL_KEY, search_url
from .metrics import MetricsCollector
from .models import ErrorKind, Outcome, WorkItem, WorkKind
from .rate_limiter import JitterPacer
from .smart_controller import SmartController
from .storage import StorageBase
from .strategies import IncreaseConcurrencyStrategy, ReduceConcurrencyStrategy, ResourcePressureStrategy
from .tracker import ProgressTracker

STATUS_INTERVAL_SECS = 15.0


class Crawler:
    """Drains the frontier with a pool of workers until no work is left.

    One dispatcher thread pops items and hands them to the controller; each
    worker acquires an identity, waits out jitter and any running backoff,
    fetches, runs the matching handler and resolves the outcome:

    - RATE_LIMITED: backoff wait, then the same item goes back on the queue.
    - BLOCKED: the identity is retired and the item retried with a fresh one,
      up to ``max_request_retries`` times.
    - NOT_FOUND, TRANSPORT, UNEXPECTED: the item is dropped and counted.
    """

    def __init__(
        self,
        config: CrawlConfig,
        sink: StorageBase,
        fetcher: Optional[BaseFetcher] = None,
        metrics: Optional[MetricsCollector] = None,
        identities: Optional[IdentityPool] = None,
        governor: Optional[BackoffGovernor] = None,
        pacer: Optional[JitterPacer] = None,
        sleep: Callable[[float], None] = time.sleep,
        status_interval_secs: float = STATUS_INTERVAL_SECS,
    ) -> None:
        self._config = config
        self._sink = sink
        self._metrics = metrics or MetricsCollector()
        self._fetcher = fetcher or FetcherFactory(metrics=self._metrics).create(config.fetcher)
        self._identities = identities or IdentityPool(
            max_size=config.pool_size,
            max_usage=config.identity_max_usage,
            proxy_urls=config.proxy_urls,
            seed_cookies=parse_cookie_header(config.cookies),
        )
        self._governor = governor or BackoffGovernor(sleep=sleep)
        low, high = config.jitter_window
        self._pacer = pacer or JitterPacer(low, high, sleep=sleep)
        self._status_interval = status_interval_secs

        self.frontier = Frontier(max_details=config.max_urls_count, unlimited=config.unlimited_mode)
        self.tracker = ProgressTracker(config.account_owner, config.keyword, emit=sink.write_checkpoint)
        self._listing = ListingHandler(
            self.frontier,
            sink,
            account_owner=config.account_owner,
            keyword=config.keyword,
            max_urls=config.max_urls_count,
            unlimited=config.unlimited_mode,
            scrape_details=config.scrape_ad_details,
        )
        self._detail = DetailHandler(sink, placeholders=PlaceholderPolicy.from_signatures(config.placeholder_signatures))
        self._done = threading.Event()
        self._controller: Optional[ThreadPoolController] = None

    def run(self) -> ProgressTracker:
        cfg = self._config
        if cfg.identity_state_path:
            self._identities.load(cfg.identity_state_path)

        start_url = search_url(cfg.account_owner, cfg.keyword)
        self.frontier.add(WorkItem.listing(start_url, INITIAL_KEY))
        low, high = cfg.concurrency_bounds
        logger.info(
            "Starting crawl for '{}' (keyword={!r}, max_urls={}, unlimited={}, details={}, mode={}, concurrency={}-{})",
            cfg.account_owner,
            cfg.keyword,
            cfg.max_urls_count,
            cfg.unlimited_mode,
            cfg.scrape_ad_details,
            "local" if cfg.local_mode else "parallel",
            low,
            high,
        )

        controller = ThreadPoolController(max_workers=high, initial_limit=low)
        self._controller = controller
        controller.start()

        smart = None
        if not cfg.local_mode:
            smart = SmartController(
                self._metrics,
                controller,
                [
                    ReduceConcurrencyStrategy(min_limit=low),
                    ResourcePressureStrategy(min_limit=low),
                    IncreaseConcurrencyStrategy(max_limit=high),
                ],
                queue_depth=self.frontier.size,
            )
            threading.Thread(target=smart.start, name="smart-controller", daemon=True).start()

        self._done.clear()
        status = threading.Thread(target=self._status_loop, name="status", daemon=True)
        status.start()
        try:
            self._dispatch(controller)
        finally:
            self._done.set()
            if smart is not None:
                smart.stop()
            controller.stop(wait=True)

        self.tracker.save(final=True)
        if cfg.identity_state_path:
            self._identities.save(cfg.identity_state_path)
        logger.info(
            "Crawl finished: pages={} ads={} details={} failures={} in {}s",
            self.tracker.pages_processed,
            self.tracker.ads_collected,
            self.tracker.details_collected,
            self.tracker.failures,
            self.tracker.elapsed_seconds,
        )
        return self.tracker

    def _dispatch(self, controller: ThreadPoolController) -> None:
        while True:
            if not controller.wait_for_capacity(timeout=0.5):
                continue
            item = self.frontier.next()
            if item is None:
                # Workers queue follow-up items before releasing their slot.
                if controller.active == 0 and self.frontier.is_empty():
                    return
                self.frontier.wait(timeout=0.2)
                continue
            future = controller.submit(self._work, item)
            future.add_done_callback(self._report_crash)

    @staticmethod
    def _report_crash(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Worker crashed")

    def _work(self, item: WorkItem) -> Outcome:
        identity: Optional[Identity] = None
        try:
            identity = self._identities.acquire()
            self._pacer.acquire()
            self._governor.gate()
            outcome = self._attempt(item, identity)
            self.resolve(outcome, identity)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error handling {} {}", item.kind.value, item.key)
            outcome = Outcome.failure(item, ErrorKind.UNEXPECTED, f"{type(exc).__name__}: {exc}")
            self.resolve(outcome, identity)
        return outcome

    def _attempt(self, item: WorkItem, identity: Identity) -> Outcome:
        logger.debug("Handling {} {} with {}", item.kind.value, item.key, identity.identity_id)
        try:
            response = self._fetcher.fetch(item.url, identity)
        except TransportError as exc:
            return Outcome.failure(item, ErrorKind.TRANSPORT, str(exc), exc.status_code)
        self._identities.record_use(identity)
        self._identities.absorb_cookies(identity, response.cookies)
        handler = self._listing if item.kind == WorkKind.LISTING else self._detail
        return handler.handle(item, response, self.tracker)

    def resolve(self, outcome: Outcome, identity: Optional[Identity]) -> None:
        item = outcome.item
        if outcome.ok:
            self._governor.on_success()
            return

        kind = outcome.error_kind
        label = f"{item.kind.value} {item.key}"
        if kind == ErrorKind.RATE_LIMITED:
            logger.warning("Rate limit detected on {}, backing off", label)
            self._governor.on_rate_limited()
            self.frontier.requeue(item)
            return

        if kind == ErrorKind.BLOCKED:
            logger.warning("Blocked on {} ({}), retiring {}", label, outcome.message, identity.identity_id)
            self._identities.retire(identity)
            if item.attempts < self._config.max_request_retries:
                self.frontier.requeue(item.next_attempt())
                return
            logger.error("Dropping {} after {} blocked retries", label, item.attempts)
        elif kind == ErrorKind.NOT_FOUND:
            logger.warning("{} not found ({}), skipping", label, outcome.message)
        else:
            logger.error("Failed {}: {}", label, outcome.message)
        self.tracker.failure(kind)

    def _status_loop(self) -> None:
        while not self._done.wait(self._status_interval):
            backoff = self._governor.state
            controller = self._controller
            logger.info(
                "Status: queued={} in_flight={} limit={} identities active={} retired={} backoff={} ({:.0f}ms)",
                self.frontier.size(),
                controller.active if controller else 0,
                controller.limit if controller else 0,
                self._identities.active_count,
                self._identities.retired_count,
                backoff.mode.value,
                backoff.current_delay_ms,
            )
        logger.info("Crawler finished or stopped, stopping status logging")
