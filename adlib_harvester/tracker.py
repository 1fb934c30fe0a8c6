from __future__ import annotations

import threading
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Set

from loguru import logger

from .models import Checkpoint, ErrorKind

CHECKPOINT_EVERY_PAGES = 20
CHECKPOINT_EVERY_DETAILS = 100


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ProgressTracker:
    """Run counters plus checkpoint emission.

    One instance per run, handed to every handler call. Checkpoints go to
    ``emit`` on total-count discovery, every ``CHECKPOINT_EVERY_PAGES``
    listing pages, every ``CHECKPOINT_EVERY_DETAILS`` details, and at the
    end of the run.
    """

    def __init__(
        self,
        account_owner: str = "",
        keyword: str = "",
        emit: Optional[Callable[[Checkpoint], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.account_owner = account_owner
        self.keyword = keyword
        self._emit = emit
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()
        self._seen: Set[str] = set()
        self._failures: Counter = Counter()
        self.pages_processed = 0
        self.ads_collected = 0
        self.details_collected = 0
        self.total_ads_available = 0

    def set_total(self, total: int) -> Checkpoint:
        with self._lock:
            self.total_ads_available = total
        logger.info("Found {} total ads for '{}'", total, self.account_owner or self.keyword)
        return self.save()

    def page_processed(self) -> Optional[Checkpoint]:
        with self._lock:
            self.pages_processed += 1
            due = self.pages_processed % CHECKPOINT_EVERY_PAGES == 0
        return self.save() if due else None

    def ad_discovered(self, ad_id: str) -> bool:
        """Count ``ad_id`` once; False when it was already counted."""
        with self._lock:
            if ad_id in self._seen:
                return False
            self._seen.add(ad_id)
            self.ads_collected += 1
            collected, total = self.ads_collected, self.total_ads_available
        if total:
            logger.debug("Discovered ad {} ({}/{}, {:.1f}%)", ad_id, collected, total, collected / total * 100)
        else:
            logger.debug("Discovered ad {} ({})", ad_id, collected)
        return True

    def detail_collected(self) -> Optional[Checkpoint]:
        with self._lock:
            self.details_collected += 1
            due = self.details_collected % CHECKPOINT_EVERY_DETAILS == 0
        return self.save() if due else None

    def failure(self, kind: ErrorKind) -> None:
        with self._lock:
            self._failures[kind.value] += 1

    @property
    def failures(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._failures)

    @property
    def elapsed_seconds(self) -> float:
        return round(self._clock() - self._started, 2)

    def checkpoint(self, final: bool = False) -> Checkpoint:
        with self._lock:
            return Checkpoint(
                total_ads_available=self.total_ads_available,
                ads_collected=self.ads_collected,
                details_collected=self.details_collected,
                account_owner=self.account_owner or "",
                keyword=self.keyword or "",
                timestamp=_iso_now(),
                duration_seconds=self.elapsed_seconds if final else None,
                failures=dict(self._failures) if final else {},
            )

    def save(self, final: bool = False) -> Checkpoint:
        snapshot = self.checkpoint(final=final)
        logger.info(
            "Saving progress: {} ad URLs found, {} details scraped (total available: {})",
            snapshot.ads_collected,
            snapshot.details_collected,
            snapshot.total_ads_available or "unknown",
        )
        if self._emit is not None:
            self._emit(snapshot)
        return snapshot
