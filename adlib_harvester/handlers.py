"""Listing and detail handlers.

A handler turns one fetched response into side effects (new work items,
emitted records, tracker updates) and an ``Outcome``. Handlers never raise
for per-item problems; the crawler decides requeue-vs-drop from the
outcome's ErrorKind.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger

from .classifier import CreativeTypeClassifier
from .detail import extract_ad_record, url_only_record
from .dom import PlaceholderPolicy
from .frontier import Frontier
from .listing import ListingPage, is_pagination_url, pagination_url, parse_listing
from .models import ErrorKind, FetchResponse, Outcome, WorkItem, WorkKind
from .normalize import END_OF_LIST_CURSOR
from .storage import StorageBase
from .tracker import ProgressTracker

# Bodies below these sizes are auth walls or soft blocks, not real pages.
MIN_BODY_CHARS = {
    WorkKind.LISTING: 100,
    WorkKind.DETAIL: 1000,
}

STATUS_KINDS = {
    429: ErrorKind.RATE_LIMITED,
    403: ErrorKind.BLOCKED,
    999: ErrorKind.BLOCKED,
    404: ErrorKind.NOT_FOUND,
    410: ErrorKind.NOT_FOUND,
}


def classify_status(kind: WorkKind, response: FetchResponse) -> Optional[ErrorKind]:
    """ErrorKind for a response, or None when it is usable."""
    if response.ok:
        if len(response.body or "") < MIN_BODY_CHARS[kind]:
            return ErrorKind.BLOCKED
        return None
    return STATUS_KINDS.get(int(response.status_code), ErrorKind.TRANSPORT)


def _failure(item: WorkItem, response: FetchResponse, kind: ErrorKind) -> Outcome:
    if response.ok:
        message = f"suspiciously small {item.kind.value} body ({len(response.body or '')} chars)"
    else:
        message = f"HTTP {response.status_code}"
    return Outcome.failure(item, kind, message, response.status_code)


class ListingHandler:
    """Parses a result page, enqueues its ads and the next page."""

    def __init__(
        self,
        frontier: Frontier,
        sink: StorageBase,
        account_owner: str = "",
        keyword: str = "",
        max_urls: int = 500,
        unlimited: bool = False,
        scrape_details: bool = True,
    ) -> None:
        self._frontier = frontier
        self._sink = sink
        self._account_owner = account_owner
        self._keyword = keyword
        self._max_urls = max_urls
        self._unlimited = unlimited
        self._scrape_details = scrape_details

    def limit_reached(self, tracker: ProgressTracker) -> bool:
        if self._unlimited:
            return False
        if self._scrape_details:
            return self._frontier.detail_cap_reached()
        return tracker.ads_collected >= self._max_urls

    def handle(self, item: WorkItem, response: FetchResponse, tracker: ProgressTracker) -> Outcome:
        error = classify_status(item.kind, response)
        if error is not None:
            return _failure(item, response, error)

        first_page = not is_pagination_url(item.url)
        page = parse_listing(response.body, first_page=first_page)
        if first_page and page.total_count is not None:
            tracker.set_total(page.total_count)
        tracker.page_processed()
        logger.info("Found {} ads on current page", len(page.ads))

        if self.limit_reached(tracker):
            logger.info("Reached URL limit ({}), stopping listing processing", self._max_urls)
            return Outcome.success(item, response.status_code)

        added = 0
        for ad in page.ads:
            if self.limit_reached(tracker):
                break
            if self._scrape_details:
                if self._frontier.add(WorkItem.detail(ad.url, ad.ad_id)):
                    tracker.ad_discovered(ad.ad_id)
                    added += 1
            elif tracker.ad_discovered(ad.ad_id):
                self._sink.write_record(url_only_record(ad.url))
                added += 1
        if added:
            what = "ad detail requests" if self._scrape_details else "ad URLs"
            logger.info("Enqueued {} {}", added, what)

        self._follow(page, tracker)
        return Outcome.success(item, response.status_code)

    def _follow(self, page: ListingPage, tracker: ProgressTracker) -> None:
        cursor = page.next_cursor
        if cursor is None:
            if page.cursor == END_OF_LIST_CURSOR:
                logger.info("Pagination token is \"0\", treating as end of pagination")
            elif page.has_pagination:
                logger.info("Reached last pagination page")
            return
        if self.limit_reached(tracker):
            logger.info("URL limit ({}) reached, not enqueueing next listing page", self._max_urls)
            return
        url = pagination_url(self._account_owner, self._keyword, cursor)
        if self._frontier.add(WorkItem.listing(url, cursor)):
            logger.info("Valid pagination token {!r} found, enqueued next listing page", cursor)


class DetailHandler:
    """Extracts one ad record from a detail page and emits it."""

    def __init__(
        self,
        sink: StorageBase,
        classifier: Optional[CreativeTypeClassifier] = None,
        placeholders: Optional[PlaceholderPolicy] = None,
    ) -> None:
        self._sink = sink
        self._classifier = classifier or CreativeTypeClassifier()
        self._placeholders = placeholders or PlaceholderPolicy()

    def handle(self, item: WorkItem, response: FetchResponse, tracker: ProgressTracker) -> Outcome:
        error = classify_status(item.kind, response)
        if error is not None:
            return _failure(item, response, error)

        record = extract_ad_record(response.body, item.url, self._classifier, self._placeholders)
        self._sink.write_record(record)
        tracker.detail_collected()
        logger.info(
            "Scraped details for ad {} ({}, {} total)",
            record.ad_id,
            record.creative_type.value,
            tracker.details_collected,
        )
        return Outcome.success(item, response.status_code)
