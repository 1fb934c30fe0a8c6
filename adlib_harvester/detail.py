from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from loguru import logger

from . import extractors
from .classifier import CreativeTypeClassifier
from .creatives import STRATEGIES
from .dom import PlaceholderPolicy, parse_html
from .extractors import ExtractionContext
from .models import AdRecord
from .normalize import content_fingerprint, extract_ad_id

Step = Tuple[str, Callable[[ExtractionContext], None]]

SHARED_STEPS: Tuple[Step, ...] = (
    ("advertiser", extractors.extract_advertiser),
    ("promoter", extractors.extract_promoter),
    ("ad copy", extractors.extract_ad_copy),
    ("headline", extractors.extract_headline_and_cta),
    ("images", extractors.extract_images),
    ("click url", extractors.extract_click_url),
)

TRAILING_STEPS: Tuple[Step, ...] = (
    ("fallback image", extractors.extract_fallback_image),
    ("availability", extractors.extract_availability),
    ("impressions", extractors.extract_impressions),
    ("targeting", extractors.extract_targeting),
)

_default_classifier = CreativeTypeClassifier()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def url_only_record(url: str, now: Optional[Callable[[], str]] = None) -> AdRecord:
    """Record for an ad whose detail page is not fetched."""
    return AdRecord(ad_id=extract_ad_id(url), detail_url=url, captured_at=(now or _utc_now)())


def extract_ad_record(
    html: str,
    url: str,
    classifier: Optional[CreativeTypeClassifier] = None,
    placeholders: Optional[PlaceholderPolicy] = None,
    now: Optional[Callable[[], str]] = None,
) -> AdRecord:
    """Classify a detail document and extract every field it carries.

    Never raises for document content: each step runs on its own, a step
    that blows up is noted in ``error_note`` and the remaining steps still
    run, so a partially populated record always comes back.
    """
    record = AdRecord(
        ad_id=extract_ad_id(url),
        detail_url=url,
        captured_at=(now or _utc_now)(),
        fingerprint=content_fingerprint(html or ""),
    )
    errors: List[str] = []
    logger.debug("Detail {}: starting extraction", record.ad_id)

    doc = parse_html(html)
    if doc.select_one(".ad-preview-content, .base-ad-preview-card") is None:
        logger.warning("Detail {}: main preview container missing", record.ad_id)
        record.diagnostics.append("main preview container missing")

    try:
        classification = (classifier or _default_classifier).classify(doc)
        record.creative_type = classification.creative_type
        if classification.note:
            record.diagnostics.append(classification.note)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Detail {}: classification failed", record.ad_id)
        errors.append(f"classify: {exc}")

    ctx = ExtractionContext(doc=doc, url=url, record=record, placeholders=placeholders or PlaceholderPolicy())
    steps = SHARED_STEPS + (("type payload", STRATEGIES[record.creative_type]),) + TRAILING_STEPS
    for name, step in steps:
        try:
            step(ctx)
        except Exception as exc:  # noqa: BLE001
            logger.error("Detail {}: {} step failed: {}", record.ad_id, name, exc)
            errors.append(f"{name}: {type(exc).__name__}: {exc}")

    if errors:
        record.error_note = "; ".join(errors)

    logger.debug(
        "Detail {}: extracted type={} diagnostics={}",
        record.ad_id,
        record.creative_type.value,
        len(record.diagnostics),
    )
    return record
