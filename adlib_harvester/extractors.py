"""Shared-field extraction: fields every creative type carries.

Every function takes an ExtractionContext and fills part of its record. A
missing element never raises; it leaves the field empty and appends a
diagnostic to the record.
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from loguru import logger

from .dom import (
    PlaceholderPolicy,
    closest,
    image_source,
    select_first,
    srcset_candidates,
    text_of,
    text_with_links,
)
from .models import (
    AdRecord,
    Availability,
    CountryImpression,
    CreativeType,
    PromotionType,
    Promoter,
    Targeting,
)
from .normalize import (
    clean_tracking_url,
    country_impressions,
    ensure_absolute_url,
    extract_profile_id,
    parse_impression_range,
    parse_percentage,
)

ADVERTISER_SELECTORS = (
    'a[data-tracking-control-name="ad_library_ad_preview_advertiser"]',
    'a[data-tracking-control-name="ad_library_ad_preview_company"]',
    'a[data-tracking-control-name="ad_library_about_ad_advertiser"]',
    '.ad-detail-right-rail a[target="_blank"]',
)
ADVERTISER_IMAGE_ANCHOR = 'a[data-tracking-control-name="ad_library_ad_preview_advertiser_image"]'
PROMOTER_LINK = 'a[data-tracking-control-name="ad_library_ad_preview_member"]'
PROMOTER_IMAGE_ANCHOR = 'a[data-tracking-control-name="ad_library_ad_preview_member_image"]'

AD_COPY_SELECTORS = (
    ".commentary__text",
    ".feed-shared-update-v2__description .feed-shared-inline-show-more-text",
    ".attributed-text-segment-list__content",
    "div[data-ad-text]",
    ".ad-banner-text-body",
    ".title.main-title",
    ".description.secondary-description",
    "p.commentary__content",
)
COPY_WRAPPERS = (
    ("commentary__container",),
    ("feed-shared-update-v2__description",),
)
SEE_MORE_SELECTORS = (
    "button.see-more-less-text__button",
    'button[data-tracking-control-name*="see_more"]',
    "[class*=show-more-less-text__button]",
)
HEADLINE_SELECTORS = (
    ".sponsored-content-headline h2.text-sm.font-semibold",
    ".sponsored-content-headline h2",
)
CTA_SELECTORS = (
    "button.btn-sm.btn-secondary-emphasis",
    'a.btn-sm.btn-secondary-emphasis[data-tracking-control-name="ad_library_ad_detail_cta"]',
)
MAIN_IMAGE = ".ad-preview img.ad-preview__dynamic-dimensions-image"
FALLBACK_IMAGES = (
    ".ad-preview-image img, .ad-image__image img, .feed-shared-article__image img, "
    ".feed-shared-event__image img, .profile-photo-edit__preview, .ivm-view-attr__img--centered img"
)
CLICK_SELECTORS = (
    'a[data-tracking-control-name="ad_library_ad_preview_headline_content"]',
    'a[data-tracking-control-name="ad_library_ad_preview_content_image"]',
)
COMMENTARY_LINKS = (
    '.commentary__content a[data-tracking-control-name="ad_library_ad_preview_commentary_link"], '
    '.commentary__container a[data-tracking-control-name="ad_library_ad_preview_commentary_link"]'
)
HASHTAG_PREFIX = "https://www.linkedin.com/feed/hashtag/"

TOTAL_IMPRESSION_SELECTORS = (
    '.flex.justify-between p.text-sm[class~="leading-[18px]"].text-color-text.font-semibold:last-child',
    'div[class~="mb-[6px]"].w-full div.flex.justify-between p:last-child',
)
COUNTRY_ROW = ".ad-analytics__country-impressions"
COUNTRY_NAME = 'div[class~="w-[75%]"] p.text-sm.font-semibold.text-color-text'
COUNTRY_SHARE = 'div[class~="w-[25%]"] p.text-right.text-xs.font-semibold'

_RAN_FROM_RE = re.compile(r"Ran from\s+(.+?)\s+to\s+(.+)$", re.IGNORECASE | re.DOTALL)
_LIST_SPLIT_RE = re.compile(r",\s+and\s+|,\s+|\s+and\s+")
_OTHERS_RE = re.compile(r"\s+and\s+\d+\s+others?", re.IGNORECASE)


@dataclass
class ExtractionContext:
    doc: BeautifulSoup
    url: str
    record: AdRecord
    placeholders: PlaceholderPolicy

    def miss(self, what: str) -> None:
        self.record.diagnostics.append(what)
        logger.debug("Detail {}: {}", self.record.ad_id, what)

    def image(self, img: Optional[Tag]) -> Optional[str]:
        return image_source(img, self.url, self.placeholders)

    def absolute(self, href: Optional[str]) -> str:
        return ensure_absolute_url(href, self.url)


# --- identity ---------------------------------------------------------------


def _logo_from_anchor(ctx: ExtractionContext, anchor: Optional[Tag]) -> Optional[str]:
    if anchor is None:
        return None
    return ctx.image(anchor.find("img"))


def extract_advertiser(ctx: ExtractionContext) -> None:
    advertiser = ctx.record.advertiser
    link = None
    for selector in ADVERTISER_SELECTORS:
        for candidate in ctx.doc.select(selector):
            if candidate.get_text(strip=True) or candidate.get("href"):
                link = candidate
                break
        if link is not None:
            break

    if link is not None:
        advertiser.name = link.get_text(strip=True)
        advertiser.profile_url = clean_tracking_url(link.get("href") or "")
        advertiser.profile_id = extract_profile_id(advertiser.profile_url) or ""
        row = closest(link, ("flex", "items-center"))
        if row is not None:
            advertiser.logo_url = _logo_from_anchor(ctx, row.select_one(ADVERTISER_IMAGE_ANCHOR))
    else:
        logger.warning("Detail {}: advertiser link not found, falling back to logo", ctx.record.ad_id)
        ctx.miss("advertiser link not found")

    logo_anchor = ctx.doc.select_one(ADVERTISER_IMAGE_ANCHOR)
    if logo_anchor is not None:
        if not advertiser.logo_url:
            advertiser.logo_url = _logo_from_anchor(ctx, logo_anchor)
        if not advertiser.name:
            img = logo_anchor.find("img")
            alt = (img.get("alt") or "").strip() if img is not None else ""
            if "logo" in alt:
                advertiser.name = alt.replace(" logo", "").strip()
        if not advertiser.profile_url:
            advertiser.profile_url = clean_tracking_url(logo_anchor.get("href") or "")
            advertiser.profile_id = extract_profile_id(advertiser.profile_url) or ""

    if not advertiser.name:
        ctx.miss("advertiser name not found")

    paid_by = text_of(ctx.doc.select_one(".about-ad__paying-entity"))
    if "Paid for by" in paid_by:
        advertiser.paid_by = paid_by.replace("Paid for by", "").strip() or None


def extract_promoter(ctx: ExtractionContext) -> None:
    record = ctx.record
    link = None
    for candidate in ctx.doc.select(PROMOTER_LINK):
        href = clean_tracking_url(candidate.get("href") or "")
        if href and href == record.advertiser.profile_url:
            continue
        link = candidate
        break

    if link is None:
        record.promotion_type = PromotionType.COMPANY
        return

    record.promotion_type = PromotionType.THOUGHT_LEADERSHIP
    profile_url = clean_tracking_url(link.get("href") or "")
    promoter = Promoter(
        name=link.get_text(strip=True),
        profile_url=profile_url,
        profile_id=extract_profile_id(profile_url) or "",
    )

    details = closest(link, ("flex", "flex-col", "self-center"))
    if details is not None:
        lines = details.select("p.text-xs.text-color-text-secondary")
        preferred = [p for p in lines if "Promoted by" not in p.get_text()]
        chosen = (preferred or lines)[:1]
        if chosen:
            promoter.headline = chosen[0].get_text(strip=True) or None

        shared = details.parent
        anchor = shared.select_one(PROMOTER_IMAGE_ANCHOR) if shared is not None else None
        if anchor is not None:
            img = anchor.select_one('img[alt="member logo"]') or anchor.find("img")
            promoter.image_url = ctx.image(img)
    else:
        ctx.miss("promoter details container not found")

    record.promoter = promoter


# --- content ----------------------------------------------------------------


def _has_see_more(el: Tag) -> bool:
    scope = el.parent if el.parent is not None else el
    for selector in SEE_MORE_SELECTORS:
        if scope.select_one(selector) is not None:
            return True
    for button in scope.find_all("button"):
        if "see more" in button.get_text(" ", strip=True).lower():
            return True
    return False


def _copy_scope(el: Tag) -> Tag:
    for classes in COPY_WRAPPERS:
        wrapper = closest(el, classes)
        if wrapper is not None:
            return wrapper
    return el


def _continues(truncated: str, full: str) -> bool:
    """True when ``full`` is a longer text that begins with ``truncated`` minus its ellipsis."""
    head = " ".join(truncated.rstrip(" .\u2026").split())
    return len(full) > len(truncated) and " ".join(full.split()).startswith(head)


def _full_text(el: Tag) -> str:
    clone = copy.copy(_copy_scope(el))
    for button in clone.find_all("button"):
        button.decompose()
    for node in clone.select(", ".join(SEE_MORE_SELECTORS)):
        node.decompose()
    return text_with_links(clone)


def extract_ad_copy(ctx: ExtractionContext) -> None:
    if ctx.record.creative_type == CreativeType.MESSAGE:
        return
    el = select_first(ctx.doc, AD_COPY_SELECTORS)
    if el is None:
        ctx.miss("ad copy not found")
        return
    text = text_with_links(el)
    if _has_see_more(el):
        full = _full_text(el)
        if _continues(text, full):
            logger.debug("Detail {}: recovered truncated copy ({} -> {} chars)", ctx.record.ad_id, len(text), len(full))
            text = full
    ctx.record.ad_copy = text


def extract_headline_and_cta(ctx: ExtractionContext) -> None:
    headline = select_first(ctx.doc, HEADLINE_SELECTORS)
    if headline is not None:
        ctx.record.headline = headline.get_text(strip=True) or None
    cta = select_first(ctx.doc, CTA_SELECTORS)
    if cta is not None:
        ctx.record.cta_text = cta.get_text(strip=True) or None


def _in_identity_anchor(img: Tag) -> bool:
    return img.find_parent("a", attrs={"data-tracking-control-name": [
        "ad_library_ad_preview_advertiser_image",
        "ad_library_ad_preview_member_image",
    ]}) is not None


def extract_images(ctx: ExtractionContext) -> None:
    record = ctx.record
    main = ctx.doc.select_one(MAIN_IMAGE)
    if main is not None:
        url = ctx.image(main)
        if url:
            record.add_image(url)
            record.image_url = record.image_url or url
        else:
            logger.debug("Detail {}: main image absent or placeholder", record.ad_id)

    for img in ctx.doc.select(".ad-preview img"):
        if img is main or _in_identity_anchor(img):
            continue
        record.add_image(ctx.image(img))
        for candidate in srcset_candidates(img):
            if not ctx.placeholders.is_placeholder(img, candidate, ctx.url):
                record.add_image(ctx.absolute(candidate))
                break

    if not record.image_url and record.image_urls:
        record.image_url = record.image_urls[0]


def extract_fallback_image(ctx: ExtractionContext) -> None:
    record = ctx.record
    if record.image_url or record.creative_type in (CreativeType.TEXT, CreativeType.MESSAGE):
        return
    for img in ctx.doc.select(FALLBACK_IMAGES):
        url = ctx.image(img)
        if url:
            record.image_url = url
            record.add_image(url)
            return
    ctx.miss("no non-placeholder image found")


def extract_click_url(ctx: ExtractionContext) -> None:
    for selector in CLICK_SELECTORS:
        link = ctx.doc.select_one(selector)
        if link is not None and link.get("href"):
            ctx.record.click_url = ctx.absolute(link["href"])
            return

    hrefs = [ctx.absolute(a.get("href")) for a in ctx.doc.select(COMMENTARY_LINKS)]
    hrefs = [h for h in hrefs if h and not h.startswith(HASHTAG_PREFIX)]
    external = [h for h in hrefs if "linkedin.com/in/" not in h and "linkedin.com/company/" not in h]
    chosen = (external or hrefs)[:1]
    if chosen:
        ctx.record.click_url = chosen[0]


# --- about-the-ad panel -----------------------------------------------------


def extract_availability(ctx: ExtractionContext) -> None:
    text = text_of(ctx.doc.select_one(".about-ad__availability-duration"))
    match = _RAN_FROM_RE.search(text)
    if match:
        ctx.record.availability = Availability(start=match.group(1).strip(), end=match.group(2).strip())
    else:
        ctx.miss("availability window not found")


def _total_impressions_el(doc: BeautifulSoup) -> Optional[Tag]:
    el = doc.select_one(TOTAL_IMPRESSION_SELECTORS[0])
    if el is not None:
        return el
    for heading in doc.find_all("h2"):
        if "Ad Impressions" in heading.get_text():
            scope = heading.parent.parent if heading.parent is not None and heading.parent.parent is not None else doc
            el = scope.select_one(".flex.justify-between p:last-child")
            if el is not None:
                return el
    return doc.select_one(TOTAL_IMPRESSION_SELECTORS[1])


def extract_impressions(ctx: ExtractionContext) -> None:
    record = ctx.record
    total_el = _total_impressions_el(ctx.doc)
    if total_el is not None:
        record.impressions_raw = total_el.get_text(strip=True)
        record.impressions = parse_impression_range(record.impressions_raw)
    else:
        logger.warning("Detail {}: total impressions not found", record.ad_id)
        ctx.miss("total impressions not found")

    for row in ctx.doc.select(COUNTRY_ROW):
        country = text_of(row.select_one(COUNTRY_NAME))
        share = text_of(row.select_one(COUNTRY_SHARE))
        if not country or not share:
            continue
        pct = parse_percentage(share)
        entry = CountryImpression(country=country, percentage=share, percentage_value=pct)
        if record.impressions is not None:
            scaled = country_impressions(record.impressions, pct)
            entry.impressions_min, entry.impressions_max = scaled.min, scaled.max
        record.impressions_per_country.append(entry)

    if not record.impressions_per_country:
        ctx.miss("country impressions not found")


def _split_list(text: str) -> List[str]:
    return [part.strip() for part in _LIST_SPLIT_RE.split(text) if part.strip()]


def _rail_section(doc: BeautifulSoup, label: str) -> Optional[Tag]:
    for heading in doc.select(".ad-detail-right-rail h3"):
        if label in heading.get_text():
            sibling = heading.find_next_sibling()
            if sibling is not None and sibling.name == "p":
                return sibling
    return None


def _dd_after(doc: BeautifulSoup, label: str) -> Optional[str]:
    for dt in doc.find_all("dt"):
        if label in dt.get_text():
            dd = dt.find_next_sibling("dd")
            text = text_of(dd)
            return text or None
    return None


def _segments(section: Tag, prefix: str) -> Optional[str]:
    for seg in section.select(".ad-targeting__segments"):
        text = text_of(seg)
        if prefix in text:
            return text.replace(prefix, "").strip()
    return None


def extract_targeting(ctx: ExtractionContext) -> None:
    targeting = Targeting()

    language = _rail_section(ctx.doc, "Language")
    if language is not None:
        match = re.search(r"Targeting includes\s+(.+)", text_of(language))
        if match:
            targeting.language = _split_list(match.group(1))

    location = _rail_section(ctx.doc, "Location")
    if location is not None:
        included = _segments(location, "Targeting includes")
        if included:
            if _OTHERS_RE.search(included):
                base = _split_list(_OTHERS_RE.split(included)[0])
                hidden_el = location.select_one(".ad-targeting__other-segments")
                hidden = [h.strip() for h in hidden_el.get_text().split(",")] if hidden_el is not None else []
                targeting.location_included = [loc for loc in base + hidden if loc]
            else:
                targeting.location_included = _split_list(included)
        excluded = _segments(location, "Targeting excludes")
        if excluded:
            targeting.location_excluded = _split_list(excluded)

    for label, attr in (("Audience", "audience"), ("Job", "job"), ("Company", "company")):
        section = _rail_section(ctx.doc, label)
        if section is not None:
            setattr(targeting, attr, text_of(section) or None)

    dd_location = _dd_after(ctx.doc, "Location")
    if dd_location and dd_location not in targeting.location_included:
        targeting.location_included.append(dd_location)
    dd_language = _dd_after(ctx.doc, "Language")
    if dd_language and dd_language not in targeting.language:
        targeting.language.append(dd_language)

    if not (targeting.language or targeting.location_included or targeting.location_excluded
            or targeting.audience or targeting.job or targeting.company):
        ctx.miss("targeting facets not found")
    ctx.record.targeting = targeting
