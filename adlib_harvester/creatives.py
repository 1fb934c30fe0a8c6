"""Type-specific extraction, one strategy per CreativeType.

``STRATEGIES`` is the dispatch table used by the detail extractor. A strategy
fills the type payload of the record in place and reports anything it could
not find through ``ctx.miss``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from bs4 import Tag
from loguru import logger

from .dom import first_attr, select_first, structured_text, text_of
from .extractors import ADVERTISER_IMAGE_ANCHOR, ExtractionContext
from .models import (
    CarouselItem,
    CreativeType,
    EventDetails,
    MessageDetails,
    MessageLink,
    PromotionType,
    Promoter,
)
from .normalize import clean_tracking_url

Strategy = Callable[[ExtractionContext], None]

DETAIL_CTA = 'a[data-tracking-control-name="ad_library_ad_detail_cta"]'
PANEL_CTA = 'a.btn-sm.btn-secondary-emphasis[data-tracking-control-name="ad_library_ad_detail_cta"]'


def _json_attr(el: Optional[Tag], attr: str, ctx: ExtractionContext):
    raw = el.get(attr) if el is not None else None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        ctx.miss(f"unparseable {attr}: {exc}")
        return None


# --- VIDEO --------------------------------------------------------------------


def _best_source(sources) -> Optional[str]:
    if not isinstance(sources, list):
        return None
    candidates = [s for s in sources if isinstance(s, dict) and s.get("src")]
    if not candidates:
        return None
    best = candidates[0]
    for source in candidates[1:]:
        if (source.get("bitrate") or 0) > (best.get("bitrate") or 0):
            best = source
    return best["src"]


def extract_video(ctx: ExtractionContext) -> None:
    container = ctx.doc.select_one(".share-native-video") or ctx.doc
    player = container.select_one(".share-native-video__node")
    video = container.find("video")

    sources = _json_attr(player, "data-sources", ctx)
    if sources is None:
        sources = _json_attr(video, "data-sources", ctx)
    url = _best_source(sources) or first_attr(video, ("src",))
    if not url:
        logger.warning("Detail {}: video source not found", ctx.record.ad_id)
        ctx.miss("video source not found")
        return
    ctx.record.video_url = ctx.absolute(url)

    poster = first_attr(player, ("data-poster-url",)) or first_attr(video, ("poster", "data-poster-url"))
    if poster:
        ctx.record.video_thumbnail_url = ctx.absolute(poster)


# --- CAROUSEL -----------------------------------------------------------------

SLIDES = '.slide-list__list > div[class*="pr-1.5"]'
LEGACY_SLIDES = ".ad-carousel-item"
SLIDE_TITLE_LINK = 'a[data-tracking-control-name="ad_library_ad_preview_carousel_item_title"]'
SLIDE_IMAGE_LINK = 'a[data-tracking-control-name="ad_library_ad_preview_carousel_item_image"]'


def _slide(ctx: ExtractionContext, position: int, title: Optional[Tag], img: Optional[Tag],
           link: Optional[Tag]) -> CarouselItem:
    item = CarouselItem(position=position)
    if title is not None:
        item.title = title.get_text(strip=True) or None
    if img is not None:
        item.image_url = ctx.image(img)
        item.image_alt = (img.get("alt") or "").strip()
    if link is not None and link.get("href"):
        item.link_url = ctx.absolute(link["href"])
    return item


def carousel_items(ctx: ExtractionContext) -> List[CarouselItem]:
    items = []
    for position, slide in enumerate(ctx.doc.select(SLIDES), start=1):
        items.append(_slide(
            ctx,
            position,
            slide.select_one(f"{SLIDE_TITLE_LINK} span.text-xs.font-semibold.text-color-text"),
            slide.select_one("img.ad-preview__dynamic-dimensions-image"),
            slide.select_one(SLIDE_IMAGE_LINK) or slide.select_one(SLIDE_TITLE_LINK),
        ))
    if items:
        return items

    logger.debug("Detail {}: no slides under primary selector, trying legacy", ctx.record.ad_id)
    for position, slide in enumerate(ctx.doc.select(LEGACY_SLIDES), start=1):
        items.append(_slide(
            ctx,
            position,
            slide.select_one(".carousel-card-title, h3"),
            slide.find("img"),
            slide.find("a"),
        ))
    return items


def extract_carousel(ctx: ExtractionContext) -> None:
    ctx.record.carousel_items = carousel_items(ctx)
    if not ctx.record.carousel_items:
        logger.warning("Detail {}: carousel without slides", ctx.record.ad_id)
        ctx.miss("carousel slides not found")
    for item in ctx.record.carousel_items:
        ctx.record.add_image(item.image_url)


# --- DOCUMENT -----------------------------------------------------------------


def extract_document(ctx: ExtractionContext) -> None:
    frame = ctx.doc.select_one('iframe[data-id="sponsored-native-document-preview"]')
    config = _json_attr(frame, "data-native-document-config", ctx)
    doc = config.get("doc") if isinstance(config, dict) else None
    if not isinstance(doc, dict):
        ctx.miss("document config not found")
        return
    ctx.record.document_url = doc.get("manifestUrl") or None
    ctx.record.document_title = doc.get("title") or None
    if not ctx.record.document_url:
        ctx.miss("document manifest url not found")


# --- EVENT --------------------------------------------------------------------

EVENT_CONTENT = 'a[data-tracking-control-name="ad_library_ad_preview_event_content"]'


def extract_event(ctx: ExtractionContext) -> None:
    record = ctx.record
    scope = ctx.doc.select_one('.ad-preview[data-creative-type="SPONSORED_UPDATE_EVENT"]') or ctx.doc
    content = scope.select_one(EVENT_CONTENT)
    cta = scope.select_one(DETAIL_CTA)

    if content is not None:
        record.event = EventDetails(
            name=text_of(content.select_one("h2.text-color-text")),
            time=text_of(content.select_one("time.text-color-container-caution")),
            location=text_of(content.select_one('p.text-color-text.text-xs[class~="leading-[16px]"]')),
            url=clean_tracking_url(content.get("href") or ""),
        )
        if not record.cta_text and cta is not None:
            record.cta_text = cta.get_text(strip=True) or None
            record.event_url = clean_tracking_url(cta.get("href") or "") or None
    elif cta is not None:
        record.cta_text = cta.get_text(strip=True) or None
        record.event_url = clean_tracking_url(cta.get("href") or "") or None
        record.event = EventDetails(url=record.event_url or "")
    else:
        logger.warning("Detail {}: event content and call-to-action both missing", record.ad_id)
        ctx.miss("event details not found")
        return

    # The event's own page wins over the call-to-action destination.
    if record.event is not None and record.event.url:
        record.event_url = record.event.url


# --- MESSAGE ------------------------------------------------------------------

MESSAGE_ROOT = ".sponsored-message-preview"
SENDER_ROW = '.flex[class~="py-[18px]"][class~="px-1.5"].gap-x-1'
SENDER_NAME = 'p.font-semibold[class~="leading-[20px]"].text-md.text-color-text'
SENDER_IMAGE = '.relative.shrink-0.h-6.w-6 img[class~="rounded-[50%]"]'
MESSAGE_ADVERTISER_ROW = '.flex.items-center[class~="px-1.5"].gap-1'
MESSAGE_BODY = ".sponsored-message__content"
MESSAGE_SEGMENTS = ".spinmail-quill-editor__spin-break"
MESSAGE_BUTTON = "button.btn-sm.btn-secondary-emphasis.tooltip__trigger"


def _message_body(root: Tag) -> str:
    body = root.select_one(MESSAGE_BODY)
    if body is not None and body.find(True) is not None:
        text = structured_text(body)
        if text:
            return text
    parts = [seg.get_text().strip() for seg in root.select(MESSAGE_SEGMENTS)]
    return "\n\n".join(part for part in parts if part)


def _message_links(ctx: ExtractionContext, root: Tag, message: MessageDetails) -> None:
    body = root.select_one(MESSAGE_BODY)
    has_rich_body = body is not None and body.find(True) is not None
    scope = body if has_rich_body or not root.select(MESSAGE_SEGMENTS) else root
    if scope is None:
        return
    seen = set()
    for anchor in scope.find_all("a"):
        text = anchor.get_text(strip=True)
        href = anchor.get("href")
        if not text or not href:
            continue
        link = MessageLink(text=text, url=ctx.absolute(href))
        if (link.text, link.url) in seen:
            continue
        seen.add((link.text, link.url))
        message.links.append(link)
        rel = anchor.get("rel") or []
        if not message.cta_text and "noopener" in rel:
            message.cta_text, message.cta_url = link.text, link.url

    if not message.cta_text and message.links:
        message.cta_text, message.cta_url = message.links[0].text, message.links[0].url


def extract_message(ctx: ExtractionContext) -> None:
    record = ctx.record
    root = ctx.doc.select_one(MESSAGE_ROOT)
    message = MessageDetails()
    record.message = message
    if root is None:
        root = ctx.doc
        ctx.miss("message preview container not found")

    if not record.advertiser.name:
        row = root.select_one(MESSAGE_ADVERTISER_ROW)
        if row is not None:
            name = text_of(row.select_one(".block.text-md.text-color-text.font-bold"))
            if name:
                record.advertiser.name = name
            logo = ctx.image(row.select_one('img[alt="advertiser logo"]'))
            if logo:
                record.advertiser.logo_url = logo

    sender = root.select_one(SENDER_ROW)
    if sender is not None:
        name = text_of(sender.select_one(SENDER_NAME))
        if name:
            message.sender_name = name
            record.promoter = Promoter(name=name, image_url=ctx.image(sender.select_one(SENDER_IMAGE)))
            # Delivered through a person's inbox but paid for by the company.
            record.promotion_type = PromotionType.COMPANY
    else:
        ctx.miss("message sender not found")

    message.body = _message_body(root)
    if message.body:
        record.ad_copy = message.body
    else:
        ctx.miss("message body not found")

    _message_links(ctx, root, message)

    button = root.select_one(MESSAGE_BUTTON)
    if button is not None:
        message.button_cta_text = button.get_text(strip=True) or None


# --- SPOTLIGHT / FOLLOW_COMPANY / JOB -----------------------------------------


@dataclass(frozen=True)
class PanelSpec:
    """Where a bordered content panel lives and what it holds.

    The panel is found under the preview carrying ``marker`` first; failing
    that, the first ``candidates`` element that satisfies the structural
    fingerprint (heading, call-to-action, and optionally a description).
    """

    marker: str
    candidates: str
    inner: Optional[str]
    headings: Sequence[str]
    descriptions: Sequence[str] = ()
    require_description: bool = True

    def _fits(self, panel: Tag) -> bool:
        if select_first(panel, self.headings) is None or panel.select_one(DETAIL_CTA) is None:
            return False
        if self.require_description:
            return select_first(panel, self.descriptions) is not None
        return True

    def locate(self, doc: Tag) -> Optional[Tag]:
        preview = doc.select_one(f'.ad-preview[data-creative-type="{self.marker}"]')
        if preview is not None:
            found = preview.select_one(self.inner or self.candidates)
            if found is not None:
                return found
        for candidate in doc.select(self.candidates):
            panel = candidate.select_one(self.inner) if self.inner else candidate
            if panel is not None and self._fits(panel):
                return panel
        return None


LOW_EMPHASIS = (
    'p.text-xs[class~="leading-[16px]"].text-color-text-low-emphasis',
    "p.text-color-text-low-emphasis",
    "p.text-xs.text-color-text-low-emphasis",
)
PANEL_HEADINGS = (
    'h2.text-sm.text-color-text[class~="leading-[18px]"].font-semibold',
    "h2.font-semibold",
    "h2.text-sm.font-semibold",
)
JOB_INNER = '.flex.flex-col.px-3[class~="py-1.5"][class~="m-1.5"][class~="gap-y-1.5"].text-center.items-center'
JOB_HEADINGS = (
    'h2.text-sm[class~="leading-[18px]"].text-color-text[class~="max-w-[276px]"].break-words.w-full',
    'h2.text-sm[class~="leading-[18px]"].text-color-text',
    "h2.text-sm.text-color-text",
)

PANELS: Dict[CreativeType, PanelSpec] = {
    CreativeType.SPOTLIGHT: PanelSpec("SPOTLIGHT_V2", ".container-lined", None, PANEL_HEADINGS, LOW_EMPHASIS),
    CreativeType.FOLLOW_COMPANY: PanelSpec("FOLLOW_COMPANY_V2", ".container-lined", None, PANEL_HEADINGS, LOW_EMPHASIS),
    CreativeType.JOB: PanelSpec("JOBS_V2", ".container-raised", JOB_INNER, JOB_HEADINGS, require_description=False),
}


def extract_panel(ctx: ExtractionContext) -> None:
    panel_spec = PANELS[ctx.record.creative_type]
    panel = panel_spec.locate(ctx.doc)
    if panel is None:
        logger.warning("Detail {}: {} panel not found", ctx.record.ad_id, ctx.record.creative_type.value)
        ctx.miss(f"{ctx.record.creative_type.value.lower()} panel not found")
        return

    record = ctx.record
    description = select_first(panel, panel_spec.descriptions) if panel_spec.descriptions else None
    if description is not None:
        record.ad_copy = description.get_text(strip=True) or None

    heading = select_first(panel, panel_spec.headings)
    if heading is not None:
        record.headline = heading.get_text(strip=True) or None
    else:
        ctx.miss("panel headline not found")

    cta = panel.select_one(PANEL_CTA)
    if cta is not None:
        record.cta_text = cta.get_text(strip=True) or None
        if cta.get("href"):
            record.click_url = ctx.absolute(cta["href"])
    else:
        ctx.miss("panel call-to-action not found")

    if not record.advertiser.logo_url:
        anchor = panel.select_one(ADVERTISER_IMAGE_ANCHOR)
        if anchor is not None:
            record.advertiser.logo_url = ctx.image(anchor.find("img"))


# --- TEXT ---------------------------------------------------------------------

TEXT_LINK = 'a[data-tracking-control-name="ad_library_ad_preview_text_ad_content_link"]'
TEXT_BODY = '.font-semibold.text-sm.break-words[class~="leading-[18px]"]'
TEXT_LOGO = 'a[data-tracking-control-name="ad_library_ad_preview_text_ad_content_logo"] img'


def extract_text_ad(ctx: ExtractionContext) -> None:
    record = ctx.record
    container = ctx.doc.select_one(".container-lined")
    if container is None:
        logger.warning("Detail {}: text ad container not found", record.ad_id)
        ctx.miss("text ad container not found")
        return

    link = container.select_one(TEXT_LINK)
    if link is not None:
        record.headline = link.get_text(strip=True) or None
        record.click_url = ctx.absolute(link.get("href") or "") or None

    body = container.select_one(TEXT_BODY)
    if body is not None:
        full = body.get_text().strip()
        head, sep, rest = full.partition(" - ")
        if sep:
            record.ad_copy = rest.strip()
        elif not record.headline:
            record.headline = full

    logo = ctx.image(container.select_one(TEXT_LOGO))
    if logo:
        record.image_url = logo
        record.add_image(logo)


def _nothing(ctx: ExtractionContext) -> None:
    """SINGLE_IMAGE is covered by the shared image pass; UNKNOWN has no payload."""


STRATEGIES: Dict[CreativeType, Strategy] = {
    CreativeType.VIDEO: extract_video,
    CreativeType.CAROUSEL: extract_carousel,
    CreativeType.DOCUMENT: extract_document,
    CreativeType.EVENT: extract_event,
    CreativeType.MESSAGE: extract_message,
    CreativeType.SPOTLIGHT: extract_panel,
    CreativeType.FOLLOW_COMPANY: extract_panel,
    CreativeType.JOB: extract_panel,
    CreativeType.TEXT: extract_text_ad,
    CreativeType.SINGLE_IMAGE: _nothing,
    CreativeType.UNKNOWN: _nothing,
}
