"""Creative-type classification.

Three ordered evidence tables are consulted in turn and the first hit wins:

1. the vendor marker on the top-level preview container (``data-creative-type``),
2. the label in the "about this ad" side panel,
3. structural evidence, most specific media first, plain text last.

Each structural predicate is a plain function over the parsed document so it
can be tested on its own.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag
from loguru import logger

from .dom import parse_html
from .models import CreativeType

Predicate = Callable[[Tag], bool]

PREVIEW_SELECTOR = ".ad-preview[data-creative-type]"

MARKER_TYPES: Dict[str, CreativeType] = {
    "SPONSORED_VIDEO": CreativeType.VIDEO,
    "SPONSORED_UPDATE_CAROUSEL": CreativeType.CAROUSEL,
    "SPONSORED_NATIVE_DOCUMENT": CreativeType.DOCUMENT,
    "SPONSORED_UPDATE_NATIVE_DOCUMENT": CreativeType.DOCUMENT,
    "SPONSORED_EVENT": CreativeType.EVENT,
    "SPONSORED_UPDATE_EVENT": CreativeType.EVENT,
    "SPONSORED_INMAILS": CreativeType.MESSAGE,
    "SPONSORED_STATUS_UPDATE": CreativeType.SINGLE_IMAGE,
    "TEXT_AD": CreativeType.TEXT,
    "FOLLOW_COMPANY_V2": CreativeType.FOLLOW_COMPANY,
    "SPOTLIGHT_V2": CreativeType.SPOTLIGHT,
    "JOBS_V2": CreativeType.JOB,
}

ABOUT_LABEL_SELECTOR = "p.text-sm.mb-1.text-color-text"

LABEL_TYPES: Tuple[Tuple[CreativeType, str], ...] = (
    (CreativeType.VIDEO, "Video Ad"),
    (CreativeType.CAROUSEL, "Carousel Ad"),
    (CreativeType.DOCUMENT, "Document Ad"),
    (CreativeType.EVENT, "Event Ad"),
    (CreativeType.MESSAGE, "Message Ad"),
    (CreativeType.SINGLE_IMAGE, "Single Image Ad"),
    (CreativeType.TEXT, "Text Ad"),
    (CreativeType.FOLLOW_COMPANY, "Follow Company Ad"),
    (CreativeType.SPOTLIGHT, "Spotlight Ad"),
    (CreativeType.JOB, "Job Ad"),
)


def _any(*selectors: str) -> Predicate:
    joined = ", ".join(selectors)

    def predicate(doc: Tag) -> bool:
        return doc.select_one(joined) is not None

    predicate.__name__ = f"any({joined})"
    return predicate


def has_video(doc: Tag) -> bool:
    return _any("video", ".share-native-video")(doc)


def has_carousel(doc: Tag) -> bool:
    return _any(".ad-carousel-item", ".slide-list__list > div", ".sponsored-update-carousel-preview")(doc)


def has_document(doc: Tag) -> bool:
    return _any('iframe[data-id="sponsored-native-document-preview"]')(doc)


def has_event(doc: Tag) -> bool:
    return _any(".ad-preview-event-info", 'a[data-tracking-control-name="ad_library_ad_preview_event_content"]')(doc)


def has_message(doc: Tag) -> bool:
    return _any(".sponsored-message-preview", ".sponsored-message__content")(doc)


def has_single_image(doc: Tag) -> bool:
    if _any(".ad-preview-image img", ".ad-image__image img")(doc):
        return True
    return _any(".ad-preview__dynamic-dimensions-image")(doc) and _any(".sponsored-content-headline")(doc)


def has_text_ad(doc: Tag) -> bool:
    return _any(".text-ad-preview", ".ad-preview-text")(doc)


STRUCTURAL_RULES: Tuple[Tuple[CreativeType, Predicate], ...] = (
    (CreativeType.VIDEO, has_video),
    (CreativeType.CAROUSEL, has_carousel),
    (CreativeType.DOCUMENT, has_document),
    (CreativeType.EVENT, has_event),
    (CreativeType.MESSAGE, has_message),
    (CreativeType.SINGLE_IMAGE, has_single_image),
    (CreativeType.TEXT, has_text_ad),
)


@dataclass(frozen=True)
class Classification:
    creative_type: CreativeType
    source: str
    evidence: str = ""
    note: Optional[str] = None


def marker_value(doc: Tag) -> Optional[str]:
    preview = doc.select_one(PREVIEW_SELECTOR)
    if preview is None:
        return None
    value = (preview.get("data-creative-type") or "").strip()
    return value or None


def classify_by_marker(doc: Tag) -> Optional[Classification]:
    marker = marker_value(doc)
    if marker and marker in MARKER_TYPES:
        return Classification(MARKER_TYPES[marker], "marker", marker)
    return None


def classify_by_label(doc: Tag) -> Optional[Classification]:
    labels = [" ".join(p.get_text(" ", strip=True).split()) for p in doc.select(ABOUT_LABEL_SELECTOR)]
    if not labels:
        return None
    for creative_type, label in LABEL_TYPES:
        if any(text == label for text in labels):
            return Classification(creative_type, "label", label)
    for creative_type, label in LABEL_TYPES:
        if any(label in text for text in labels):
            return Classification(creative_type, "label", label)
    return None


def classify_by_structure(
    doc: Tag,
    rules: Sequence[Tuple[CreativeType, Predicate]] = STRUCTURAL_RULES,
) -> Optional[Classification]:
    for creative_type, predicate in rules:
        if predicate(doc):
            return Classification(creative_type, "structure", predicate.__name__)
    return None


class CreativeTypeClassifier:
    """Deterministic first-match classifier; never returns an unset type."""

    def __init__(self, rules: Sequence[Tuple[CreativeType, Predicate]] = STRUCTURAL_RULES) -> None:
        self._rules = tuple(rules)

    def classify(self, document: Union[str, BeautifulSoup, Tag]) -> Classification:
        doc = parse_html(document) if isinstance(document, str) else document

        found = classify_by_marker(doc) or classify_by_label(doc) or classify_by_structure(doc, self._rules)
        if found is not None:
            return found

        marker = marker_value(doc)
        note = f"no creative-type evidence (marker={marker!r})"
        logger.warning("Classifier: {}", note)
        return Classification(CreativeType.UNKNOWN, "none", "", note)
