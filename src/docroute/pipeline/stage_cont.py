"""Continuation Stage - Passes that need the whole merged document.

Runs after local and remote pages are merged, in this order:
- remove_headers_footers: drop running headers/footers and page numbers
- detect_page_lists: list detection on every page (remote pages included)
- link_neighbor_lists: link a list that continues on the next page
- link_neighbor_tables: see stage_table
- assign_heading_levels: global levels for headings that have none
- detect_structural_levels: section depth for every object
"""

import logging
import re
from typing import Optional

from docroute.models import ContentObject, Heading, ListBlock, Table
from docroute.pipeline.context import ProcessingContext
from docroute.pipeline.stage_layout import detect_lists
from docroute.pipeline.stage_table import link_neighbor_tables

logger = logging.getLogger(__name__)

# Share of the page height scanned for running headers/footers
FURNITURE_BAND_RATIO = 0.08

# A text must repeat on at least this share of pages (and twice) to be furniture
FURNITURE_REPEAT_RATIO = 0.5

MAX_HEADING_LEVEL = 6

PAGE_NUMBER_PATTERN = re.compile(
    r"^\s*(page\s*)?[-–]?\s*\d{1,4}\s*[-–]?(\s*(/|of)\s*\d{1,4})?\s*$",
    re.IGNORECASE,
)

_ROMAN_VALUES = {"i": 1, "v": 5, "x": 10, "l": 50, "c": 100}


def _text_of(obj: ContentObject) -> Optional[str]:
    text = getattr(obj, "text", None)
    return text if isinstance(text, str) else None


def normalize_furniture_text(text: str) -> str:
    """Lowercase, digits masked, whitespace collapsed: 'Page 3' == 'Page 12'."""
    return re.sub(r"\s+", " ", re.sub(r"\d+", "#", text.strip().lower()))


def _in_band(obj: ContentObject, page_height: float) -> bool:
    band = page_height * FURNITURE_BAND_RATIO
    return obj.bbox.bottom >= page_height - band or obj.bbox.top <= band


def remove_headers_footers(
    pages: list[list[ContentObject]],
    context: ProcessingContext,
) -> list[list[ContentObject]]:
    """Drop repeated header/footer text and bare page numbers near page edges."""
    candidates: dict[str, set[int]] = {}
    for index, contents in enumerate(pages):
        height = context.page_height(index)
        for obj in contents:
            text = _text_of(obj)
            if text and text.strip() and _in_band(obj, height):
                candidates.setdefault(normalize_furniture_text(text), set()).add(index)

    non_empty = sum(1 for contents in pages if contents)
    min_repeats = max(2, int(non_empty * FURNITURE_REPEAT_RATIO + 0.5))
    repeated = {text for text, found in candidates.items() if len(found) >= min_repeats}

    removed = 0
    for index, contents in enumerate(pages):
        height = context.page_height(index)
        kept = []
        for obj in contents:
            text = _text_of(obj)
            if text and not isinstance(obj, (Table, ListBlock)) and _in_band(obj, height):
                if PAGE_NUMBER_PATTERN.match(text) or normalize_furniture_text(text) in repeated:
                    removed += 1
                    continue
            kept.append(obj)
        pages[index] = kept

    if removed:
        logger.debug(f"Removed {removed} header/footer object(s)")
    return pages


def detect_page_lists(
    pages: list[list[ContentObject]],
    context: ProcessingContext,
) -> list[list[ContentObject]]:
    """Run list detection on every page and give new lists ids."""
    for index, contents in enumerate(pages):
        pages[index] = context.assign_ids(detect_lists(contents))
    return pages


def _label_number(label: str, style: str) -> Optional[int]:
    core = label.strip("().").lower()
    if style == "arabic" and core.isdigit():
        return int(core)
    if style == "alpha" and len(core) == 1 and core.isalpha():
        return ord(core) - ord("a") + 1
    if style == "roman" and core and all(ch in _ROMAN_VALUES for ch in core):
        total = 0
        for i, ch in enumerate(core):
            value = _ROMAN_VALUES[ch]
            if i + 1 < len(core) and _ROMAN_VALUES[core[i + 1]] > value:
                total -= value
            else:
                total += value
        return total
    return None


def _lists_continue(before: ListBlock, after: ListBlock) -> bool:
    if before.numbering_style != after.numbering_style:
        return False
    if before.numbering_style == "bullet" or not before.items or not after.items:
        return True
    last = _label_number(before.items[-1].label, before.numbering_style)
    first = _label_number(after.items[0].label, after.numbering_style)
    if last is None or first is None:
        return True
    return first == last + 1


def link_neighbor_lists(pages: list[list[ContentObject]]) -> list[list[ContentObject]]:
    """Link a page-final list to the page-initial list that continues it."""
    for index in range(len(pages) - 1):
        current, following = pages[index], pages[index + 1]
        if not current or not following:
            continue
        before, after = current[-1], following[0]
        if not isinstance(before, ListBlock) or not isinstance(after, ListBlock):
            continue
        if before.content_id is None or after.content_id is None:
            continue
        if _lists_continue(before, after):
            before.next_list_id = after.content_id
            after.previous_list_id = before.content_id
    return pages


def assign_heading_levels(pages: list[list[ContentObject]]) -> list[list[ContentObject]]:
    """Give headings without a level one from their font size rank.

    The largest heading size in the document becomes level 1. Levels set
    by a backend are kept.
    """
    unassigned = [
        obj
        for contents in pages
        for obj in contents
        if isinstance(obj, Heading) and obj.heading_level is None
    ]
    sizes = sorted({round(h.font_size * 2) / 2 for h in unassigned}, reverse=True)
    rank = {size: i + 1 for i, size in enumerate(sizes)}
    for heading in unassigned:
        heading.heading_level = min(rank[round(heading.font_size * 2) / 2], MAX_HEADING_LEVEL)
    return pages


def detect_structural_levels(pages: list[list[ContentObject]]) -> list[list[ContentObject]]:
    """Set ``level`` to the section depth in reading order.

    A heading's level is its heading level; any other object takes the
    level of the closest heading before it (0 before the first heading).
    """
    depth = 0
    for contents in pages:
        for obj in contents:
            if isinstance(obj, Heading) and obj.heading_level is not None:
                depth = obj.heading_level
                obj.level = depth
            else:
                obj.level = depth
    return pages


def run_cross_page_passes(
    pages: list[list[ContentObject]],
    context: ProcessingContext,
) -> list[list[ContentObject]]:
    """Apply every cross-page pass to the merged document, in order."""
    pages = remove_headers_footers(pages, context)
    pages = detect_page_lists(pages, context)
    pages = link_neighbor_lists(pages)
    pages = link_neighbor_tables(pages)
    pages = assign_heading_levels(pages)
    return detect_structural_levels(pages)
