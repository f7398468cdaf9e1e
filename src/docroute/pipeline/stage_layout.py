"""Layout Detection Stage - Build semantic blocks from filtered page content.

Each pass takes a page's content list and returns a new list:
- merge_text_lines: text chunks -> text lines
- detect_paragraphs: text lines -> paragraphs
- detect_lists: labelled paragraphs -> list blocks
- detect_headings: short, prominent paragraphs -> headings
- detect_figures: image placements -> figures
- detect_captions: "Figure 1 ..." paragraphs next to a figure/table -> captions

Passes are pure apart from the ids and figure numbers they draw from the
processing context, and they leave objects they do not handle untouched.
"""

import re
import statistics
from typing import Optional

from docroute.hybrid.geometry import sort_by_reading_order
from docroute.models import (
    Caption,
    ContentObject,
    Figure,
    Heading,
    ImageChunk,
    ListBlock,
    ListItem,
    Paragraph,
    Table,
    TextChunk,
    TextLine,
)
from docroute.pipeline.context import ProcessingContext

# Two chunks share a line when their vertical overlap is at least this share
# of the smaller height
LINE_OVERLAP_RATIO = 0.5

# Largest gap between lines of one paragraph, as a multiple of line height
PARAGRAPH_GAP_FACTOR = 1.2

# Largest relative font size difference inside one paragraph
FONT_SIZE_TOLERANCE = 0.2

# Heading detection
HEADING_SIZE_RATIO = 1.15
HEADING_MAX_LINES = 2
HEADING_MAX_CHARS = 120

# Caption detection
CAPTION_MAX_DISTANCE = 24.0
CAPTION_PATTERN = re.compile(r"^(figure|fig\.|table|chart|image|exhibit)\s*[\dIVXivx]+", re.IGNORECASE)

# Images below this area (points squared) never become figures
MIN_FIGURE_AREA = 400.0

# List labels, checked in order
LIST_LABEL_PATTERNS = [
    ("bullet", re.compile(r"^([•‣▪●◦⁃∙\-\*–])\s+")),
    ("arabic", re.compile(r"^(\(?\d{1,3}[.)])\s+")),
    ("roman", re.compile(r"^(\(?(?:i{1,3}|iv|v|vi{1,3}|ix|x)[.)])\s+", re.IGNORECASE)),
    ("alpha", re.compile(r"^(\(?[a-zA-Z][.)])\s+")),
]


def match_list_label(text: str) -> Optional[tuple[str, str]]:
    """Return (numbering_style, label) if text starts with a list label."""
    stripped = text.lstrip()
    for style, pattern in LIST_LABEL_PATTERNS:
        match = pattern.match(stripped)
        if match:
            return style, match.group(1)
    return None


def _same_line(a: TextChunk, b: TextChunk) -> bool:
    min_height = min(a.bbox.height, b.bbox.height)
    if min_height <= 0:
        return abs(a.bbox.center_y - b.bbox.center_y) < 1.0
    return a.bbox.vertical_overlap(b.bbox) >= LINE_OVERLAP_RATIO * min_height


def merge_text_lines(contents: list[ContentObject]) -> list[ContentObject]:
    """Group text chunks that share a baseline into text lines."""
    chunks = [c for c in contents if isinstance(c, TextChunk)]
    others = [c for c in contents if not isinstance(c, TextChunk)]

    lines: list[list[TextChunk]] = []
    for chunk in sorted(chunks, key=lambda c: (-c.bbox.top, c.bbox.left)):
        for line in lines:
            if _same_line(line[-1], chunk):
                line.append(chunk)
                break
        else:
            lines.append([chunk])

    merged: list[ContentObject] = list(others)
    for line_chunks in lines:
        line_chunks.sort(key=lambda c: c.bbox.left)
        bbox = line_chunks[0].bbox
        for chunk in line_chunks[1:]:
            bbox = bbox.union(chunk.bbox)
        merged.append(TextLine(bbox=bbox, chunks=line_chunks))
    return sort_by_reading_order(merged)


def _continues_paragraph(previous: TextLine, line: TextLine) -> bool:
    line_height = max(previous.bbox.height, line.bbox.height, 1.0)
    gap = previous.bbox.bottom - line.bbox.top
    if gap > PARAGRAPH_GAP_FACTOR * line_height or gap < -line_height:
        return False
    if previous.bbox.horizontal_overlap(line.bbox) <= 0:
        return False
    sizes = (previous.font_size, line.font_size)
    if max(sizes) > 0 and (max(sizes) - min(sizes)) / max(sizes) > FONT_SIZE_TOLERANCE:
        return False
    return match_list_label(line.text) is None


def detect_paragraphs(contents: list[ContentObject]) -> list[ContentObject]:
    """Group consecutive text lines into paragraphs."""
    result: list[ContentObject] = []
    current: list[TextLine] = []

    def flush():
        if current:
            bbox = current[0].bbox
            for line in current[1:]:
                bbox = bbox.union(line.bbox)
            result.append(Paragraph(bbox=bbox, lines=list(current)))
            current.clear()

    for obj in contents:
        if isinstance(obj, TextLine):
            if current and not _continues_paragraph(current[-1], obj):
                flush()
            current.append(obj)
        else:
            flush()
            result.append(obj)
    flush()
    return result


def _split_items(paragraph: Paragraph, style: str) -> list[ListItem]:
    items: list[ListItem] = []
    for line in paragraph.lines:
        label = match_list_label(line.text)
        if label is not None and label[0] == style or not items:
            items.append(
                ListItem(
                    bbox=line.bbox,
                    source=paragraph.source,
                    label=label[1] if label else "",
                    lines=[line],
                )
            )
        else:
            items[-1].lines.append(line)
            items[-1].bbox = items[-1].bbox.union(line.bbox)
    return items


def detect_lists(contents: list[ContentObject]) -> list[ContentObject]:
    """Turn runs of labelled paragraphs into list blocks.

    A run ends at the first object that is not a paragraph starting with a
    label of the same numbering style.
    """
    result: list[ContentObject] = []
    current: Optional[ListBlock] = None

    for obj in contents:
        label = None
        if type(obj) is Paragraph:
            label = match_list_label(obj.text)

        if label is None:
            current = None
            result.append(obj)
            continue

        style = label[0]
        items = _split_items(obj, style)
        if current is not None and current.numbering_style == style:
            current.items.extend(items)
            current.bbox = current.bbox.union(obj.bbox)
        else:
            current = ListBlock(bbox=obj.bbox, source=obj.source, items=items, numbering_style=style)
            result.append(current)
    return result


def body_font_size(contents: list[ContentObject]) -> float:
    """Median font size of paragraph text, weighted by text length."""
    sizes: list[float] = []
    for obj in contents:
        if type(obj) is Paragraph:
            for line in obj.lines:
                sizes.extend([line.font_size] * max(len(line.text), 1))
    return statistics.median(sizes) if sizes else 0.0


def detect_headings(contents: list[ContentObject]) -> list[ContentObject]:
    """Promote short paragraphs set larger (or bold) than body text.

    Heading levels are left unset; they are assigned across the whole
    document once all pages are merged.
    """
    body_size = body_font_size(contents)
    if body_size <= 0:
        return contents

    result: list[ContentObject] = []
    for obj in contents:
        if type(obj) is Paragraph and _looks_like_heading(obj, body_size):
            result.append(
                Heading(
                    content_id=obj.content_id,
                    bbox=obj.bbox,
                    source=obj.source,
                    lines=obj.lines,
                    semantic_score=obj.semantic_score,
                )
            )
        else:
            result.append(obj)
    return result


def _looks_like_heading(paragraph: Paragraph, body_size: float) -> bool:
    text = paragraph.text.strip()
    if not text or len(paragraph.lines) > HEADING_MAX_LINES or len(text) > HEADING_MAX_CHARS:
        return False
    if text.endswith((".", ",", ";")) or not any(ch.isalpha() for ch in text):
        return False
    if paragraph.font_size >= body_size * HEADING_SIZE_RATIO:
        return True
    return all(line.is_bold for line in paragraph.lines) and paragraph.font_size >= body_size


def detect_figures(contents: list[ContentObject], context: ProcessingContext) -> list[ContentObject]:
    """Replace sizeable image placements with numbered figures."""
    result: list[ContentObject] = []
    for obj in contents:
        if isinstance(obj, ImageChunk):
            if obj.bbox.area >= MIN_FIGURE_AREA:
                result.append(
                    Figure(bbox=obj.bbox, source=obj.source, image_index=context.next_figure_index())
                )
        else:
            result.append(obj)
    return result


def _caption_target(
    paragraph: Paragraph,
    candidates: list[ContentObject],
) -> Optional[ContentObject]:
    best, best_distance = None, CAPTION_MAX_DISTANCE
    for target in candidates:
        if paragraph.bbox.horizontal_overlap(target.bbox) <= 0:
            continue
        if paragraph.bbox.top <= target.bbox.bottom:
            distance = target.bbox.bottom - paragraph.bbox.top
        elif paragraph.bbox.bottom >= target.bbox.top:
            distance = paragraph.bbox.bottom - target.bbox.top
        else:
            continue
        if distance <= best_distance:
            best, best_distance = target, distance
    return best


def detect_captions(contents: list[ContentObject]) -> list[ContentObject]:
    """Link caption-like paragraphs to the nearest figure or table above or below.

    Runs after content ids are assigned; the caption keeps its paragraph id.
    """
    targets = [c for c in contents if isinstance(c, (Figure, Table))]
    if not targets:
        return contents

    result: list[ContentObject] = []
    for obj in contents:
        if type(obj) is Paragraph and CAPTION_PATTERN.match(obj.text.strip()):
            target = _caption_target(obj, targets)
            if target is not None:
                caption = Caption(
                    content_id=obj.content_id,
                    bbox=obj.bbox,
                    source=obj.source,
                    lines=obj.lines,
                    semantic_score=obj.semantic_score,
                    linked_content_id=target.content_id,
                )
                if isinstance(target, Figure) and not target.caption_text:
                    target.caption_text = caption.text
                result.append(caption)
                continue
        result.append(obj)
    return result
