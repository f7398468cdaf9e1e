"""Content Filter Stage - Turn a PDF page into raw content objects.

Reads text spans, vector drawings and image placements with PyMuPDF and
keeps only what is visible and meaningful:
- whitespace-only text is dropped
- text below the minimum font size is dropped
- text entirely outside the page is dropped
- invisible text (transparent or render mode 3) is dropped

The output is deterministic for a given page and configuration.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import fitz  # PyMuPDF

from docroute.config import FilterConfig
from docroute.hybrid.geometry import sort_by_reading_order
from docroute.models import BoundingBox, ContentObject, ImageChunk, LineArt, TextChunk

logger = logging.getLogger(__name__)

# PyMuPDF span flag for bold text
BOLD_FLAG = 16

# Thickness at or below which a filled rectangle counts as a ruling line
LINE_THICKNESS = 2.0

# Images smaller than this (points squared) are decorations
MIN_IMAGE_AREA = 16.0


class PageContentFilter(ABC):
    """Produces the filtered content list of one page."""

    @abstractmethod
    def filter(self, document, page_index: int, config: FilterConfig) -> list[ContentObject]:
        raise NotImplementedError


class PyMuPDFContentFilter(PageContentFilter):
    """Default filter reading pages through PyMuPDF."""

    def filter(self, document, page_index: int, config: FilterConfig) -> list[ContentObject]:
        page = document.page(page_index)
        page_rect = page.rect
        height = float(page_rect.height)
        page_box = BoundingBox(
            page_index=page_index,
            left=0.0,
            bottom=0.0,
            right=float(page_rect.width),
            top=height,
        )

        invisible_origins = self._invisible_text_origins(page) if config.drop_invisible_text else set()

        contents: list[ContentObject] = []
        contents.extend(
            self._text_chunks(page, page_index, height, page_box, config, invisible_origins)
        )
        contents.extend(self._line_art(page, page_index, height, page_box))
        contents.extend(self._images(page, page_index, height, page_box))

        logger.debug(f"Page {page_index + 1}: {len(contents)} objects after filtering")
        return sort_by_reading_order(contents)

    @staticmethod
    def _on_page(bbox: BoundingBox, page_box: BoundingBox) -> bool:
        return bbox.horizontal_overlap(page_box) > 0 and bbox.vertical_overlap(page_box) > 0

    @staticmethod
    def _invisible_text_origins(page: fitz.Page) -> set[tuple[int, int]]:
        """Rounded glyph-run origins drawn with render mode 3 (invisible)."""
        origins = set()
        try:
            traces = page.get_texttrace()
        except (AttributeError, RuntimeError):
            return origins
        for trace in traces:
            if trace.get("type") == 3 and trace.get("chars"):
                x, y = trace["chars"][0][2]
                origins.add((round(x), round(y)))
        return origins

    def _text_chunks(
        self,
        page: fitz.Page,
        page_index: int,
        height: float,
        page_box: BoundingBox,
        config: FilterConfig,
        invisible_origins: set[tuple[int, int]],
    ) -> list[TextChunk]:
        chunks = []
        text_dict = page.get_text("dict")
        for block in text_dict.get("blocks", []):
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    chunk = self._span_to_chunk(
                        span, page_index, height, page_box, config, invisible_origins
                    )
                    if chunk is not None:
                        chunks.append(chunk)
        return chunks

    def _span_to_chunk(
        self,
        span: dict[str, Any],
        page_index: int,
        height: float,
        page_box: BoundingBox,
        config: FilterConfig,
        invisible_origins: set[tuple[int, int]],
    ) -> Optional[TextChunk]:
        text = span.get("text", "")
        if not text.strip():
            return None

        size = float(span.get("size", 0.0))
        if size <= 0 or size < config.min_font_size:
            return None

        if config.drop_invisible_text:
            if span.get("alpha", 255) == 0:
                return None
            origin = span.get("origin")
            if origin and (round(origin[0]), round(origin[1])) in invisible_origins:
                return None

        x0, y0, x1, y1 = span["bbox"]
        bbox = BoundingBox.from_top_left(page_index, x0, y0, x1, y1, height)
        if not self._on_page(bbox, page_box):
            return None

        return TextChunk(
            bbox=bbox,
            text=text,
            font_size=size,
            font_name=span.get("font", ""),
            is_bold=bool(span.get("flags", 0) & BOLD_FLAG),
        )

    def _line_art(
        self,
        page: fitz.Page,
        page_index: int,
        height: float,
        page_box: BoundingBox,
    ) -> list[LineArt]:
        lines = []
        for drawing in page.get_drawings():
            stroke_width = float(drawing.get("width") or 1.0)
            stroked = drawing.get("color") is not None
            for item in drawing.get("items", []):
                kind = item[0]
                if kind == "l":
                    p1, p2 = item[1], item[2]
                    segments = [(p1.x, p1.y, p2.x, p2.y)]
                elif kind == "re":
                    rect = item[1]
                    segments = self._rect_segments(rect, stroked)
                else:
                    continue

                for x0, y0, x1, y1 in segments:
                    half = stroke_width / 2
                    bbox = BoundingBox.from_top_left(
                        page_index,
                        min(x0, x1) - (half if x0 == x1 else 0.0),
                        min(y0, y1) - (half if y0 == y1 else 0.0),
                        max(x0, x1) + (half if x0 == x1 else 0.0),
                        max(y0, y1) + (half if y0 == y1 else 0.0),
                        height,
                    )
                    if self._on_page(bbox, page_box):
                        lines.append(LineArt(bbox=bbox))
        return lines

    @staticmethod
    def _rect_segments(rect: fitz.Rect, stroked: bool) -> list[tuple[float, float, float, float]]:
        """Ruling lines represented by a rectangle path item."""
        x0, y0, x1, y1 = rect.x0, rect.y0, rect.x1, rect.y1
        if abs(y1 - y0) <= LINE_THICKNESS:
            mid = (y0 + y1) / 2
            return [(x0, mid, x1, mid)]
        if abs(x1 - x0) <= LINE_THICKNESS:
            mid = (x0 + x1) / 2
            return [(mid, y0, mid, y1)]
        if not stroked:
            return []
        return [
            (x0, y0, x1, y0),
            (x0, y1, x1, y1),
            (x0, y0, x0, y1),
            (x1, y0, x1, y1),
        ]

    def _images(
        self,
        page: fitz.Page,
        page_index: int,
        height: float,
        page_box: BoundingBox,
    ) -> list[ImageChunk]:
        images = []
        for info in page.get_image_info():
            x0, y0, x1, y1 = info["bbox"]
            bbox = BoundingBox.from_top_left(page_index, x0, y0, x1, y1, height)
            if bbox.area < MIN_IMAGE_AREA or not self._on_page(bbox, page_box):
                continue
            images.append(ImageChunk(bbox=bbox))
        return images


default_filter = PyMuPDFContentFilter()
