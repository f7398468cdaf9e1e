"""Geometry helpers shared by schema transformers.

Backends report boxes in their own units and origins. Everything here
produces BoundingBox values in PDF points with a bottom-left origin.
"""

from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Optional, Sequence

from docroute.models import (
    SAME_LINE_TOLERANCE,
    BoundingBox,
    ContentObject,
    Paragraph,
    TableCell,
    TextChunk,
    TextLine,
)

INCHES_TO_POINTS = 72.0

# US Letter height, used when neither caller nor backend gives a page height
DEFAULT_PAGE_HEIGHT = 11.0 * INCHES_TO_POINTS

DEFAULT_FONT_SIZE = 12.0


@dataclass
class TransformCursor:
    """Per-call counters threaded through one transform invocation."""

    figure_index: int = 0

    def next_figure_index(self) -> int:
        self.figure_index += 1
        return self.figure_index


def polygon_to_bbox(
    polygon: Sequence[float],
    page_index: int,
    page_height: float,
    scale: float = INCHES_TO_POINTS,
) -> BoundingBox:
    """Convert a flat top-left-origin polygon [x1, y1, ..., xn, yn] to a box.

    Coordinates are multiplied by ``scale`` before the vertical flip.
    """
    xs = [float(polygon[i]) * scale for i in range(0, len(polygon) - 1, 2)]
    ys = [float(polygon[i]) * scale for i in range(1, len(polygon), 2)]
    return BoundingBox.from_top_left(
        page_index, min(xs), min(ys), max(xs), max(ys), page_height
    )


def bbox_to_polygon(
    bbox: BoundingBox,
    page_height: float,
    scale: float = INCHES_TO_POINTS,
) -> list[float]:
    """Inverse of polygon_to_bbox: clockwise corners from top-left."""
    x0, y0, x1, y1 = bbox.to_top_left(page_height)
    x0, y0, x1, y1 = x0 / scale, y0 / scale, x1 / scale, y1 / scale
    return [x0, y0, x1, y0, x1, y1, x0, y1]


def edges_to_bbox(
    left: float,
    top: float,
    right: float,
    bottom: float,
    page_index: int,
    page_height: float,
    origin: str = "BOTTOMLEFT",
) -> BoundingBox:
    """Convert l/t/r/b edges in points with the given origin to a box."""
    if origin.upper() == "TOPLEFT":
        return BoundingBox.from_top_left(
            page_index,
            min(left, right),
            min(top, bottom),
            max(left, right),
            max(top, bottom),
            page_height,
        )
    return BoundingBox(
        page_index=page_index,
        left=min(left, right),
        bottom=min(top, bottom),
        right=max(left, right),
        top=max(top, bottom),
    )


def _reading_order_compare(a: ContentObject, b: ContentObject) -> int:
    top_diff = b.bbox.top - a.bbox.top
    if abs(top_diff) > SAME_LINE_TOLERANCE:
        return 1 if top_diff > 0 else -1
    if a.bbox.left < b.bbox.left:
        return -1
    if a.bbox.left > b.bbox.left:
        return 1
    return 0


def sort_by_reading_order(contents: list[ContentObject]) -> list[ContentObject]:
    """Sort in place top-to-bottom, left-to-right within one line.

    Objects whose tops differ by no more than SAME_LINE_TOLERANCE points
    count as the same line.
    """
    contents.sort(key=cmp_to_key(_reading_order_compare))
    return contents


def make_paragraph(text: str, bbox: BoundingBox, source: str, cls: type = Paragraph, **fields: Any):
    """Create a paragraph-like object holding a single line of text."""
    chunk = TextChunk(bbox=bbox, text=text, font_size=DEFAULT_FONT_SIZE, source=source)
    line = TextLine(bbox=bbox, chunks=[chunk], source=source)
    return cls(bbox=bbox, lines=[line], source=source, semantic_score=1.0, **fields)


@dataclass
class GridCell:
    """Backend-neutral cell description used to build a table grid."""

    row: int
    col: int
    row_span: int = 1
    col_span: int = 1
    text: str = ""
    is_header: bool = False


def build_table_cells(
    table_bbox: BoundingBox,
    num_rows: int,
    num_cols: int,
    cells: Sequence[GridCell],
    source: str,
) -> list[TableCell]:
    """Reconstruct a full grid from a flat cell list keyed by (row, col).

    Missing positions get empty cells. Spans are clamped to the grid and a
    position covered by an earlier span is not emitted again, so the cell
    boxes tile the table box exactly. Boxes are sized proportionally: every
    row has the same height and every column the same width.
    """
    row_height = table_bbox.height / num_rows
    col_width = table_bbox.width / num_cols
    # Shared boundaries so neighbouring cells meet on identical coordinates
    xs = [table_bbox.left + i * col_width for i in range(num_cols)] + [table_bbox.right]
    ys = [table_bbox.top - i * row_height for i in range(num_rows)] + [table_bbox.bottom]

    by_position: dict[tuple[int, int], GridCell] = {}
    for cell in cells:
        if 0 <= cell.row < num_rows and 0 <= cell.col < num_cols:
            by_position.setdefault((cell.row, cell.col), cell)

    covered = [[False] * num_cols for _ in range(num_rows)]
    result: list[TableCell] = []

    for row in range(num_rows):
        for col in range(num_cols):
            if covered[row][col]:
                continue

            cell_spec: Optional[GridCell] = by_position.get((row, col))
            row_span = max(1, cell_spec.row_span) if cell_spec else 1
            col_span = max(1, cell_spec.col_span) if cell_spec else 1
            row_span = min(row_span, num_rows - row)
            col_span = min(col_span, num_cols - col)

            # Shrink the span until it only covers free positions
            while col_span > 1 and any(
                covered[row][c] for c in range(col, col + col_span)
            ):
                col_span -= 1
            while row_span > 1 and any(
                covered[r][c]
                for r in range(row, row + row_span)
                for c in range(col, col + col_span)
            ):
                row_span -= 1

            for r in range(row, row + row_span):
                for c in range(col, col + col_span):
                    covered[r][c] = True

            cell_bbox = BoundingBox(
                page_index=table_bbox.page_index,
                left=xs[col],
                bottom=ys[row + row_span],
                right=xs[col + col_span],
                top=ys[row],
            )

            contents = []
            if cell_spec and cell_spec.text:
                contents.append(make_paragraph(cell_spec.text, cell_bbox, source))

            result.append(
                TableCell(
                    row=row,
                    col=col,
                    row_span=row_span,
                    col_span=col_span,
                    bbox=cell_bbox,
                    contents=contents,
                    is_header=cell_spec.is_header if cell_spec else False,
                )
            )

    return result
