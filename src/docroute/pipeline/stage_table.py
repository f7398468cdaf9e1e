"""Table Stage - Lattice table detection and cross-page table linking.

detect_table_borders finds grids of ruling lines on a page and turns each
into a Table whose cells hold the text found inside them. link_neighbor_tables
runs on the merged document and links a table at the end of a page to a
matching table at the start of the next page.
"""

import logging
from typing import Optional

from docroute.models import (
    BoundingBox,
    ContentObject,
    LineArt,
    Paragraph,
    Table,
    TableCell,
    TextChunk,
)
from docroute.pipeline.stage_layout import detect_paragraphs, merge_text_lines

logger = logging.getLogger(__name__)

# Distance under which two ruling lines touch or two coordinates coincide
SNAP_TOLERANCE = 2.0

# Column widths of continued tables may differ by this share of the width
COLUMN_WIDTH_TOLERANCE = 0.05


def _merge_coordinates(values: list[float]) -> list[float]:
    """Sorted unique coordinates, snapping values closer than SNAP_TOLERANCE."""
    merged: list[float] = []
    for value in sorted(values):
        if merged and value - merged[-1] <= SNAP_TOLERANCE:
            continue
        merged.append(value)
    return merged


def _touches(a: BoundingBox, b: BoundingBox) -> bool:
    return (
        a.left - SNAP_TOLERANCE <= b.right
        and b.left - SNAP_TOLERANCE <= a.right
        and a.bottom - SNAP_TOLERANCE <= b.top
        and b.bottom - SNAP_TOLERANCE <= a.top
    )


def _group_lines(lines: list[LineArt]) -> list[list[LineArt]]:
    """Connected components of touching ruling lines."""
    parent = list(range(len(lines)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(lines)):
        for j in range(i + 1, len(lines)):
            if lines[i].is_horizontal != lines[j].is_horizontal and _touches(
                lines[i].bbox, lines[j].bbox
            ):
                parent[find(i)] = find(j)

    groups: dict[int, list[LineArt]] = {}
    for i, line in enumerate(lines):
        groups.setdefault(find(i), []).append(line)
    return list(groups.values())


def _has_vertical_rule(verticals: list[LineArt], x: float, y: float) -> bool:
    for line in verticals:
        if abs(line.bbox.center_x - x) > SNAP_TOLERANCE:
            continue
        if line.bbox.bottom - SNAP_TOLERANCE <= y <= line.bbox.top + SNAP_TOLERANCE:
            return True
    return False


def _build_lattice(group: list[LineArt], page_index: int) -> Optional[Table]:
    horizontals = [line for line in group if line.is_horizontal]
    verticals = [line for line in group if line.is_vertical]
    if len(horizontals) < 2 or len(verticals) < 2:
        return None

    ys = _merge_coordinates([line.bbox.center_y for line in horizontals])
    xs = _merge_coordinates([line.bbox.center_x for line in verticals])
    if len(ys) < 2 or len(xs) < 2:
        return None

    # Rows top to bottom, columns left to right
    ys.reverse()
    num_rows, num_cols = len(ys) - 1, len(xs) - 1
    cells: list[TableCell] = []
    for row in range(num_rows):
        top, bottom = ys[row], ys[row + 1]
        middle = (top + bottom) / 2
        col = 0
        while col < num_cols:
            span = 1
            # A missing rule between two columns merges them
            while col + span < num_cols and not _has_vertical_rule(verticals, xs[col + span], middle):
                span += 1
            cells.append(
                TableCell(
                    row=row,
                    col=col,
                    col_span=span,
                    bbox=BoundingBox(
                        page_index=page_index,
                        left=xs[col],
                        bottom=bottom,
                        right=xs[col + span],
                        top=top,
                    ),
                )
            )
            col += span

    return Table(
        bbox=BoundingBox(page_index=page_index, left=xs[0], bottom=ys[-1], right=xs[-1], top=ys[0]),
        num_rows=num_rows,
        num_cols=num_cols,
        cells=cells,
    )


def _fill_cells(table: Table, chunks: list[TextChunk]) -> set[int]:
    """Move chunks whose centre lies in a cell into that cell; return their ids."""
    used: set[int] = set()
    for cell in table.cells:
        inside = [
            chunk
            for chunk in chunks
            if id(chunk) not in used and cell.bbox.contains_point(chunk.bbox.center_x, chunk.bbox.center_y)
        ]
        if not inside:
            continue
        used.update(id(chunk) for chunk in inside)
        cell.contents = [
            obj for obj in detect_paragraphs(merge_text_lines(list(inside))) if isinstance(obj, Paragraph)
        ]
    return used


def detect_table_borders(contents: list[ContentObject]) -> list[ContentObject]:
    """Detect ruled tables; text inside a table moves into its cells."""
    lines = [c for c in contents if isinstance(c, LineArt)]
    if not lines:
        return contents

    page_index = lines[0].page_index
    tables = [
        table
        for table in (_build_lattice(group, page_index) for group in _group_lines(lines))
        if table is not None
    ]
    if not tables:
        return contents

    chunks = [c for c in contents if isinstance(c, TextChunk)]
    consumed: set[int] = set()
    for table in tables:
        consumed |= _fill_cells(table, [c for c in chunks if id(c) not in consumed])
    logger.debug(f"Page {page_index + 1}: detected {len(tables)} ruled table(s)")

    remaining = [c for c in contents if id(c) not in consumed]
    return remaining + tables


def drop_line_art(contents: list[ContentObject]) -> list[ContentObject]:
    """Remove ruling lines once tables have been built from them."""
    return [c for c in contents if not isinstance(c, LineArt)]


def _tables_continue(before: Table, after: Table) -> bool:
    if before.num_cols != after.num_cols:
        return False

    # Repeated header row
    header = before.header_texts()
    if any(header) and header == after.header_texts():
        return True

    widths_before = before.column_widths()
    widths_after = after.column_widths()
    tolerance = COLUMN_WIDTH_TOLERANCE * max(before.bbox.width, after.bbox.width, 1.0)
    return all(abs(a - b) <= tolerance for a, b in zip(widths_before, widths_after))


def _last_table(contents: list[ContentObject]) -> Optional[Table]:
    return contents[-1] if contents and isinstance(contents[-1], Table) else None


def _first_table(contents: list[ContentObject]) -> Optional[Table]:
    return contents[0] if contents and isinstance(contents[0], Table) else None


def link_neighbor_tables(pages: list[list[ContentObject]]) -> list[list[ContentObject]]:
    """Link a page-final table to a matching page-initial table on the next page."""
    for index in range(len(pages) - 1):
        before = _last_table(pages[index])
        after = _first_table(pages[index + 1])
        if before is None or after is None:
            continue
        if before.content_id is None or after.content_id is None:
            continue
        if _tables_continue(before, after):
            before.next_table_id = after.content_id
            after.previous_table_id = before.content_id
            logger.debug(
                f"Table {before.content_id} on page {index + 1} continues as "
                f"{after.content_id} on page {index + 2}"
            )
    return pages
