"""Tests for the shared transformer geometry helpers."""

import pytest

from docroute.hybrid.geometry import (
    DEFAULT_PAGE_HEIGHT,
    GridCell,
    TransformCursor,
    bbox_to_polygon,
    build_table_cells,
    edges_to_bbox,
    make_paragraph,
    polygon_to_bbox,
    sort_by_reading_order,
)
from docroute.models import BoundingBox, Heading


class TestPolygonConversion:
    """Tests for inch polygons to point boxes."""

    def test_polygon_in_inches(self):
        """A 1x1 to 3x1.5 inch polygon becomes a box in points, flipped."""
        bbox = polygon_to_bbox([1, 1, 3, 1, 3, 1.5, 1, 1.5], 0, 792.0)
        assert bbox.left == pytest.approx(72.0)
        assert bbox.right == pytest.approx(216.0)
        assert bbox.top == pytest.approx(720.0)
        assert bbox.bottom == pytest.approx(684.0)

    def test_rotated_polygon_uses_extrema(self):
        """Corner order does not matter."""
        bbox = polygon_to_bbox([3, 1.5, 1, 1.5, 1, 1, 3, 1], 2, 792.0)
        assert (bbox.left, bbox.right) == (pytest.approx(72.0), pytest.approx(216.0))
        assert bbox.page_index == 2

    def test_back_to_polygon(self):
        """bbox_to_polygon reproduces the inch corners."""
        bbox = polygon_to_bbox([1, 1, 3, 1, 3, 1.5, 1, 1.5], 0, 792.0)
        assert bbox_to_polygon(bbox, 792.0) == pytest.approx([1, 1, 3, 1, 3, 1.5, 1, 1.5])

    def test_default_page_height_is_letter(self):
        assert DEFAULT_PAGE_HEIGHT == 792.0


class TestEdges:
    """Tests for l/t/r/b edge conversion."""

    def test_bottom_left_origin_unchanged(self):
        bbox = edges_to_bbox(10, 700, 200, 680, 0, 792.0)
        assert (bbox.left, bbox.bottom, bbox.right, bbox.top) == (10, 680, 200, 700)

    def test_top_left_origin_flipped(self):
        bbox = edges_to_bbox(10, 92, 200, 112, 0, 792.0, origin="TOPLEFT")
        assert (bbox.left, bbox.bottom, bbox.right, bbox.top) == (10, 680, 200, 700)


class TestReadingOrder:
    """Tests for reading-order sorting."""

    def _paragraph(self, text, top_inches, left_inches=1.0):
        bbox = polygon_to_bbox(
            [left_inches, top_inches, left_inches + 2, top_inches,
             left_inches + 2, top_inches + 0.5, left_inches, top_inches + 0.5],
            0,
            792.0,
        )
        return make_paragraph(text, bbox, "azure")

    def test_top_to_bottom(self):
        """Paragraphs at 1, 4 and 8 inches read top to bottom."""
        contents = [
            self._paragraph("Third", 8),
            self._paragraph("First", 1),
            self._paragraph("Second", 4),
        ]
        sort_by_reading_order(contents)
        assert [p.text for p in contents] == ["First", "Second", "Third"]

    def test_same_line_left_to_right(self):
        """Objects within the line tolerance read left to right."""
        right = make_paragraph("right", BoundingBox(page_index=0, left=300, bottom=690, right=400, top=702), "x")
        left = make_paragraph("left", BoundingBox(page_index=0, left=50, bottom=690, right=150, top=700), "x")
        contents = [right, left]
        sort_by_reading_order(contents)
        assert [p.text for p in contents] == ["left", "right"]


class TestTableCells:
    """Tests for grid reconstruction."""

    @pytest.fixture
    def table_bbox(self):
        return BoundingBox(page_index=0, left=100, bottom=500, right=300, top=600)

    def test_colspan_keeps_grid(self, table_bbox):
        """A 2x2 grid whose first row is one spanning cell."""
        cells = build_table_cells(
            table_bbox,
            2,
            2,
            [
                GridCell(row=0, col=0, col_span=2, text="Header", is_header=True),
                GridCell(row=1, col=0, text="a"),
                GridCell(row=1, col=1, text="b"),
            ],
            "azure",
        )
        assert len(cells) == 3
        header = cells[0]
        assert header.col_span == 2
        assert header.is_header
        assert header.bbox.width == pytest.approx(200.0)
        assert cells[1].bbox.width == pytest.approx(100.0)
        assert header.text == "Header"

    def test_missing_cells_filled(self, table_bbox):
        """Positions the backend omits become empty cells."""
        cells = build_table_cells(table_bbox, 2, 2, [GridCell(row=0, col=0, text="x")], "azure")
        assert [(c.row, c.col) for c in cells] == [(0, 0), (0, 1), (1, 0), (1, 1)]
        assert cells[3].contents == []

    def test_span_clamped_to_grid(self, table_bbox):
        """Spans beyond the grid edge are clamped."""
        cells = build_table_cells(table_bbox, 2, 2, [GridCell(row=1, col=1, row_span=3, col_span=3)], "azure")
        corner = [c for c in cells if (c.row, c.col) == (1, 1)][0]
        assert (corner.row_span, corner.col_span) == (1, 1)

    def test_overlapping_span_shrinks(self, table_bbox):
        """A span that would overlap an earlier span is reduced."""
        cells = build_table_cells(
            table_bbox,
            2,
            2,
            [GridCell(row=0, col=1, row_span=2), GridCell(row=1, col=0, col_span=2)],
            "azure",
        )
        bottom_left = [c for c in cells if (c.row, c.col) == (1, 0)][0]
        assert bottom_left.col_span == 1
        assert len(cells) == 3

    def test_cells_tile_table_exactly(self):
        """Neighbouring edges and outer edges match with no rounding gaps."""
        table_bbox = BoundingBox(page_index=0, left=72.1, bottom=100.3, right=540.7, top=700.9)
        cells = build_table_cells(
            table_bbox,
            7,
            7,
            [GridCell(row=0, col=2, col_span=3), GridCell(row=2, col=0, row_span=3)],
            "azure",
        )
        by_position = {(c.row, c.col): c for c in cells}

        for cell in cells:
            right_col = cell.col + cell.col_span
            below_row = cell.row + cell.row_span
            if right_col == 7:
                assert cell.bbox.right == table_bbox.right
            elif (cell.row, right_col) in by_position:
                assert by_position[(cell.row, right_col)].bbox.left == cell.bbox.right
            if below_row == 7:
                assert cell.bbox.bottom == table_bbox.bottom
            elif (below_row, cell.col) in by_position:
                assert by_position[(below_row, cell.col)].bbox.top == cell.bbox.bottom
            if cell.col == 0:
                assert cell.bbox.left == table_bbox.left
            if cell.row == 0:
                assert cell.bbox.top == table_bbox.top

        area = sum(c.bbox.width * c.bbox.height for c in cells)
        assert area == pytest.approx(table_bbox.width * table_bbox.height)


class TestHelpers:
    """Tests for cursor and paragraph helpers."""

    def test_cursor_counts_from_one(self):
        cursor = TransformCursor()
        assert [cursor.next_figure_index() for _ in range(3)] == [1, 2, 3]

    def test_make_heading(self):
        bbox = BoundingBox(page_index=0, left=0, bottom=0, right=10, top=10)
        heading = make_paragraph("Intro", bbox, "docling", cls=Heading, heading_level=2)
        assert isinstance(heading, Heading)
        assert heading.heading_level == 2
        assert heading.text == "Intro"
        assert heading.source == "docling"
