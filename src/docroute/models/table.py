"""Table models - grid of cells with spans."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .base import BaseContentModel, BoundingBox, ContentType
from .content import Paragraph


class TableCell(BaseModel):
    """
    Individual cell in a table.

    A spanning cell is stored once, at its top-left grid position.
    """

    row: int = Field(..., ge=0, description="0-indexed row number")
    col: int = Field(..., ge=0, description="0-indexed column number")
    row_span: int = Field(default=1, ge=1, description="Number of rows this cell spans")
    col_span: int = Field(default=1, ge=1, description="Number of columns this cell spans")
    bbox: BoundingBox
    contents: list[Paragraph] = Field(default_factory=list)
    is_header: bool = Field(default=False, description="Is this a header cell")

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.contents)

    @property
    def is_merged(self) -> bool:
        """Check if cell spans multiple rows or columns."""
        return self.row_span > 1 or self.col_span > 1

    def covers(self, row: int, col: int) -> bool:
        return (
            self.row <= row < self.row + self.row_span
            and self.col <= col < self.col + self.col_span
        )


class Table(BaseContentModel):
    """
    Table with an explicit row/column grid.

    Tables split across pages are linked through previous/next ids by the
    neighbor-table pass; each page keeps its own Table object.
    """

    kind: Literal[ContentType.TABLE] = ContentType.TABLE

    num_rows: int = Field(..., ge=1)
    num_cols: int = Field(..., ge=1)
    cells: list[TableCell] = Field(default_factory=list)

    previous_table_id: Optional[int] = Field(
        None, description="Table on the previous page this one continues"
    )
    next_table_id: Optional[int] = None

    def get_cell(self, row: int, col: int) -> Optional[TableCell]:
        """Get cell at specified row and column, resolving spans."""
        for cell in self.cells:
            if cell.row == row and cell.col == col:
                return cell
            if cell.covers(row, col):
                return cell
        return None

    def get_row(self, row: int) -> list[TableCell]:
        """Get all cells starting in a row."""
        return sorted(
            [c for c in self.cells if c.row == row],
            key=lambda c: c.col,
        )

    def column_widths(self) -> list[float]:
        """Widths of single-column cells in the first row that has them."""
        widths: list[Optional[float]] = [None] * self.num_cols
        for cell in sorted(self.cells, key=lambda c: (c.row, c.col)):
            if cell.col_span == 1 and widths[cell.col] is None:
                widths[cell.col] = cell.bbox.width
        return [w if w is not None else 0.0 for w in widths]

    def header_texts(self) -> list[str]:
        """Normalized texts of row 0, used to spot repeated headers."""
        return [c.text.strip().lower() for c in self.get_row(0)]
