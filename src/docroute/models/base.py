"""Base models and common types for docroute."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ContentType(str, Enum):
    """Kinds of content objects on a page."""

    TEXT_CHUNK = "text_chunk"
    TEXT_LINE = "text_line"
    LINE_ART = "line_art"
    IMAGE_CHUNK = "image_chunk"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    CAPTION = "caption"
    LIST = "list"
    TABLE = "table"
    FIGURE = "figure"
    FORMULA = "formula"


class TriageDecision(str, Enum):
    """Where a page is processed."""

    LOCAL = "LOCAL"
    REMOTE = "REMOTE"


class TriageMode(str, Enum):
    """How pages are triaged."""

    AUTO = "auto"  # score each page from its content
    FULL = "full"  # send every page to the backend


class BackendType(str, Enum):
    """Supported external document-AI backends."""

    DOCLING = "docling"
    AZURE = "azure"


class OutputFormat(str, Enum):
    """Output formats a backend can be asked for."""

    JSON = "json"
    MARKDOWN = "markdown"
    HTML = "html"


# Vertical tolerance in points under which two objects sit on the same line
SAME_LINE_TOLERANCE = 5.0


class BoundingBox(BaseModel):
    """Page-relative box in PDF points with a bottom-left origin."""

    page_index: int = Field(..., ge=0, description="0-indexed page number")
    left: float = Field(..., description="Left edge X coordinate")
    bottom: float = Field(..., description="Bottom edge Y coordinate")
    right: float = Field(..., description="Right edge X coordinate")
    top: float = Field(..., description="Top edge Y coordinate")

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.top - self.bottom

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    @property
    def center_x(self) -> float:
        return (self.left + self.right) / 2

    @property
    def center_y(self) -> float:
        return (self.bottom + self.top) / 2

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @classmethod
    def empty(cls, page_index: int) -> "BoundingBox":
        """Zero-size box used when a backend element carries no geometry."""
        return cls(page_index=page_index, left=0.0, bottom=0.0, right=0.0, top=0.0)

    @classmethod
    def from_top_left(
        cls,
        page_index: int,
        x0: float,
        y0: float,
        x1: float,
        y1: float,
        page_height: float,
    ) -> "BoundingBox":
        """Build a box from top-left-origin extrema (x0 < x1, y0 < y1)."""
        return cls(
            page_index=page_index,
            left=x0,
            bottom=page_height - y1,
            right=x1,
            top=page_height - y0,
        )

    def to_top_left(self, page_height: float) -> tuple[float, float, float, float]:
        """Return (x0, y0, x1, y1) with a top-left origin."""
        return (self.left, page_height - self.top, self.right, page_height - self.bottom)

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box covering both boxes."""
        return BoundingBox(
            page_index=self.page_index,
            left=min(self.left, other.left),
            bottom=min(self.bottom, other.bottom),
            right=max(self.right, other.right),
            top=max(self.top, other.top),
        )

    def vertical_overlap(self, other: "BoundingBox") -> float:
        """Length of the shared vertical extent (0 if disjoint)."""
        return max(0.0, min(self.top, other.top) - max(self.bottom, other.bottom))

    def horizontal_overlap(self, other: "BoundingBox") -> float:
        """Length of the shared horizontal extent (0 if disjoint)."""
        return max(0.0, min(self.right, other.right) - max(self.left, other.left))

    def contains_point(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.bottom <= y <= self.top


class BaseContentModel(BaseModel):
    """Base class for all content objects."""

    content_id: Optional[int] = Field(
        None, description="Stable id assigned once per document run"
    )
    bbox: BoundingBox
    source: str = Field(default="local", description="'local' or the backend name")
    level: Optional[int] = Field(
        None, description="Structural nesting level set by the level pass"
    )

    @property
    def page_index(self) -> int:
        return self.bbox.page_index
