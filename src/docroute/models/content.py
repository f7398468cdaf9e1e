"""Content object models shared by local passes and backend transformers."""

from typing import Literal, Optional

from pydantic import Field

from .base import BaseContentModel, ContentType


class TextChunk(BaseContentModel):
    """Run of text with uniform font, as produced by the content filter."""

    kind: Literal[ContentType.TEXT_CHUNK] = ContentType.TEXT_CHUNK
    text: str
    font_size: float = Field(default=12.0, gt=0)
    font_name: str = Field(default="")
    is_bold: bool = Field(default=False)


class TextLine(BaseContentModel):
    """Chunks sharing one baseline, left to right."""

    kind: Literal[ContentType.TEXT_LINE] = ContentType.TEXT_LINE
    chunks: list[TextChunk] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(c.text.strip() for c in self.chunks if c.text.strip())

    @property
    def font_size(self) -> float:
        """Dominant (largest by text length) font size on the line."""
        if not self.chunks:
            return 0.0
        return max(self.chunks, key=lambda c: len(c.text)).font_size

    @property
    def is_bold(self) -> bool:
        return bool(self.chunks) and all(c.is_bold for c in self.chunks)


class LineArt(BaseContentModel):
    """Vector line or thin rectangle, used as table-border evidence."""

    kind: Literal[ContentType.LINE_ART] = ContentType.LINE_ART

    @property
    def is_horizontal(self) -> bool:
        return self.bbox.width >= self.bbox.height

    @property
    def is_vertical(self) -> bool:
        return self.bbox.height > self.bbox.width


class ImageChunk(BaseContentModel):
    """Raster image placement on a page."""

    kind: Literal[ContentType.IMAGE_CHUNK] = ContentType.IMAGE_CHUNK


class Paragraph(BaseContentModel):
    """Block of consecutive text lines."""

    kind: ContentType = ContentType.PARAGRAPH
    lines: list[TextLine] = Field(default_factory=list)
    semantic_score: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)

    @property
    def font_size(self) -> float:
        if not self.lines:
            return 0.0
        return max(line.font_size for line in self.lines)


class Heading(Paragraph):
    """Paragraph acting as a section heading."""

    kind: ContentType = ContentType.HEADING
    heading_level: Optional[int] = Field(
        None, ge=1, description="1 = top level; None until assigned"
    )


class Caption(Paragraph):
    """Paragraph describing a neighbouring figure or table."""

    kind: ContentType = ContentType.CAPTION
    linked_content_id: Optional[int] = None


class ListItem(BaseContentModel):
    """Single list entry with its label ('1.', 'a)', bullet)."""

    kind: Literal["list_item"] = "list_item"
    label: str = ""
    lines: list[TextLine] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


class ListBlock(BaseContentModel):
    """Ordered or bulleted list."""

    kind: Literal[ContentType.LIST] = ContentType.LIST
    items: list[ListItem] = Field(default_factory=list)
    numbering_style: str = Field(default="bullet", description="bullet, arabic, alpha, roman")
    previous_list_id: Optional[int] = Field(
        None, description="List this one continues from (previous page)"
    )
    next_list_id: Optional[int] = None


class Figure(BaseContentModel):
    """Picture region."""

    kind: Literal[ContentType.FIGURE] = ContentType.FIGURE
    image_index: int = Field(..., ge=1, description="1-indexed per document transform")
    caption_text: Optional[str] = None


class Formula(BaseContentModel):
    """Mathematical formula with its source (LaTeX or plain)."""

    kind: Literal[ContentType.FORMULA] = ContentType.FORMULA
    source_text: str = ""
    display: bool = Field(default=True, description="Display (block) vs inline")
