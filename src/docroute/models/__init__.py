"""Content model for docroute.

This module defines the Pydantic models every processing path produces.
Local detection passes and backend schema transformers both emit these
objects, so downstream passes never need to know where a page came from.

Key Design Principles:
1. One geometry: PDF points, bottom-left origin, 0-indexed pages
2. Reading order: a page's list is ordered as a human reads it
3. Immutable routing values: triage results, requests and responses are frozen

Model Hierarchy:
- Page (list) -> ContentObject (Paragraph, Heading, ListBlock, Table, Figure, ...)
- Table -> TableCell -> Paragraph
"""

from .base import (
    SAME_LINE_TOLERANCE,
    BackendType,
    BaseContentModel,
    BoundingBox,
    ContentType,
    OutputFormat,
    TriageDecision,
    TriageMode,
)
from .content import (
    Caption,
    Figure,
    Formula,
    Heading,
    ImageChunk,
    LineArt,
    ListBlock,
    ListItem,
    Paragraph,
    TextChunk,
    TextLine,
)
from .hybrid import (
    HybridRequest,
    HybridResponse,
)
from .table import (
    Table,
    TableCell,
)
from .triage import (
    TriageResult,
    TriageSignals,
)

# Any object that can sit in a page's content list
ContentObject = BaseContentModel

__all__ = [
    # Base types
    "SAME_LINE_TOLERANCE",
    "BackendType",
    "BaseContentModel",
    "BoundingBox",
    "ContentObject",
    "ContentType",
    "OutputFormat",
    "TriageDecision",
    "TriageMode",
    # Content
    "Caption",
    "Figure",
    "Formula",
    "Heading",
    "ImageChunk",
    "LineArt",
    "ListBlock",
    "ListItem",
    "Paragraph",
    "TextChunk",
    "TextLine",
    # Table
    "Table",
    "TableCell",
    # Triage
    "TriageResult",
    "TriageSignals",
    # Hybrid
    "HybridRequest",
    "HybridResponse",
]
