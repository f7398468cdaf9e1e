"""Per-document processing state.

One ProcessingContext is created for each document run and passed
explicitly to every pass that needs it. Nothing here is global, so two
documents can be processed at the same time in one process.
"""

import itertools
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from docroute.models import ContentObject, ListBlock, Table

# US Letter, used for pages whose size is unknown
DEFAULT_PAGE_SIZE = (612.0, 792.0)


@dataclass
class ProcessingContext:
    """Content-id sequence and page geometry for one document run."""

    document_name: str
    page_sizes: dict[int, tuple[float, float]] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)
    _figures: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def next_content_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def next_figure_index(self) -> int:
        with self._lock:
            return next(self._figures)

    def page_size(self, page_index: int) -> tuple[float, float]:
        """(width, height) in points for a 0-indexed page."""
        return self.page_sizes.get(page_index, DEFAULT_PAGE_SIZE)

    def page_height(self, page_index: int) -> float:
        return self.page_size(page_index)[1]

    def page_heights(self, pages: Optional[Iterable[int]] = None) -> dict[int, float]:
        """1-indexed page number -> height, the shape transformers expect."""
        indexes = self.page_sizes.keys() if pages is None else pages
        return {index + 1: self.page_height(index) for index in indexes}

    def assign_ids(self, contents: list[ContentObject]) -> list[ContentObject]:
        """Give every object without an id the next one; existing ids are kept."""
        for obj in contents:
            if obj.content_id is None:
                obj.content_id = self.next_content_id()
            if isinstance(obj, Table):
                for cell in obj.cells:
                    self.assign_ids(cell.contents)
            elif isinstance(obj, ListBlock):
                self.assign_ids(obj.items)
        return contents
