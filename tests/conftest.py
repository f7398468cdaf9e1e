"""Pytest configuration and fixtures."""

from unittest.mock import MagicMock

import pytest

from docroute.config import HybridConfig
from docroute.models import BackendType, BoundingBox, LineArt, TextChunk, TriageMode


class FakeDocument:
    """In-memory stand-in for PdfDocument."""

    def __init__(self, page_count=3, name="sample.pdf", page_size=(612.0, 792.0)):
        self.name = name
        self._page_count = page_count
        self._page_size = page_size

    @property
    def page_count(self):
        return self._page_count

    @property
    def stem(self):
        return self.name.rsplit(".", 1)[0]

    def page_sizes(self):
        return {i: self._page_size for i in range(self._page_count)}

    def read_bytes(self):
        return b"%PDF-1.7 fake"


class FakeFilter:
    """Returns prepared contents per page and records calls."""

    def __init__(self, contents_by_page=None):
        self.contents_by_page = contents_by_page or {}
        self.calls = []

    def filter(self, document, page_index, config):
        self.calls.append(page_index)
        return list(self.contents_by_page.get(page_index, []))


def make_chunk(page_index, text, left, top, width=100.0, size=12.0, bold=False):
    """Text chunk with its top-left corner at (left, top) in bottom-left coordinates."""
    return TextChunk(
        bbox=BoundingBox(
            page_index=page_index,
            left=left,
            bottom=top - size,
            right=left + width,
            top=top,
        ),
        text=text,
        font_size=size,
        is_bold=bold,
    )


def make_line(page_index, x0, y0, x1, y1):
    """Ruling line between two points; a thin box around the segment."""
    return LineArt(
        bbox=BoundingBox(
            page_index=page_index,
            left=min(x0, x1) - (0.5 if x0 == x1 else 0.0),
            bottom=min(y0, y1) - (0.5 if y0 == y1 else 0.0),
            right=max(x0, x1) + (0.5 if x0 == x1 else 0.0),
            top=max(y0, y1) + (0.5 if y0 == y1 else 0.0),
        )
    )


def make_grid(page_index, left, top, col_widths, row_height, rows):
    """Ruling lines of a full lattice table."""
    right = left + sum(col_widths)
    bottom = top - row_height * rows
    lines = []
    for r in range(rows + 1):
        y = top - r * row_height
        lines.append(make_line(page_index, left, y, right, y))
    x = left
    for width in [0.0] + list(col_widths):
        x += width
        lines.append(make_line(page_index, x, bottom, x, top))
    return lines


def make_response(status_code=200, json_data=None, headers=None, text=""):
    """Mock requests.Response usable as a context manager."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def fake_document():
    return FakeDocument()


@pytest.fixture
def output_dir(tmp_path):
    """Create a temporary output directory."""
    out_dir = tmp_path / "output"
    out_dir.mkdir()
    return out_dir


@pytest.fixture
def azure_config():
    return HybridConfig(
        backend=BackendType.AZURE,
        url="https://example.cognitiveservices.azure.com/",
        api_key="secret-key",
    )


@pytest.fixture
def docling_config():
    return HybridConfig(backend=BackendType.DOCLING)


@pytest.fixture
def full_mode_config():
    return HybridConfig(backend=BackendType.DOCLING, mode=TriageMode.FULL)


@pytest.fixture
def no_sleep():
    """Poller sleep replacement that records requested waits."""
    waits = []
    return waits.append, waits
