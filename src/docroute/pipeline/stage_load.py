"""Document Loading Stage - Open a PDF and expose what the pipeline needs.

Uses PyMuPDF (fitz) for parsing. The rest of the pipeline only sees the
document name, its bytes, the page count, the page sizes and PyMuPDF pages
for the default content filter, so tests can substitute any object with
the same attributes.
"""

import hashlib
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF


def compute_file_hash(data: bytes) -> str:
    """SHA-256 of the document bytes, recorded in the JSON output."""
    return hashlib.sha256(data).hexdigest()


class PdfDocument:
    """Open PDF document.

    Usage:
        with PdfDocument.open(path) as document:
            print(document.name, document.page_count)
    """

    def __init__(self, doc: fitz.Document, name: str, path: Optional[Path] = None):
        self._doc = doc
        self.name = name
        self.path = path
        self._bytes: Optional[bytes] = None

    @classmethod
    def open(cls, pdf_path: Path) -> "PdfDocument":
        """Open a PDF file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        pdf_path = Path(pdf_path).resolve()
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")
        return cls(fitz.open(str(pdf_path)), pdf_path.name, pdf_path)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "document.pdf") -> "PdfDocument":
        document = cls(fitz.open(stream=data, filetype="pdf"), name)
        document._bytes = data
        return document

    @property
    def stem(self) -> str:
        return Path(self.name).stem

    @property
    def page_count(self) -> int:
        return len(self._doc)

    def page(self, page_index: int) -> fitz.Page:
        return self._doc[page_index]

    def page_size(self, page_index: int) -> tuple[float, float]:
        rect = self._doc[page_index].rect
        return (float(rect.width), float(rect.height))

    def page_sizes(self) -> dict[int, tuple[float, float]]:
        """0-indexed page -> (width, height) in points."""
        return {i: self.page_size(i) for i in range(self.page_count)}

    def read_bytes(self) -> bytes:
        if self._bytes is None:
            if self.path is not None:
                self._bytes = self.path.read_bytes()
            else:
                self._bytes = self._doc.tobytes()
        return self._bytes

    def file_hash(self) -> str:
        return compute_file_hash(self.read_bytes())

    def close(self) -> None:
        self._doc.close()

    def __enter__(self) -> "PdfDocument":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
