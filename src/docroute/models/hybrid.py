"""Request/response values exchanged with backend clients."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .base import OutputFormat


class HybridRequest(BaseModel):
    """PDF bytes plus what to ask the backend for."""

    pdf_bytes: bytes
    output_formats: frozenset[OutputFormat] = Field(
        default=frozenset({OutputFormat.JSON})
    )
    page_numbers: Optional[frozenset[int]] = Field(
        None, description="1-indexed pages to analyze; None for all pages"
    )

    class Config:
        frozen = True

    @property
    def all_pages(self) -> bool:
        return self.page_numbers is None

    @classmethod
    def for_all_pages(
        cls,
        pdf_bytes: bytes,
        output_formats: Optional[set[OutputFormat]] = None,
    ) -> "HybridRequest":
        return cls(
            pdf_bytes=pdf_bytes,
            output_formats=frozenset(output_formats or {OutputFormat.JSON}),
        )

    @classmethod
    def for_pages(
        cls,
        pdf_bytes: bytes,
        page_numbers: set[int],
        output_formats: Optional[set[OutputFormat]] = None,
    ) -> "HybridRequest":
        return cls(
            pdf_bytes=pdf_bytes,
            output_formats=frozenset(output_formats or {OutputFormat.JSON}),
            page_numbers=frozenset(page_numbers),
        )


class HybridResponse(BaseModel):
    """Backend-native result, consumed once by a schema transformer."""

    markdown: Optional[str] = None
    html: Optional[str] = None
    json_content: Optional[dict[str, Any]] = Field(
        None, description="Backend-native document tree"
    )
    page_contents: dict[int, dict[str, Any]] = Field(
        default_factory=dict, description="1-indexed page number to page subtree"
    )

    class Config:
        frozen = True
