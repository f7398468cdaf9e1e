"""Triage models - per-page routing decisions."""

from typing import Any

from pydantic import BaseModel, Field

from .base import TriageDecision


class TriageSignals(BaseModel):
    """
    Page-level features used as input to the triage decision.

    Never mutated after construction. New features go into ``extra`` so
    replacement policies can add signals without changing this model.
    """

    text_chunk_count: int = Field(default=0, ge=0)
    line_art_count: int = Field(default=0, ge=0)
    horizontal_line_count: int = Field(default=0, ge=0)
    vertical_line_count: int = Field(default=0, ge=0)
    image_count: int = Field(default=0, ge=0)
    image_area_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    replacement_char_ratio: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Share of unrecognized glyphs"
    )
    aligned_column_count: int = Field(
        default=0, ge=0, description="Distinct left edges shared by 3+ chunks"
    )
    extra: dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True

    @classmethod
    def empty(cls) -> "TriageSignals":
        return cls()


class TriageResult(BaseModel):
    """Routing decision for one page."""

    page_index: int = Field(..., ge=0)
    decision: TriageDecision
    confidence: float = Field(..., ge=0.0, le=1.0)
    signals: TriageSignals = Field(default_factory=TriageSignals.empty)

    class Config:
        frozen = True

    @classmethod
    def local(cls, page_index: int, confidence: float, signals: TriageSignals) -> "TriageResult":
        return cls(
            page_index=page_index,
            decision=TriageDecision.LOCAL,
            confidence=confidence,
            signals=signals,
        )

    @classmethod
    def remote(cls, page_index: int, confidence: float, signals: TriageSignals) -> "TriageResult":
        return cls(
            page_index=page_index,
            decision=TriageDecision.REMOTE,
            confidence=confidence,
            signals=signals,
        )
