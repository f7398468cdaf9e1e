"""Triage Stage - Decide per page whether to process locally or remotely.

Pages whose structure the local passes handle poorly (ruled or aligned
tables, scanned content, broken text encodings) go to the backend; simple
text pages stay local.

Signal extraction and scoring are separate, swappable objects. Both are
pure: the same filtered contents always yield the same result.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Iterable, Optional

from docroute.config import HybridConfig
from docroute.models import (
    ContentObject,
    ImageChunk,
    LineArt,
    TextChunk,
    TriageDecision,
    TriageResult,
    TriageSignals,
)

logger = logging.getLogger(__name__)

REPLACEMENT_CHAR = "\ufffd"

# Left edges closer than this (points) count as one column edge
COLUMN_SNAP = 3.0

# A column edge needs this many chunks starting on it
MIN_COLUMN_MEMBERS = 3


class SignalExtractor(ABC):
    """Computes triage signals from one page's filtered contents."""

    @abstractmethod
    def extract(
        self,
        contents: list[ContentObject],
        page_size: Optional[tuple[float, float]] = None,
    ) -> TriageSignals:
        raise NotImplementedError


class TriagePolicy(ABC):
    """Turns signals into a routing decision."""

    @abstractmethod
    def decide(self, page_index: int, signals: TriageSignals, threshold: float) -> TriageResult:
        raise NotImplementedError


class DefaultSignalExtractor(SignalExtractor):
    """Counts text, ruling lines and images; measures column alignment."""

    def extract(
        self,
        contents: list[ContentObject],
        page_size: Optional[tuple[float, float]] = None,
    ) -> TriageSignals:
        chunks = [c for c in contents if isinstance(c, TextChunk)]
        lines = [c for c in contents if isinstance(c, LineArt)]
        images = [c for c in contents if isinstance(c, ImageChunk)]

        total_chars = sum(len(c.text) for c in chunks)
        replacement_chars = sum(c.text.count(REPLACEMENT_CHAR) for c in chunks)

        page_area = self._page_area(contents, page_size)
        image_area = sum(image.bbox.area for image in images)

        return TriageSignals(
            text_chunk_count=len(chunks),
            line_art_count=len(lines),
            horizontal_line_count=sum(1 for line in lines if line.is_horizontal),
            vertical_line_count=sum(1 for line in lines if line.is_vertical),
            image_count=len(images),
            image_area_ratio=min(image_area / page_area, 1.0) if page_area > 0 else 0.0,
            replacement_char_ratio=replacement_chars / total_chars if total_chars else 0.0,
            aligned_column_count=self._aligned_columns(chunks),
        )

    @staticmethod
    def _page_area(
        contents: list[ContentObject],
        page_size: Optional[tuple[float, float]],
    ) -> float:
        if page_size is not None:
            return page_size[0] * page_size[1]
        if not contents:
            return 0.0
        bbox = contents[0].bbox
        for obj in contents[1:]:
            bbox = bbox.union(obj.bbox)
        return bbox.area

    @staticmethod
    def _aligned_columns(chunks: list[TextChunk]) -> int:
        """Number of left edges shared by several chunks on different lines."""
        edges = Counter(round(chunk.bbox.left / COLUMN_SNAP) for chunk in chunks)
        return sum(1 for count in edges.values() if count >= MIN_COLUMN_MEMBERS)


class DefaultTriagePolicy(TriagePolicy):
    """Weighted score of structure evidence compared with a threshold.

    Each feature is scaled to [0, 1]; the score is their weighted sum,
    capped at 1. A page at or above the threshold goes REMOTE. Confidence
    is the score for REMOTE and 1 - score for LOCAL.
    """

    def __init__(
        self,
        table_weight: float = 0.6,
        column_weight: float = 0.2,
        image_weight: float = 0.25,
        encoding_weight: float = 0.5,
        sparse_text_weight: float = 0.3,
    ):
        self.table_weight = table_weight
        self.column_weight = column_weight
        self.image_weight = image_weight
        self.encoding_weight = encoding_weight
        self.sparse_text_weight = sparse_text_weight

    def score(self, signals: TriageSignals) -> float:
        # Ruling lines in both directions suggest a lattice table
        lattice = 0.0
        if signals.horizontal_line_count >= 2 and signals.vertical_line_count >= 2:
            lattice = min((signals.horizontal_line_count + signals.vertical_line_count) / 6.0, 1.0)

        # Three or more aligned columns suggest a borderless table
        columns = min(max(signals.aligned_column_count - 2, 0) / 3.0, 1.0)

        encoding = min(signals.replacement_char_ratio * 10.0, 1.0)

        # Images with hardly any text suggest a scanned page
        sparse = 1.0 if signals.image_count and signals.text_chunk_count < 5 else 0.0

        total = (
            self.table_weight * lattice
            + self.column_weight * columns
            + self.image_weight * signals.image_area_ratio
            + self.encoding_weight * encoding
            + self.sparse_text_weight * sparse
        )
        return round(min(total, 1.0), 6)

    def decide(self, page_index: int, signals: TriageSignals, threshold: float) -> TriageResult:
        score = self.score(signals)
        if score >= threshold:
            return TriageResult.remote(page_index, score, signals)
        return TriageResult.local(page_index, round(1.0 - score, 6), signals)


class TriageEngine:
    """Produces one TriageResult per in-scope page."""

    def __init__(
        self,
        extractor: Optional[SignalExtractor] = None,
        policy: Optional[TriagePolicy] = None,
    ):
        self.extractor = extractor or DefaultSignalExtractor()
        self.policy = policy or DefaultTriagePolicy()

    def triage_all_pages(
        self,
        filtered_by_page: dict[int, list[ContentObject]],
        config: HybridConfig,
        pages: Optional[Iterable[int]] = None,
        page_sizes: Optional[dict[int, tuple[float, float]]] = None,
    ) -> dict[int, TriageResult]:
        """Triage every in-scope page.

        Args:
            filtered_by_page: 0-indexed page -> filtered contents.
            config: Hybrid configuration (mode and threshold).
            pages: 0-indexed pages in scope; all pages of filtered_by_page if None.
            page_sizes: 0-indexed page -> (width, height), for area signals.

        Returns:
            0-indexed page -> TriageResult, for in-scope pages only.
        """
        in_scope = sorted(filtered_by_page if pages is None else set(pages) & set(filtered_by_page))

        if config.is_full_mode:
            logger.info("Hybrid mode=full: skipping triage, all pages to backend")
            return {
                page: TriageResult.remote(page, 1.0, TriageSignals.empty())
                for page in in_scope
            }

        page_sizes = page_sizes or {}
        results = {}
        for page in in_scope:
            signals = self.extractor.extract(filtered_by_page[page], page_sizes.get(page))
            results[page] = self.policy.decide(page, signals, config.triage_threshold)
        return results


def summarize(results: dict[int, TriageResult]) -> dict[str, int]:
    """Count of pages per decision."""
    counts = Counter(result.decision for result in results.values())
    return {decision.value: counts.get(decision, 0) for decision in TriageDecision}


def log_triage_summary(results: dict[int, TriageResult]) -> None:
    summary = summarize(results)
    logger.info(
        f"Triage summary: LOCAL={summary[TriageDecision.LOCAL.value]}, "
        f"REMOTE={summary[TriageDecision.REMOTE.value]}"
    )
    for page, result in sorted(results.items()):
        logger.debug(f"Page {page + 1}: {result.decision.value} (confidence={result.confidence:.2f})")
