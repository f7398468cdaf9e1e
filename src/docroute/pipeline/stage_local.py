"""Local Processing Path - In-process detection for pages triaged LOCAL.

Pages are processed one at a time in the calling thread. Each page runs
the detection passes in a fixed order:

    table borders -> figures -> drop line art -> text lines -> paragraphs
    -> lists -> headings -> content ids -> captions

A page whose passes raise is logged and keeps its filtered contents.
"""

import copy
import logging
from typing import Iterable

from docroute.models import ContentObject
from docroute.pipeline.context import ProcessingContext
from docroute.pipeline.stage_layout import (
    detect_captions,
    detect_figures,
    detect_headings,
    detect_lists,
    detect_paragraphs,
    merge_text_lines,
)
from docroute.pipeline.stage_table import detect_table_borders, drop_line_art

logger = logging.getLogger(__name__)


def process_page(contents: list[ContentObject], context: ProcessingContext) -> list[ContentObject]:
    """Run every local pass over one page's filtered contents."""
    contents = detect_table_borders(contents)
    contents = detect_figures(contents, context)
    contents = drop_line_art(contents)
    contents = merge_text_lines(contents)
    contents = detect_paragraphs(contents)
    contents = detect_lists(contents)
    contents = detect_headings(contents)
    contents = context.assign_ids(contents)
    return detect_captions(contents)


def run_local_path(
    filtered_by_page: dict[int, list[ContentObject]],
    pages: Iterable[int],
    context: ProcessingContext,
) -> dict[int, list[ContentObject]]:
    """Process the given pages locally.

    Works on deep copies, so the filtered contents stay available for a
    later fallback run.

    Returns:
        0-indexed page -> processed contents, for every requested page.
    """
    results: dict[int, list[ContentObject]] = {}
    for page_index in sorted(pages):
        filtered = filtered_by_page.get(page_index, [])
        try:
            results[page_index] = process_page(copy.deepcopy(filtered), context)
        except Exception as e:
            logger.warning(f"Error processing page {page_index + 1}: {e}")
            results[page_index] = copy.deepcopy(filtered)
    return results
