"""Pipeline stages for hybrid document processing.

Stages:
1. stage_load - Open the PDF (PyMuPDF)
2. stage_filter - Page contents: visible text, ruling lines, images
3. stage_triage - Per-page LOCAL/REMOTE decision
4. stage_local - Local detection passes (stage_table, stage_layout)
5. orchestrator - Remote path, fallback and merge
6. stage_cont - Cross-page passes on the merged document

The orchestrator runs the stages in order; each stage can also be used
on its own.
"""

from .context import ProcessingContext
from .orchestrator import HybridOrchestrator, merge_results
from .stage_cont import run_cross_page_passes
from .stage_filter import PageContentFilter, PyMuPDFContentFilter
from .stage_load import PdfDocument
from .stage_local import process_page, run_local_path
from .stage_triage import (
    DefaultSignalExtractor,
    DefaultTriagePolicy,
    SignalExtractor,
    TriageEngine,
    TriagePolicy,
)
from .triage_log import write_triage_log

__all__ = [
    # Load
    "PdfDocument",
    # Filter
    "PageContentFilter",
    "PyMuPDFContentFilter",
    # Context
    "ProcessingContext",
    # Triage
    "DefaultSignalExtractor",
    "DefaultTriagePolicy",
    "SignalExtractor",
    "TriageEngine",
    "TriagePolicy",
    "write_triage_log",
    # Local path
    "process_page",
    "run_local_path",
    # Orchestration
    "HybridOrchestrator",
    "merge_results",
    "run_cross_page_passes",
]
