"""Hybrid Orchestrator - Route pages between local and remote processing.

Processing flow for one document:
1. Filter every in-scope page
2. Triage in-scope pages (LOCAL or REMOTE)
3. Local path over LOCAL pages, remote path over REMOTE pages, concurrently
4. On remote failure, re-run REMOTE pages locally (if fallback is enabled)
5. Merge results by page index
6. Cross-page passes on the merged document

The result has one content list per document page; pages outside the
selection are empty lists.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from docroute.config import FilterConfig, HybridConfig, build_filter_config
from docroute.errors import BackendError, BackendResponseError, ProcessingError
from docroute.hybrid.registry import ClientRegistry, default_registry
from docroute.models import (
    ContentObject,
    HybridRequest,
    OutputFormat,
    TriageDecision,
    TriageResult,
    TriageSignals,
)
from docroute.pipeline.context import ProcessingContext
from docroute.pipeline.stage_cont import run_cross_page_passes
from docroute.pipeline.stage_filter import PageContentFilter, default_filter
from docroute.pipeline.stage_local import run_local_path
from docroute.pipeline.stage_triage import TriageEngine, log_triage_summary
from docroute.pipeline.triage_log import write_triage_log

logger = logging.getLogger(__name__)

PageMap = dict[int, list[ContentObject]]

# Markdown and HTML are never requested; output is built from the content model
REMOTE_OUTPUT_FORMATS = frozenset({OutputFormat.JSON})


@runtime_checkable
class Document(Protocol):
    """What the orchestrator and the default content filter need from a loaded document."""

    name: str

    @property
    def page_count(self) -> int: ...

    def page_sizes(self) -> dict[int, tuple[float, float]]: ...

    def read_bytes(self) -> bytes: ...

    def page(self, page_index: int) -> Any: ...


class HybridOrchestrator:
    """Coordinates filtering, triage, both processing paths and the merge.

    Usage:
        orchestrator = HybridOrchestrator(hybrid_config)
        with PdfDocument.open(path) as document:
            pages = orchestrator.process(document, output_dir=out)
    """

    def __init__(
        self,
        config: HybridConfig,
        filter_config: Optional[FilterConfig] = None,
        content_filter: Optional[PageContentFilter] = None,
        triage_engine: Optional[TriageEngine] = None,
        registry: Optional[ClientRegistry] = None,
        triage_log: bool = True,
    ):
        """Initialize orchestrator.

        Args:
            config: Hybrid configuration; backend None keeps every page local.
            filter_config: Content filter options (from settings if None).
            content_filter: Page content filter (PyMuPDF filter if None).
            triage_engine: Triage engine (default signals and policy if None).
            registry: Client registry (process-wide registry if None).
            triage_log: Write ``<stem>_triage.json`` when an output dir is given.
        """
        self.config = config
        self.filter_config = filter_config or build_filter_config()
        self.content_filter = content_filter or default_filter
        self.triage_engine = triage_engine or TriageEngine()
        self.registry = registry or default_registry
        self.triage_log = triage_log

    # Public API

    def process(
        self,
        document: Document,
        page_selection: Optional[set[int]] = None,
        output_dir: Optional[Path] = None,
    ) -> list[list[ContentObject]]:
        """Process a document, running the remote path on a worker thread.

        Args:
            document: Loaded document.
            page_selection: 0-indexed pages to process; all pages if None.
            output_dir: Where to write the triage log; no log if None.

        Returns:
            One content list per page, in page order.

        Raises:
            ProcessingError: With the failing stage if the document cannot
                be processed as a whole.
        """
        context, filtered, local_pages, remote_pages = self._prepare(
            document, page_selection, output_dir
        )

        remote_results: PageMap = {}
        remote_error: Optional[BackendError] = None
        if remote_pages:
            with ThreadPoolExecutor(max_workers=1, thread_name_prefix="docroute-remote") as executor:
                future = executor.submit(self._run_remote_path, document, remote_pages, context)
                local_results = run_local_path(filtered, local_pages, context)
                try:
                    remote_results = future.result()
                except BackendError as e:
                    remote_error = e
        else:
            local_results = run_local_path(filtered, local_pages, context)

        if remote_error is not None:
            remote_results = self._fallback(document, filtered, remote_pages, context, remote_error)

        return self._finish(document, context, page_selection, local_results, remote_results)

    async def process_async(
        self,
        document: Document,
        page_selection: Optional[set[int]] = None,
        output_dir: Optional[Path] = None,
    ) -> list[list[ContentObject]]:
        """Coroutine variant of ``process``.

        The remote request runs as a task on the running loop while the
        local path runs in a worker thread. Cancelling the coroutine
        cancels the remote task.
        """
        context, filtered, local_pages, remote_pages = self._prepare(
            document, page_selection, output_dir
        )

        remote_task = None
        if remote_pages:
            remote_task = asyncio.create_task(
                self._run_remote_path_async(document, remote_pages, context)
            )

        try:
            local_results = await asyncio.to_thread(run_local_path, filtered, local_pages, context)
        except BaseException:
            if remote_task is not None:
                remote_task.cancel()
            raise

        remote_results: PageMap = {}
        if remote_task is not None:
            try:
                remote_results = await remote_task
            except BackendError as e:
                remote_results = self._fallback(document, filtered, remote_pages, context, e)

        return self._finish(document, context, page_selection, local_results, remote_results)

    # Phases

    def _prepare(
        self,
        document: Document,
        page_selection: Optional[set[int]],
        output_dir: Optional[Path],
    ) -> tuple[ProcessingContext, PageMap, list[int], list[int]]:
        """Filter, triage and split the in-scope pages."""
        page_count = document.page_count
        in_scope = self._in_scope(page_count, page_selection)
        logger.info(
            f"Starting hybrid processing for {document.name}: "
            f"{len(in_scope)} of {page_count} page(s)"
        )

        context = ProcessingContext(document_name=document.name, page_sizes=document.page_sizes())
        filtered = self._filter_pages(document, in_scope)
        results = self._triage(document, filtered, in_scope, context, output_dir)

        local_pages = sorted(p for p, r in results.items() if r.decision == TriageDecision.LOCAL)
        remote_pages = sorted(p for p, r in results.items() if r.decision == TriageDecision.REMOTE)
        logger.info(
            f"Routing: {len(local_pages)} page(s) to local, {len(remote_pages)} page(s) to backend"
        )
        return context, filtered, local_pages, remote_pages

    @staticmethod
    def _in_scope(page_count: int, page_selection: Optional[set[int]]) -> list[int]:
        if page_selection is None:
            return list(range(page_count))
        return sorted(p for p in page_selection if 0 <= p < page_count)

    def _filter_pages(self, document: Document, in_scope: list[int]) -> PageMap:
        filtered: PageMap = {}
        for page_index in in_scope:
            try:
                filtered[page_index] = self.content_filter.filter(
                    document, page_index, self.filter_config
                )
            except Exception as e:
                raise ProcessingError(
                    "filter", document.name, f"page {page_index + 1}: {e}"
                ) from e
        return filtered

    def _triage(
        self,
        document: Document,
        filtered: PageMap,
        in_scope: list[int],
        context: ProcessingContext,
        output_dir: Optional[Path],
    ) -> dict[int, TriageResult]:
        if not self.config.enabled:
            logger.info("Hybrid processing is off: all pages to local")
            return {page: TriageResult.local(page, 1.0, TriageSignals.empty()) for page in in_scope}

        try:
            results = self.triage_engine.triage_all_pages(
                filtered, self.config, pages=in_scope, page_sizes=context.page_sizes
            )
        except Exception as e:
            raise ProcessingError("triage", document.name, str(e)) from e

        log_triage_summary(results)
        if output_dir is not None and self.triage_log:
            write_triage_log(
                output_dir,
                document.name,
                self.config.backend.value,
                self.config.mode.value,
                results,
            )
        return results

    def _build_request(self, document: Document) -> HybridRequest:
        # The whole document is sent; pages not routed remote are dropped on merge
        return HybridRequest.for_all_pages(document.read_bytes(), REMOTE_OUTPUT_FORMATS)

    def _transform(
        self,
        response,
        remote_pages: list[int],
        context: ProcessingContext,
    ) -> PageMap:
        strategy = self.registry.strategy_for(self.config.backend)
        transformer = strategy.create_transformer()
        transformed = transformer.transform(response, context.page_heights(remote_pages))
        return {
            page: transformed[page] if page < len(transformed) else []
            for page in remote_pages
        }

    def _run_remote_path(
        self,
        document: Document,
        remote_pages: list[int],
        context: ProcessingContext,
    ) -> PageMap:
        client = self.registry.get_or_create(self.config)
        logger.info(f"Processing {len(remote_pages)} page(s) via {client.name} backend")
        try:
            response = client.convert(self._build_request(document))
            return self._transform(response, remote_pages, context)
        except BackendError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise _malformed(client.name, e) from e

    async def _run_remote_path_async(
        self,
        document: Document,
        remote_pages: list[int],
        context: ProcessingContext,
    ) -> PageMap:
        client = self.registry.get_or_create(self.config)
        logger.info(f"Processing {len(remote_pages)} page(s) via {client.name} backend")
        try:
            response = await client.convert_async(self._build_request(document))
            return self._transform(response, remote_pages, context)
        except BackendError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise _malformed(client.name, e) from e

    def _fallback(
        self,
        document: Document,
        filtered: PageMap,
        remote_pages: list[int],
        context: ProcessingContext,
        error: BackendError,
    ) -> PageMap:
        logger.warning(f"Backend processing failed: {error}")
        if not self.config.fallback:
            raise ProcessingError(
                "remote", document.name, f"backend failed and fallback is disabled: {error}"
            ) from error
        logger.info(f"Falling back to local processing for {len(remote_pages)} page(s)")
        return run_local_path(filtered, remote_pages, context)

    def _finish(
        self,
        document: Document,
        context: ProcessingContext,
        page_selection: Optional[set[int]],
        local_results: PageMap,
        remote_results: PageMap,
    ) -> list[list[ContentObject]]:
        try:
            pages = merge_results(
                document.page_count,
                self._in_scope(document.page_count, page_selection),
                local_results,
                remote_results,
            )
            for contents in pages:
                context.assign_ids(contents)
            return run_cross_page_passes(pages, context)
        except Exception as e:
            raise ProcessingError("merge", document.name, str(e)) from e


def merge_results(
    page_count: int,
    in_scope: list[int],
    local_results: PageMap,
    remote_results: PageMap,
) -> list[list[ContentObject]]:
    """One list per page: local result, else remote result, else empty."""
    pages: list[list[ContentObject]] = [[] for _ in range(page_count)]
    for page in in_scope:
        if page in local_results:
            pages[page] = local_results[page]
        elif page in remote_results:
            pages[page] = remote_results[page]
    return pages


def _malformed(backend: str, error: Exception) -> BackendError:
    return BackendResponseError(f"{backend} response could not be transformed: {error}", backend=backend)
