"""Tests for the hybrid orchestrator."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeDocument, FakeFilter, make_chunk, make_grid
from docroute.config import HybridConfig
from docroute.errors import BackendHTTPError, BackendTimeoutError, ProcessingError
from docroute.hybrid.geometry import make_paragraph
from docroute.hybrid.registry import BackendStrategy, ClientRegistry
from docroute.models import (
    BackendType,
    BoundingBox,
    Heading,
    HybridResponse,
    Paragraph,
    TriageMode,
)
from docroute.pipeline.context import ProcessingContext
from docroute.pipeline.orchestrator import HybridOrchestrator, merge_results


def _text_page(page_index):
    return [
        make_chunk(page_index, "Overview", 72, 720, size=18),
        make_chunk(page_index, f"Body text on page {page_index + 1} starts here", 72, 690, width=400),
        make_chunk(page_index, "and continues on a second line.", 72, 676, width=400),
    ]


def _remote_page(page_index, text):
    bbox = BoundingBox(page_index=page_index, left=72, bottom=600, right=400, top=620)
    return [make_paragraph(text, bbox, "docling")]


@pytest.fixture
def content_filter():
    return FakeFilter({i: _text_page(i) for i in range(3)})


@pytest.fixture
def client():
    client = MagicMock()
    client.name = "docling"
    client.convert.return_value = HybridResponse(json_content={"texts": []})
    client.convert_async = AsyncMock(return_value=HybridResponse(json_content={"texts": []}))
    return client


@pytest.fixture
def transformer():
    transformer = MagicMock()
    transformer.transform.return_value = [_remote_page(i, f"Remote page {i + 1}") for i in range(3)]
    return transformer


@pytest.fixture
def registry(client, transformer):
    strategy = BackendStrategy(
        backend_type=BackendType.DOCLING,
        client_factory=lambda config, default_url=None: client,
        transformer_factory=lambda: transformer,
    )
    return ClientRegistry({BackendType.DOCLING: strategy})


def _orchestrator(config, content_filter, registry, **kwargs):
    return HybridOrchestrator(config, content_filter=content_filter, registry=registry, **kwargs)


def _outline(pages):
    return [[(type(obj).__name__, getattr(obj, "text", None)) for obj in page] for page in pages]


class TestLocalOnly:
    """Tests with hybrid processing off."""

    def test_all_pages_local(self, fake_document, content_filter, registry, client):
        pages = _orchestrator(HybridConfig(), content_filter, registry).process(fake_document)

        assert len(pages) == 3
        for index, page in enumerate(pages):
            assert isinstance(page[0], Heading)
            assert page[0].heading_level == 1
            assert type(page[1]) is Paragraph
            assert page[1].text.startswith(f"Body text on page {index + 1}")
            assert all(obj.source == "local" for obj in page)
        client.convert.assert_not_called()

    def test_unique_content_ids(self, fake_document, content_filter, registry):
        pages = _orchestrator(HybridConfig(), content_filter, registry).process(fake_document)
        ids = [obj.content_id for page in pages for obj in page]
        assert None not in ids
        assert len(ids) == len(set(ids))

    def test_page_selection(self, fake_document, content_filter, registry):
        """Pages outside the selection are empty and never filtered."""
        pages = _orchestrator(HybridConfig(), content_filter, registry).process(
            fake_document, page_selection={0, 2}
        )
        assert pages[1] == []
        assert pages[0] and pages[2]
        assert content_filter.calls == [0, 2]

    def test_no_triage_log_when_off(self, fake_document, content_filter, registry, output_dir):
        _orchestrator(HybridConfig(), content_filter, registry).process(fake_document, output_dir=output_dir)
        assert not (output_dir / "sample_triage.json").exists()


class TestRemotePath:
    """Tests with a backend configured."""

    def test_full_mode(self, fake_document, content_filter, registry, client, transformer, full_mode_config):
        pages = _orchestrator(full_mode_config, content_filter, registry).process(fake_document)

        assert _outline(pages) == [[("Paragraph", f"Remote page {i + 1}")] for i in range(3)]
        assert all(page[0].source == "docling" for page in pages)
        assert all(page[0].content_id is not None for page in pages)

        request = client.convert.call_args.args[0]
        assert request.pdf_bytes == fake_document.read_bytes()
        assert request.all_pages
        assert transformer.transform.call_args.args[1] == {1: 792.0, 2: 792.0, 3: 792.0}

    def test_mixed_routing(self, client, transformer, registry):
        """Pages triaged REMOTE take backend output, the rest are local."""
        document = FakeDocument(page_count=2)
        content_filter = FakeFilter({0: _text_page(0), 1: make_grid(1, 72, 500, [100, 100, 100], 20, 3)})
        config = HybridConfig(backend=BackendType.DOCLING, mode=TriageMode.AUTO)

        pages = _orchestrator(config, content_filter, registry).process(document)

        assert pages[0][0].source == "local"
        assert _outline([pages[1]]) == [[("Paragraph", "Remote page 2")]]
        assert transformer.transform.call_args.args[1] == {2: 792.0}
        request = client.convert.call_args.args[0]
        assert request.all_pages
        assert request.pdf_bytes == document.read_bytes()

    def test_fallback_matches_local_result(self, fake_document, content_filter, registry, client, full_mode_config):
        """With the backend down, the result equals a local-only run."""
        client.convert.side_effect = BackendHTTPError("unavailable", status_code=503)

        fallback = _orchestrator(full_mode_config, content_filter, registry).process(fake_document)
        local_only = _orchestrator(HybridConfig(), content_filter, registry).process(fake_document)

        assert _outline(fallback) == _outline(local_only)

    def test_fallback_disabled(self, fake_document, content_filter, registry, client):
        client.convert.side_effect = BackendTimeoutError("slow", backend="docling")
        config = HybridConfig(backend=BackendType.DOCLING, mode=TriageMode.FULL, fallback=False)

        with pytest.raises(ProcessingError) as exc_info:
            _orchestrator(config, content_filter, registry).process(fake_document)

        assert exc_info.value.stage == "remote"
        assert isinstance(exc_info.value.__cause__, BackendTimeoutError)

    def test_malformed_response_falls_back(self, fake_document, content_filter, registry, transformer, full_mode_config):
        """Transformer errors on a malformed tree count as backend failures."""
        transformer.transform.side_effect = KeyError("pages")
        pages = _orchestrator(full_mode_config, content_filter, registry).process(fake_document)
        assert all(obj.source == "local" for page in pages for obj in page)

    def test_short_transform_result(self, fake_document, content_filter, registry, transformer, full_mode_config):
        """Pages the backend did not return are empty."""
        transformer.transform.return_value = [_remote_page(0, "Only page")]
        pages = _orchestrator(full_mode_config, content_filter, registry).process(fake_document)
        assert _outline(pages) == [[("Paragraph", "Only page")], [], []]

    def test_triage_log_written(self, fake_document, content_filter, registry, full_mode_config, output_dir):
        _orchestrator(full_mode_config, content_filter, registry).process(fake_document, output_dir=output_dir)

        log = json.loads((output_dir / "sample_triage.json").read_text(encoding="utf-8"))
        assert log["backend"] == "docling"
        assert log["mode"] == "full"
        assert log["summary"] == {"LOCAL": 0, "REMOTE": 3}
        assert [page["page"] for page in log["pages"]] == [1, 2, 3]

    def test_triage_log_disabled(self, fake_document, content_filter, registry, full_mode_config, output_dir):
        orchestrator = _orchestrator(full_mode_config, content_filter, registry, triage_log=False)
        orchestrator.process(fake_document, output_dir=output_dir)
        assert not (output_dir / "sample_triage.json").exists()


class TestAsync:
    """Tests for the coroutine variant."""

    def test_full_mode(self, fake_document, content_filter, registry, client, full_mode_config):
        pages = asyncio.run(
            _orchestrator(full_mode_config, content_filter, registry).process_async(fake_document)
        )
        assert _outline(pages)[0] == [("Paragraph", "Remote page 1")]
        client.convert_async.assert_awaited_once()
        client.convert.assert_not_called()

    def test_fallback(self, fake_document, content_filter, registry, client, full_mode_config):
        client.convert_async.side_effect = BackendHTTPError("unavailable", status_code=502)
        pages = asyncio.run(
            _orchestrator(full_mode_config, content_filter, registry).process_async(fake_document)
        )
        local_only = _orchestrator(HybridConfig(), content_filter, registry).process(fake_document)
        assert _outline(pages) == _outline(local_only)


class TestFailures:
    """Tests for whole-document failures."""

    def test_filter_failure(self, fake_document, registry):
        content_filter = MagicMock()
        content_filter.filter.side_effect = RuntimeError("corrupt content stream")

        with pytest.raises(ProcessingError) as exc_info:
            _orchestrator(HybridConfig(), content_filter, registry).process(fake_document)

        assert exc_info.value.stage == "filter"
        assert "sample.pdf" in str(exc_info.value)

    def test_triage_failure(self, fake_document, content_filter, registry):
        engine = MagicMock()
        engine.triage_all_pages.side_effect = RuntimeError("bad signals")
        config = HybridConfig(backend=BackendType.DOCLING)

        with pytest.raises(ProcessingError) as exc_info:
            _orchestrator(config, content_filter, registry, triage_engine=engine).process(fake_document)

        assert exc_info.value.stage == "triage"


class TestMerge:
    """Tests for merging per-page results."""

    def test_merge_results(self):
        local = {0: ["local-0"]}
        remote = {2: ["remote-2"]}
        assert merge_results(4, [0, 2, 3], local, remote) == [["local-0"], [], ["remote-2"], []]

    def test_context_ids_kept(self):
        context = ProcessingContext(document_name="x.pdf")
        bbox = BoundingBox(page_index=0, left=0, bottom=0, right=1, top=1)
        first = make_paragraph("a", bbox, "local")
        first.content_id = 99
        second = make_paragraph("b", bbox, "local")
        context.assign_ids([first, second])
        assert first.content_id == 99
        assert second.content_id == 1

    def test_context_page_heights(self):
        context = ProcessingContext(document_name="x.pdf", page_sizes={0: (612.0, 792.0), 1: (595.0, 842.0)})
        assert context.page_heights() == {1: 792.0, 2: 842.0}
        assert context.page_heights([1, 5]) == {2: 842.0, 6: 792.0}
