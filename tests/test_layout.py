"""Tests for layout detection stage."""

import pytest

from conftest import make_chunk, make_grid
from docroute.models import (
    BoundingBox,
    Caption,
    Figure,
    Heading,
    ImageChunk,
    ListBlock,
    Paragraph,
    Table,
    TextLine,
)
from docroute.pipeline.context import ProcessingContext
from docroute.pipeline.stage_layout import (
    body_font_size,
    detect_captions,
    detect_figures,
    detect_headings,
    detect_lists,
    detect_paragraphs,
    match_list_label,
    merge_text_lines,
)
from docroute.pipeline.stage_local import process_page, run_local_path


@pytest.fixture
def context():
    return ProcessingContext(document_name="sample.pdf", page_sizes={0: (612.0, 792.0)})


def _paragraphs(*chunks):
    return detect_paragraphs(merge_text_lines(list(chunks)))


class TestListLabels:
    """Tests for list label matching."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("• Apples", ("bullet", "•")),
            ("- Pears", ("bullet", "-")),
            ("1. First", ("arabic", "1.")),
            ("(2) Second", ("arabic", "(2)")),
            ("iv. Fourth", ("roman", "iv.")),
            ("b) Beta", ("alpha", "b)")),
        ],
    )
    def test_labels(self, text, expected):
        assert match_list_label(text) == expected

    def test_plain_text(self):
        assert match_list_label("Revenue grew by 4%.") is None


class TestTextLines:
    """Tests for chunk to line merging."""

    def test_same_baseline_merged(self):
        """Chunks on one baseline form a single line, left to right."""
        lines = merge_text_lines([make_chunk(0, "world", 200, 700), make_chunk(0, "Hello", 72, 700)])
        assert len(lines) == 1
        assert isinstance(lines[0], TextLine)
        assert lines[0].text == "Hello world"

    def test_separate_lines(self):
        lines = merge_text_lines([make_chunk(0, "second", 72, 680), make_chunk(0, "first", 72, 700)])
        assert [line.text for line in lines] == ["first", "second"]


class TestParagraphs:
    """Tests for line to paragraph grouping."""

    def test_consecutive_lines_grouped(self):
        result = _paragraphs(
            make_chunk(0, "The first line", 72, 700, width=300),
            make_chunk(0, "continues here.", 72, 686, width=300),
            make_chunk(0, "A new block.", 72, 600, width=300),
        )
        assert [p.text for p in result] == ["The first line\ncontinues here.", "A new block."]
        assert all(isinstance(p, Paragraph) for p in result)

    def test_font_change_splits(self):
        result = _paragraphs(
            make_chunk(0, "Big", 72, 700, size=20),
            make_chunk(0, "small", 72, 678, size=10),
        )
        assert len(result) == 2

    def test_other_objects_kept(self):
        image = ImageChunk(bbox=BoundingBox(page_index=0, left=0, bottom=0, right=10, top=10))
        result = detect_paragraphs([image])
        assert result == [image]


class TestLists:
    """Tests for list detection."""

    def test_numbered_list(self):
        result = detect_lists(
            _paragraphs(
                make_chunk(0, "1. Install the package", 72, 700, width=300),
                make_chunk(0, "2. Run the command", 72, 686, width=300),
                make_chunk(0, "Afterwards, check the logs.", 72, 650, width=300),
            )
        )
        assert isinstance(result[0], ListBlock)
        assert result[0].numbering_style == "arabic"
        assert [item.label for item in result[0].items] == ["1.", "2."]
        assert type(result[1]) is Paragraph

    def test_style_change_starts_new_list(self):
        result = detect_lists(
            _paragraphs(
                make_chunk(0, "1. One", 72, 700),
                make_chunk(0, "• Dot", 72, 686),
            )
        )
        assert [block.numbering_style for block in result] == ["arabic", "bullet"]


class TestHeadings:
    """Tests for heading detection."""

    def test_large_text_is_heading(self):
        contents = _paragraphs(
            make_chunk(0, "Introduction", 72, 720, size=18),
            make_chunk(0, "This is the body text of the section.", 72, 690, width=400),
            make_chunk(0, "It has two lines of ordinary text.", 72, 676, width=400),
        )
        result = detect_headings(contents)
        assert isinstance(result[0], Heading)
        assert result[0].heading_level is None
        assert type(result[1]) is Paragraph

    def test_sentence_is_not_heading(self):
        contents = _paragraphs(
            make_chunk(0, "A large sentence.", 72, 720, size=18),
            make_chunk(0, "Body text that sets the median size here", 72, 690, width=400),
        )
        assert type(detect_headings(contents)[0]) is Paragraph

    def test_body_font_size(self):
        contents = _paragraphs(
            make_chunk(0, "Hi", 72, 720, size=30),
            make_chunk(0, "Much longer body text at the normal size", 72, 600, width=400),
        )
        assert body_font_size(contents) == 12.0


class TestFiguresAndCaptions:
    """Tests for figures and caption linking."""

    def test_figures_numbered_per_document(self, context):
        big = ImageChunk(bbox=BoundingBox(page_index=0, left=72, bottom=400, right=372, top=600))
        tiny = ImageChunk(bbox=BoundingBox(page_index=0, left=0, bottom=0, right=10, top=10))
        first = detect_figures([big, tiny], context)
        second = detect_figures([big], context)
        assert [type(obj) for obj in first] == [Figure]
        assert first[0].image_index == 1
        assert second[0].image_index == 2

    def test_caption_linked_to_figure(self, context):
        figure = Figure(bbox=BoundingBox(page_index=0, left=72, bottom=400, right=372, top=600), image_index=1)
        contents = [figure] + _paragraphs(make_chunk(0, "Figure 1: Quarterly revenue", 72, 390, width=250))
        context.assign_ids(contents)

        result = detect_captions(contents)

        caption = result[1]
        assert isinstance(caption, Caption)
        assert caption.linked_content_id == figure.content_id
        assert figure.caption_text == "Figure 1: Quarterly revenue"

    def test_distant_caption_not_linked(self, context):
        figure = Figure(bbox=BoundingBox(page_index=0, left=72, bottom=400, right=372, top=600), image_index=1)
        contents = [figure] + _paragraphs(make_chunk(0, "Figure 1: Far away", 72, 300, width=250))
        context.assign_ids(contents)
        assert type(detect_captions(contents)[1]) is Paragraph


class TestLocalPath:
    """Tests for the per-page local passes."""

    def test_process_page(self, context):
        """A page with a heading, text and a ruled table."""
        contents = [
            make_chunk(0, "Summary", 72, 740, size=18),
            make_chunk(0, "The table below lists the totals.", 72, 700, width=400),
            make_chunk(0, "Table 1: Totals", 72, 535, width=200),
            make_chunk(0, "North", 80, 515, width=60, size=10),
            make_chunk(0, "12", 180, 515, width=30, size=10),
        ] + make_grid(0, 72, 520, [100, 100], 20, 1)

        result = process_page(contents, context)

        kinds = [type(obj) for obj in result]
        assert kinds == [Heading, Paragraph, Caption, Table]
        table = result[3]
        assert table.get_cell(0, 0).text == "North"
        assert table.get_cell(0, 1).text == "12"
        assert result[2].linked_content_id == table.content_id
        assert all(obj.content_id is not None for obj in result)

    def test_failed_page_keeps_filtered_contents(self, context, monkeypatch):
        def explode(contents, context):
            raise RuntimeError("broken page")

        monkeypatch.setattr("docroute.pipeline.stage_local.process_page", explode)
        chunk = make_chunk(0, "text", 72, 700)
        result = run_local_path({0: [chunk]}, [0], context)
        assert [c.text for c in result[0]] == ["text"]
        assert result[0][0] is not chunk

    def test_inputs_not_mutated(self, context):
        chunks = [make_chunk(0, "Hello", 72, 700)]
        run_local_path({0: chunks}, [0], context)
        assert chunks[0].content_id is None
