"""Docling Serve backend.

The client uses the asynchronous conversion API: upload the PDF as a
multipart form, poll the task status, then fetch the converted document.
The transformer maps a DoclingDocument JSON tree (points, either origin)
into content objects.
"""

import json
import logging
from typing import Any, Optional

from docroute.errors import BackendAnalysisError, BackendResponseError
from docroute.hybrid.base import BackendClient, SchemaTransformer
from docroute.hybrid.geometry import (
    DEFAULT_PAGE_HEIGHT,
    GridCell,
    TransformCursor,
    build_table_cells,
    edges_to_bbox,
    make_paragraph,
    sort_by_reading_order,
)
from docroute.hybrid.polling import PollResult
from docroute.models import (
    BackendType,
    BoundingBox,
    Caption,
    ContentObject,
    Figure,
    Formula,
    Heading,
    HybridRequest,
    HybridResponse,
    OutputFormat,
    Paragraph,
    Table,
)

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:5002"
SUBMIT_PATH = "/v1/convert/file/async"
STATUS_PATH = "/v1/status/poll/{task_id}"
RESULT_PATH = "/v1/result/{task_id}"
API_KEY_HEADER = "X-Api-Key"

# OutputFormat -> docling-serve ``to_formats`` value
FORMAT_NAMES = {
    OutputFormat.JSON: "json",
    OutputFormat.MARKDOWN: "md",
    OutputFormat.HTML: "html",
}

TASK_SUCCESS = "success"
TASK_FAILURE = "failure"

# Text labels
LABEL_TITLE = "title"
LABEL_SECTION_HEADER = "section_header"
LABEL_PAGE_HEADER = "page_header"
LABEL_PAGE_FOOTER = "page_footer"
LABEL_CAPTION = "caption"
LABEL_LIST_ITEM = "list_item"
LABEL_FORMULA = "formula"

HEADING_LABELS = {
    LABEL_TITLE: 1,
    LABEL_SECTION_HEADER: 2,
}

FURNITURE_LABELS = frozenset({LABEL_PAGE_HEADER, LABEL_PAGE_FOOTER})


class DoclingClient(BackendClient):
    """Client for a Docling Serve instance.

    An API key is optional; when configured it is sent as X-Api-Key.
    """

    backend_type = BackendType.DOCLING

    def __init__(self, config, default_url=DEFAULT_URL, session=None, poller=None):
        super().__init__(config, default_url=default_url, session=session, poller=poller)

    def _headers(self) -> dict[str, str]:
        if self.api_key:
            return {API_KEY_HEADER: self.api_key}
        return {}

    def _submit(self, request: HybridRequest) -> str:
        form: dict[str, Any] = {
            "to_formats": sorted(FORMAT_NAMES[fmt] for fmt in request.output_formats),
        }
        if not request.all_pages and request.page_numbers:
            # The server takes a contiguous range; unrequested pages are ignored on merge
            form["page_range"] = [str(min(request.page_numbers)), str(max(request.page_numbers))]

        logger.info(f"Submitting {len(request.pdf_bytes)} bytes to Docling Serve")
        with self._send(
            "POST",
            f"{self.base_url}{SUBMIT_PATH}",
            files={"files": ("document.pdf", request.pdf_bytes, "application/pdf")},
            data=form,
            headers=self._headers(),
        ) as response:
            body = self._read_json(response, "submit")

        task_id = body.get("task_id")
        if not task_id:
            raise BackendResponseError("Docling response missing task_id", backend=self.name)
        return str(task_id)

    def _poll_once(self, handle: str) -> PollResult:
        url = f"{self.base_url}{STATUS_PATH.format(task_id=handle)}"
        with self._send("GET", url, headers=self._headers()) as response:
            body = self._read_json(response, "poll")

        status = str(body.get("task_status", "")).lower()
        if status == TASK_SUCCESS:
            return PollResult.succeeded(body)
        if status == TASK_FAILURE:
            detail = body.get("error_message") or body.get("task_meta")
            return PollResult.failed(json.dumps(detail) if detail else "Unknown error")
        return PollResult.running()

    def _fetch_result(self, handle: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{RESULT_PATH.format(task_id=handle)}"
        with self._send("GET", url, headers=self._headers()) as response:
            body = self._read_json(response, "result")

        if str(body.get("status", TASK_SUCCESS)).lower() == TASK_FAILURE:
            errors = body.get("errors") or []
            raise BackendAnalysisError(
                f"Docling conversion failed: {json.dumps(errors)}",
                detail=json.dumps(errors),
                backend=self.name,
            )
        document = body.get("document")
        if not isinstance(document, dict):
            raise BackendResponseError("Docling result missing document", backend=self.name)
        return document

    def _build_response(self, result: dict[str, Any]) -> HybridResponse:
        json_content = result.get("json_content")
        if json_content is not None and not isinstance(json_content, dict):
            raise BackendResponseError("Docling json_content is not an object", backend=self.name)
        if json_content is None and not result.get("md_content") and not result.get("html_content"):
            raise BackendResponseError("Docling result has no content", backend=self.name)

        page_contents: dict[int, dict[str, Any]] = {}
        for key, page in ((json_content or {}).get("pages") or {}).items():
            try:
                page_contents[int(key)] = page
            except (TypeError, ValueError):
                logger.debug(f"Ignoring page entry with non-numeric key {key!r}")

        return HybridResponse(
            markdown=result.get("md_content"),
            html=result.get("html_content"),
            json_content=json_content,
            page_contents=page_contents,
        )


class DoclingSchemaTransformer(SchemaTransformer):
    """Transforms a DoclingDocument tree into per-page content lists.

    Label mapping: title -> heading 1, section_header -> heading 2,
    page_header/page_footer dropped, caption -> caption, list_item ->
    paragraph prefixed with its marker, formula -> formula, pictures ->
    figures, tables -> tables, every other text label -> paragraph.
    """

    backend_type = BackendType.DOCLING

    def transform(
        self,
        response: HybridResponse,
        page_heights: Optional[dict[int, float]] = None,
    ) -> list[list[ContentObject]]:
        root = response.json_content
        if root is None:
            logger.warning("Docling response has no JSON content, returning empty result")
            return []

        cursor = TransformCursor()
        page_heights = dict(page_heights or {})
        backend_heights = self._page_heights(root)
        for page_number, height in backend_heights.items():
            page_heights.setdefault(page_number, height)

        if page_heights:
            page_count = max(page_heights)
        else:
            page_count = 1
        result: list[list[ContentObject]] = [[] for _ in range(page_count)]

        texts = root.get("texts") or []
        for item in texts:
            self._add_text(item, result, page_heights)

        for table in root.get("tables") or []:
            self._add_table(table, result, page_heights)

        for picture in root.get("pictures") or []:
            self._add_picture(picture, texts, result, page_heights, cursor)

        for contents in result:
            sort_by_reading_order(contents)
        return result

    @staticmethod
    def _page_heights(root: dict[str, Any]) -> dict[int, float]:
        heights = {}
        for key, page in (root.get("pages") or {}).items():
            try:
                page_number = int(key)
            except (TypeError, ValueError):
                continue
            size = page.get("size") or {}
            if "height" in size:
                heights[page_number] = float(size["height"])
        return heights

    @staticmethod
    def _page_list(result: list[list[ContentObject]], page_index: int) -> list[ContentObject]:
        while len(result) <= page_index:
            result.append([])
        return result[page_index]

    def _locate(
        self,
        item: dict[str, Any],
        result: list[list[ContentObject]],
        page_heights: dict[int, float],
    ) -> tuple[list[ContentObject], BoundingBox]:
        provs = item.get("prov") or []
        prov = provs[0] if provs else {}
        page_number = prov.get("page_no", 1)
        page_index = max(page_number - 1, 0)
        page_height = page_heights.get(page_number, DEFAULT_PAGE_HEIGHT)

        box = prov.get("bbox")
        if box:
            bbox = edges_to_bbox(
                float(box.get("l", 0.0)),
                float(box.get("t", 0.0)),
                float(box.get("r", 0.0)),
                float(box.get("b", 0.0)),
                page_index,
                page_height,
                origin=box.get("coord_origin", "BOTTOMLEFT"),
            )
        else:
            bbox = BoundingBox.empty(page_index)
        return self._page_list(result, page_index), bbox

    def _add_text(self, item, result, page_heights) -> None:
        label = item.get("label", "text")
        if label in FURNITURE_LABELS:
            return

        contents, bbox = self._locate(item, result, page_heights)
        text = item.get("text", "")
        source = self.backend_type.value

        if label in HEADING_LABELS:
            obj = make_paragraph(text, bbox, source, cls=Heading, heading_level=HEADING_LABELS[label])
        elif label == LABEL_CAPTION:
            obj = make_paragraph(text, bbox, source, cls=Caption)
        elif label == LABEL_FORMULA:
            obj = Formula(bbox=bbox, source=source, source_text=text)
        elif label == LABEL_LIST_ITEM:
            marker = (item.get("marker") or "").strip()
            obj = make_paragraph(f"{marker} {text}" if marker else text, bbox, source, cls=Paragraph)
        else:
            obj = make_paragraph(text, bbox, source, cls=Paragraph)
        contents.append(obj)

    def _add_table(self, item, result, page_heights) -> None:
        data = item.get("data") or {}
        num_rows = data.get("num_rows", 0)
        num_cols = data.get("num_cols", 0)
        if num_rows <= 0 or num_cols <= 0:
            return

        contents, bbox = self._locate(item, result, page_heights)
        cells = [
            GridCell(
                row=cell.get("start_row_offset_idx", 0),
                col=cell.get("start_col_offset_idx", 0),
                row_span=cell.get("row_span", 1),
                col_span=cell.get("col_span", 1),
                text=cell.get("text", ""),
                is_header=bool(cell.get("column_header", False)),
            )
            for cell in data.get("table_cells") or []
        ]
        contents.append(
            Table(
                bbox=bbox,
                source=self.backend_type.value,
                num_rows=num_rows,
                num_cols=num_cols,
                cells=build_table_cells(bbox, num_rows, num_cols, cells, self.backend_type.value),
            )
        )

    def _add_picture(self, item, texts, result, page_heights, cursor: TransformCursor) -> None:
        contents, bbox = self._locate(item, result, page_heights)
        contents.append(
            Figure(
                bbox=bbox,
                source=self.backend_type.value,
                image_index=cursor.next_figure_index(),
                caption_text=self._caption_text(item, texts),
            )
        )

    @staticmethod
    def _caption_text(item: dict[str, Any], texts: list[dict[str, Any]]) -> Optional[str]:
        """Resolve '#/texts/N' caption references to their text."""
        parts = []
        for ref in item.get("captions") or []:
            pointer = ref.get("$ref", "") if isinstance(ref, dict) else str(ref)
            prefix = "#/texts/"
            if not pointer.startswith(prefix):
                continue
            try:
                index = int(pointer[len(prefix):])
            except ValueError:
                continue
            if 0 <= index < len(texts) and texts[index].get("text"):
                parts.append(texts[index]["text"])
        return " ".join(parts) or None
