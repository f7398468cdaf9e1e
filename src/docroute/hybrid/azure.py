"""Azure Document Intelligence backend.

The client drives the prebuilt-layout model: POST the raw PDF, follow the
Operation-Location header, poll until the analysis finishes. The transformer
maps the ``analyzeResult`` tree (inches, top-left origin) into content
objects in points with a bottom-left origin.
"""

import json
import logging
import re
from typing import Any, Optional

from docroute.errors import BackendResponseError, ConfigurationError
from docroute.hybrid.base import BackendClient, SchemaTransformer
from docroute.hybrid.geometry import (
    DEFAULT_PAGE_HEIGHT,
    INCHES_TO_POINTS,
    GridCell,
    TransformCursor,
    build_table_cells,
    make_paragraph,
    polygon_to_bbox,
    sort_by_reading_order,
)
from docroute.hybrid.polling import PollResult
from docroute.models import (
    BackendType,
    BoundingBox,
    ContentObject,
    Figure,
    Formula,
    Heading,
    HybridRequest,
    HybridResponse,
    Paragraph,
    Table,
)

logger = logging.getLogger(__name__)

API_VERSION = "2024-11-30"
ANALYZE_PATH = "/documentintelligence/documentModels/prebuilt-layout:analyze"
API_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OPERATION_LOCATION_HEADER = "Operation-Location"

# Paragraph roles
ROLE_TITLE = "title"
ROLE_SECTION_HEADING = "sectionHeading"
ROLE_PAGE_HEADER = "pageHeader"
ROLE_PAGE_FOOTER = "pageFooter"
ROLE_PAGE_NUMBER = "pageNumber"
ROLE_FOOTNOTE = "footnote"

# Role -> heading level; roles not listed (ROLE_FOOTNOTE included) become paragraphs
HEADING_ROLES = {
    ROLE_TITLE: 1,
    ROLE_SECTION_HEADING: 2,
}

# Page furniture, dropped from the output
FURNITURE_ROLES = frozenset({ROLE_PAGE_HEADER, ROLE_PAGE_FOOTER, ROLE_PAGE_NUMBER})

# Polygons need at least four corners
MIN_POLYGON_LENGTH = 8

_PARAGRAPH_REF = re.compile(r"^/paragraphs/(\d+)$")


def _format_pages(page_numbers: frozenset[int]) -> str:
    """Format 1-indexed page numbers as Azure's '1-3,5' page list."""
    pages = sorted(page_numbers)
    ranges: list[str] = []
    start = prev = pages[0]
    for page in pages[1:]:
        if page == prev + 1:
            prev = page
            continue
        ranges.append(str(start) if start == prev else f"{start}-{prev}")
        start = prev = page
    ranges.append(str(start) if start == prev else f"{start}-{prev}")
    return ",".join(ranges)


class AzureClient(BackendClient):
    """Client for the Azure Document Intelligence layout model.

    Usage:
        client = AzureClient(config)
        response = client.convert(HybridRequest.for_all_pages(pdf_bytes))
    """

    backend_type = BackendType.AZURE

    def __init__(self, config, default_url=None, session=None, poller=None):
        super().__init__(config, default_url=default_url, session=session, poller=poller)
        if not self.api_key:
            raise ConfigurationError(
                "Azure backend requires an API key. "
                "Use --hybrid-api-key or set the AZURE_API_KEY environment variable."
            )

    @property
    def analyze_url(self) -> str:
        return f"{self.base_url}{ANALYZE_PATH}"

    def _submit(self, request: HybridRequest) -> str:
        params = {"api-version": API_VERSION}
        if not request.all_pages and request.page_numbers:
            params["pages"] = _format_pages(request.page_numbers)

        logger.info(f"Submitting {len(request.pdf_bytes)} bytes to Azure layout analysis")
        with self._send(
            "POST",
            self.analyze_url,
            params=params,
            data=request.pdf_bytes,
            headers={
                API_KEY_HEADER: self.api_key,
                "Content-Type": "application/pdf",
            },
        ) as response:
            operation_url = response.headers.get(OPERATION_LOCATION_HEADER)

        if not operation_url:
            raise BackendResponseError(
                f"Azure response missing {OPERATION_LOCATION_HEADER} header",
                backend=self.name,
            )
        return operation_url

    def _poll_once(self, handle: str) -> PollResult:
        with self._send("GET", handle, headers={API_KEY_HEADER: self.api_key}) as response:
            root = self._read_json(response, "poll")

        status = str(root.get("status", "")).lower()
        if status == "succeeded":
            analyze_result = root.get("analyzeResult")
            if not isinstance(analyze_result, dict):
                raise BackendResponseError(
                    "Azure analysis succeeded but analyzeResult is missing",
                    backend=self.name,
                )
            return PollResult.succeeded(analyze_result)
        if status == "failed":
            error = root.get("error")
            return PollResult.failed(json.dumps(error) if error else "Unknown error")
        return PollResult.running()

    def _fetch_result(self, handle: str, payload: dict[str, Any]) -> dict[str, Any]:
        # The final poll already carries the result
        return payload

    def _build_response(self, result: dict[str, Any]) -> HybridResponse:
        page_contents: dict[int, dict[str, Any]] = {}
        for page in result.get("pages") or []:
            page_number = page.get("pageNumber")
            if isinstance(page_number, int) and page_number > 0:
                page_contents[page_number] = page
        return HybridResponse(json_content=result, page_contents=page_contents)


class AzureSchemaTransformer(SchemaTransformer):
    """Transforms an Azure ``analyzeResult`` into per-page content lists.

    Paragraph roles map through HEADING_ROLES and FURNITURE_ROLES; anything
    else (footnotes, unknown roles) becomes a plain paragraph. Paragraphs
    that Azure also lists inside a table cell or a figure are emitted only
    as part of that table or figure.
    """

    backend_type = BackendType.AZURE

    def transform(
        self,
        response: HybridResponse,
        page_heights: Optional[dict[int, float]] = None,
    ) -> list[list[ContentObject]]:
        root = response.json_content
        if root is None:
            logger.warning("Azure response has no JSON content, returning empty result")
            return []

        cursor = TransformCursor()
        page_heights = page_heights or {}
        page_dims = self._page_dimensions(root)
        result: list[list[ContentObject]] = [
            [] for _ in range(self._page_count(root, page_heights, page_dims))
        ]
        nested = self._nested_paragraphs(root)

        for index, paragraph in enumerate(root.get("paragraphs") or []):
            if index in nested:
                continue
            self._add_paragraph(paragraph, result, page_heights, page_dims)

        for table in root.get("tables") or []:
            self._add_table(table, result, page_heights, page_dims)

        for figure in root.get("figures") or []:
            self._add_figure(figure, result, page_heights, page_dims, cursor)

        for page in root.get("pages") or []:
            page_number = page.get("pageNumber", 1)
            for formula in page.get("formulas") or []:
                self._add_formula(formula, page_number, result, page_heights, page_dims)

        for contents in result:
            sort_by_reading_order(contents)
        return result

    def transform_page(
        self,
        page_number: int,
        page_content: dict[str, Any],
        page_height: float,
    ) -> list[ContentObject]:
        """Transform a single page subtree (1-indexed page number)."""
        response = HybridResponse(json_content=page_content)
        result = self.transform(response, {page_number: page_height})
        page_index = page_number - 1
        if 0 <= page_index < len(result):
            return result[page_index]
        return []

    # Page geometry

    @staticmethod
    def _page_dimensions(root: dict[str, Any]) -> dict[int, tuple[float, float]]:
        """Page number -> (width, height) in inches."""
        dims = {}
        for page in root.get("pages") or []:
            page_number = page.get("pageNumber", 0)
            if page_number > 0:
                dims[page_number] = (
                    float(page.get("width", 8.5)),
                    float(page.get("height", 11.0)),
                )
        return dims

    @staticmethod
    def _page_count(
        root: dict[str, Any],
        page_heights: dict[int, float],
        page_dims: dict[int, tuple[float, float]],
    ) -> int:
        if page_heights:
            return max(page_heights)
        if page_dims:
            return max(page_dims)
        pages = root.get("pages")
        if isinstance(pages, list):
            return len(pages)
        return 1

    @staticmethod
    def _page_height(
        page_number: int,
        page_heights: dict[int, float],
        page_dims: dict[int, tuple[float, float]],
    ) -> float:
        if page_number in page_heights:
            return page_heights[page_number]
        if page_number in page_dims:
            return page_dims[page_number][1] * INCHES_TO_POINTS
        return DEFAULT_PAGE_HEIGHT

    @staticmethod
    def _region_page(node: dict[str, Any]) -> int:
        regions = node.get("boundingRegions") or []
        if regions:
            return regions[0].get("pageNumber", 1)
        return 1

    @staticmethod
    def _polygon_bbox(polygon: Any, page_index: int, page_height: float) -> BoundingBox:
        if isinstance(polygon, list) and len(polygon) >= MIN_POLYGON_LENGTH:
            return polygon_to_bbox(polygon, page_index, page_height)
        return BoundingBox.empty(page_index)

    def _region_bbox(self, node: dict[str, Any], page_index: int, page_height: float) -> BoundingBox:
        regions = node.get("boundingRegions") or []
        polygon = regions[0].get("polygon") if regions else None
        return self._polygon_bbox(polygon, page_index, page_height)

    @staticmethod
    def _page_list(result: list[list[ContentObject]], page_index: int) -> list[ContentObject]:
        """Page list for an index, growing the result when the backend reports more pages."""
        while len(result) <= page_index:
            result.append([])
        return result[page_index]

    def _locate(
        self,
        node: dict[str, Any],
        result: list[list[ContentObject]],
        page_heights: dict[int, float],
        page_dims: dict[int, tuple[float, float]],
    ) -> tuple[list[ContentObject], BoundingBox]:
        page_number = self._region_page(node)
        page_index = max(page_number - 1, 0)
        page_height = self._page_height(page_number, page_heights, page_dims)
        return self._page_list(result, page_index), self._region_bbox(node, page_index, page_height)

    # Elements

    @staticmethod
    def _nested_paragraphs(root: dict[str, Any]) -> set[int]:
        """Indexes of paragraphs that belong to a table cell or figure body."""
        refs: list[str] = []
        for table in root.get("tables") or []:
            for cell in table.get("cells") or []:
                refs.extend(cell.get("elements") or [])
        for figure in root.get("figures") or []:
            refs.extend(figure.get("elements") or [])

        nested = set()
        for ref in refs:
            match = _PARAGRAPH_REF.match(str(ref))
            if match:
                nested.add(int(match.group(1)))
        return nested

    def _add_paragraph(self, node, result, page_heights, page_dims) -> None:
        role = node.get("role")
        if role in FURNITURE_ROLES:
            return

        contents, bbox = self._locate(node, result, page_heights, page_dims)
        text = node.get("content", "")
        level = HEADING_ROLES.get(role)
        if level is not None:
            contents.append(
                make_paragraph(text, bbox, self.backend_type.value, cls=Heading, heading_level=level)
            )
        else:
            contents.append(make_paragraph(text, bbox, self.backend_type.value, cls=Paragraph))

    def _add_table(self, node, result, page_heights, page_dims) -> None:
        num_rows = node.get("rowCount", 0)
        num_cols = node.get("columnCount", 0)
        if num_rows <= 0 or num_cols <= 0:
            return

        contents, bbox = self._locate(node, result, page_heights, page_dims)
        cells = [
            GridCell(
                row=cell.get("rowIndex", 0),
                col=cell.get("columnIndex", 0),
                row_span=cell.get("rowSpan", 1),
                col_span=cell.get("columnSpan", 1),
                text=cell.get("content", ""),
                is_header=cell.get("kind") == "columnHeader",
            )
            for cell in node.get("cells") or []
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

    def _add_figure(self, node, result, page_heights, page_dims, cursor: TransformCursor) -> None:
        contents, bbox = self._locate(node, result, page_heights, page_dims)
        caption = node.get("caption") or {}
        contents.append(
            Figure(
                bbox=bbox,
                source=self.backend_type.value,
                image_index=cursor.next_figure_index(),
                caption_text=caption.get("content") or None,
            )
        )

    def _add_formula(self, node, page_number, result, page_heights, page_dims) -> None:
        page_index = max(page_number - 1, 0)
        page_height = self._page_height(page_number, page_heights, page_dims)
        contents = self._page_list(result, page_index)
        contents.append(
            Formula(
                bbox=self._polygon_bbox(node.get("polygon"), page_index, page_height),
                source=self.backend_type.value,
                source_text=node.get("value", ""),
                display=node.get("kind", "display") != "inline",
            )
        )
