"""Backend client and schema transformer interfaces.

A backend client submits a PDF for analysis and returns the backend-native
result wrapped in a HybridResponse. Clients share the HTTP plumbing and the
submit/poll/fetch sequence defined here; each backend fills in the three
protocol steps.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from docroute.config import HybridConfig
from docroute.errors import (
    BackendError,
    BackendHTTPError,
    BackendResponseError,
    BackendTimeoutError,
    ConfigurationError,
)
from docroute.hybrid.polling import Poller, PollResult
from docroute.models import BackendType, ContentObject, HybridRequest, HybridResponse

logger = logging.getLogger(__name__)

# Maximum characters of an error body kept in exception messages
ERROR_BODY_LIMIT = 400


class BackendClient(ABC):
    """Base interface for backend clients.

    Subclasses implement ``_submit``, ``_poll_once`` and ``_fetch_result``;
    ``convert`` and ``convert_async`` run them in that order with identical
    semantics.
    """

    backend_type: BackendType

    def __init__(
        self,
        config: HybridConfig,
        default_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        poller: Optional[Poller] = None,
    ):
        """Initialize client.

        Args:
            config: Hybrid configuration (URL, credential, timeout).
            default_url: URL used when the configuration has none.
            session: HTTP session; a new one is created if None.
            poller: Poll loop; default interval and ceiling if None.

        Raises:
            ConfigurationError: If no endpoint URL is available.
        """
        base_url = config.effective_url(default_url)
        if not base_url:
            raise ConfigurationError(
                f"{self.backend_type.value} backend requires a URL. "
                "Use --hybrid-url to specify the endpoint."
            )
        self.base_url = base_url.rstrip("/")
        self.api_key = config.api_key
        self.timeout_seconds = config.timeout_seconds
        self.session = session or requests.Session()
        self.poller = poller or Poller(self.backend_type.value)

    @property
    def name(self) -> str:
        return self.backend_type.value

    # Protocol steps

    @abstractmethod
    def _submit(self, request: HybridRequest) -> str:
        """Submit the document and return a job handle."""
        raise NotImplementedError

    @abstractmethod
    def _poll_once(self, handle: str) -> PollResult:
        """Ask once for the job status."""
        raise NotImplementedError

    @abstractmethod
    def _fetch_result(self, handle: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Return the backend-native result tree once the job succeeded."""
        raise NotImplementedError

    @abstractmethod
    def _build_response(self, result: dict[str, Any]) -> HybridResponse:
        """Wrap the result tree in a HybridResponse."""
        raise NotImplementedError

    # Public API

    def convert(self, request: HybridRequest) -> HybridResponse:
        """Analyze a document, blocking until the backend finishes.

        Raises:
            BackendError: On HTTP failure, malformed response, backend-reported
                failure or timeout.
        """
        handle = self._submit(request)
        logger.debug(f"{self.name}: submitted analysis, handle={handle}")
        payload = self.poller.run(lambda: self._poll_once(handle))
        result = self._fetch_result(handle, payload)
        return self._build_response(result)

    async def convert_async(self, request: HybridRequest) -> HybridResponse:
        """Analyze a document without blocking the event loop.

        HTTP calls run in worker threads; waits between polls suspend.
        """
        handle = await asyncio.to_thread(self._submit, request)
        logger.debug(f"{self.name}: submitted analysis, handle={handle}")
        payload = await self.poller.run_async(
            lambda: asyncio.to_thread(self._poll_once, handle)
        )
        result = await asyncio.to_thread(self._fetch_result, handle, payload)
        return self._build_response(result)

    def close(self) -> None:
        """Release pooled connections."""
        self.session.close()

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # HTTP helpers

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request, mapping transport failures to backend errors.

        The caller owns the returned response and must close it.
        """
        try:
            response = self.session.request(
                method, url, timeout=self.timeout_seconds, **kwargs
            )
        except requests.Timeout as exc:
            raise BackendTimeoutError(
                f"{self.name} request timed out after {self.timeout_seconds}s: {url}",
                backend=self.name,
            ) from exc
        except requests.RequestException as exc:
            raise BackendError(f"{self.name} request failed: {exc}", backend=self.name) from exc

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:ERROR_BODY_LIMIT]
            response.close()
            raise BackendHTTPError(
                f"{self.name} {method} {url} failed with status {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
                backend=self.name,
            )
        return response

    def _read_json(self, response: requests.Response, what: str) -> dict[str, Any]:
        """Parse a JSON object body or raise BackendResponseError."""
        try:
            data = response.json()
        except ValueError as exc:
            raise BackendResponseError(
                f"{self.name} {what} returned invalid JSON", backend=self.name
            ) from exc
        if not isinstance(data, dict):
            raise BackendResponseError(
                f"{self.name} {what} returned unexpected JSON type {type(data).__name__}",
                backend=self.name,
            )
        return data


class SchemaTransformer(ABC):
    """Converts a backend-native result into per-page content lists.

    Implementations hold no per-call state; counters live in a cursor
    created inside each ``transform`` call.
    """

    backend_type: BackendType

    @abstractmethod
    def transform(
        self,
        response: HybridResponse,
        page_heights: Optional[dict[int, float]] = None,
    ) -> list[list[ContentObject]]:
        """Transform a response.

        Args:
            response: Backend response.
            page_heights: 1-indexed page number to page height in points.

        Returns:
            One content list per page (index 0 = page 1), in reading order.
        """
        raise NotImplementedError
