"""Error types for docroute.

Configuration errors are fatal and detected before any work starts.
Backend errors are remote faults that the orchestrator may recover from by
falling back to local processing. ProcessingError is the single aggregated
failure a caller sees for a whole document.
"""

from typing import Optional


class DocrouteError(Exception):
    """Base class for all docroute errors."""


class ConfigurationError(DocrouteError, ValueError):
    """Invalid or missing configuration (endpoint, credential, option value)."""


class BackendError(DocrouteError):
    """A remote backend call failed."""

    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message)
        self.backend = backend


class BackendHTTPError(BackendError):
    """Backend answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        backend: Optional[str] = None,
    ):
        super().__init__(message, backend=backend)
        self.status_code = status_code
        self.body = body


class BackendResponseError(BackendError):
    """Backend response was malformed or incomplete."""


class BackendTimeoutError(BackendError):
    """HTTP call timed out or polling exceeded its attempt ceiling."""


class BackendAnalysisError(BackendError):
    """Backend reported that the analysis itself failed."""

    def __init__(self, message: str, detail: str = "", backend: Optional[str] = None):
        super().__init__(message, backend=backend)
        self.detail = detail


class ProcessingError(DocrouteError):
    """Whole-document processing failed at a given stage."""

    STAGES = ("filter", "triage", "remote", "merge")

    def __init__(self, stage: str, document_name: str, message: str):
        if stage not in self.STAGES:
            raise ValueError(f"Unknown processing stage: {stage}")
        super().__init__(f"[{stage}] {document_name}: {message}")
        self.stage = stage
        self.document_name = document_name
