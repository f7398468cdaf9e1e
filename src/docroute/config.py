"""Configuration management for docroute.

``Settings`` reads the environment (and ``.env``). ``build_hybrid_config``
turns settings plus explicit options into the canonical ``HybridConfig`` the
processing core consumes; legacy option names are translated here and never
reach the core.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from docroute.errors import ConfigurationError
from docroute.models import BackendType, TriageMode

logger = logging.getLogger(__name__)

HYBRID_OFF = "off"

# Old backend names kept for backward compatibility
LEGACY_BACKEND_ALIASES = {
    "docling-fast": BackendType.DOCLING.value,
}

# Options still accepted but ignored, with the warning shown to the user
DEPRECATED_OPTIONS = {
    "hybrid_ocr": (
        "--hybrid-ocr is deprecated. Configure OCR settings on the hybrid "
        "server instead (--ocr-lang, --force-ocr)."
    ),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Hybrid backend
    hybrid_backend: str = HYBRID_OFF
    hybrid_mode: str = TriageMode.AUTO.value
    hybrid_url: Optional[str] = None
    hybrid_timeout_ms: int = 30000
    hybrid_fallback: bool = True

    # Credentials
    azure_api_key: Optional[str] = None
    docling_api_key: Optional[str] = None

    # Triage
    triage_threshold: float = 0.5

    # Content filter
    filter_min_font_size: float = 1.0
    filter_drop_invisible_text: bool = True

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


class HybridConfig(BaseModel):
    """Validated hybrid-processing options."""

    backend: Optional[BackendType] = Field(
        None, description="Backend to use; None means hybrid processing is off"
    )
    mode: TriageMode = TriageMode.AUTO
    url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_ms: int = Field(default=30000, gt=0)
    fallback: bool = True
    triage_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    class Config:
        frozen = True

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    @property
    def is_full_mode(self) -> bool:
        return self.mode == TriageMode.FULL

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def effective_url(self, default_url: Optional[str]) -> Optional[str]:
        """Configured URL if set, else the backend default."""
        if self.url:
            return self.url
        return default_url


class FilterConfig(BaseModel):
    """Options for the page content filter."""

    min_font_size: float = Field(default=1.0, ge=0.0)
    drop_invisible_text: bool = True

    class Config:
        frozen = True


def normalize_backend_name(name: Optional[str]) -> Optional[BackendType]:
    """Map a user-supplied backend name to a BackendType (None for 'off')."""
    if name is None:
        return None
    value = name.strip().lower()
    if not value or value == HYBRID_OFF:
        return None
    if value in LEGACY_BACKEND_ALIASES:
        replacement = LEGACY_BACKEND_ALIASES[value]
        logger.warning(f"Backend '{value}' is deprecated, using '{replacement}'")
        value = replacement
    try:
        return BackendType(value)
    except ValueError:
        supported = ", ".join([HYBRID_OFF] + [b.value for b in BackendType])
        raise ConfigurationError(
            f"Unsupported hybrid backend '{value}'. Supported values: {supported}"
        ) from None


def normalize_mode(name: Optional[str]) -> TriageMode:
    """Map a user-supplied triage mode to a TriageMode."""
    value = (name or TriageMode.AUTO.value).strip().lower()
    try:
        return TriageMode(value)
    except ValueError:
        supported = ", ".join(m.value for m in TriageMode)
        raise ConfigurationError(
            f"Unsupported hybrid mode '{value}'. Supported values: {supported}"
        ) from None


def _api_key_from_settings(backend: Optional[BackendType], source: Settings) -> Optional[str]:
    if backend == BackendType.AZURE:
        return source.azure_api_key
    if backend == BackendType.DOCLING:
        return source.docling_api_key
    return None


def build_hybrid_config(
    source: Optional[Settings] = None,
    *,
    backend: Optional[str] = None,
    mode: Optional[str] = None,
    url: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    fallback: Optional[bool] = None,
    api_key: Optional[str] = None,
    **legacy_options,
) -> HybridConfig:
    """Build a HybridConfig from settings overridden by explicit options.

    Args:
        source: Settings to start from (module settings if None).
        backend: Backend name, 'off', or a legacy alias.
        mode: Triage mode name.
        url: Backend URL override.
        timeout_ms: HTTP timeout in milliseconds.
        fallback: Re-run remote pages locally when the backend fails.
        api_key: Credential; falls back to the backend's environment key.
        **legacy_options: Deprecated options, ignored with a warning.

    Returns:
        Validated HybridConfig.

    Raises:
        ConfigurationError: On any invalid value or unknown option.
    """
    source = source or settings

    for name, value in legacy_options.items():
        if name not in DEPRECATED_OPTIONS:
            raise ConfigurationError(f"Unknown hybrid option: {name}")
        if value is not None:
            logger.warning(DEPRECATED_OPTIONS[name])

    backend_type = normalize_backend_name(backend if backend is not None else source.hybrid_backend)
    triage_mode = normalize_mode(mode if mode is not None else source.hybrid_mode)

    key = (api_key or "").strip() or None
    if key is None:
        env_key = _api_key_from_settings(backend_type, source)
        key = env_key.strip() if env_key and env_key.strip() else None

    effective_url = (url if url is not None else source.hybrid_url) or None
    if effective_url is not None:
        effective_url = effective_url.strip() or None

    try:
        return HybridConfig(
            backend=backend_type,
            mode=triage_mode,
            url=effective_url,
            api_key=key,
            timeout_ms=timeout_ms if timeout_ms is not None else source.hybrid_timeout_ms,
            fallback=fallback if fallback is not None else source.hybrid_fallback,
            triage_threshold=source.triage_threshold,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid hybrid configuration: {exc}") from exc


def build_filter_config(source: Optional[Settings] = None) -> FilterConfig:
    """Build the content filter options from settings."""
    source = source or settings
    try:
        return FilterConfig(
            min_font_size=source.filter_min_font_size,
            drop_invisible_text=source.filter_drop_invisible_text,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid filter configuration: {exc}") from exc


def parse_page_selection(value: Optional[str]) -> Optional[set[int]]:
    """Parse '1,3,5-7' (1-indexed) into a set of 0-indexed pages.

    Returns None when no selection is given (all pages).
    """
    if value is None or not value.strip():
        return None

    pages: set[int] = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                start_text, end_text = part.split("-", 1)
                start, end = int(start_text), int(end_text)
            else:
                start = end = int(part)
        except ValueError:
            raise ConfigurationError(f"Invalid page selection: '{part}'") from None
        if start < 1 or end < start:
            raise ConfigurationError(f"Invalid page range: '{part}'")
        pages.update(range(start - 1, end))
    return pages
