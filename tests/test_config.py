"""Tests for configuration handling."""

import logging

import pytest
from pydantic import ValidationError

from docroute.config import (
    HybridConfig,
    Settings,
    build_filter_config,
    build_hybrid_config,
    normalize_backend_name,
    normalize_mode,
    parse_page_selection,
)
from docroute.errors import ConfigurationError
from docroute.models import BackendType, TriageMode


@pytest.fixture
def base_settings():
    """Settings independent of the environment."""
    return Settings(
        _env_file=None,
        hybrid_backend="off",
        hybrid_mode="auto",
        hybrid_url=None,
        azure_api_key=None,
        docling_api_key=None,
    )


class TestBackendNames:
    """Tests for backend name normalization."""

    def test_off_disables_hybrid(self):
        """'off' and empty names mean no backend."""
        assert normalize_backend_name("off") is None
        assert normalize_backend_name("") is None
        assert normalize_backend_name(None) is None

    def test_case_insensitive(self):
        """Backend names ignore case and surrounding whitespace."""
        assert normalize_backend_name(" Azure ") == BackendType.AZURE

    def test_legacy_alias(self, caplog):
        """docling-fast maps to docling with a deprecation warning."""
        with caplog.at_level(logging.WARNING):
            assert normalize_backend_name("docling-fast") == BackendType.DOCLING
        assert "deprecated" in caplog.text

    def test_unknown_backend(self):
        """Unknown backends are configuration errors."""
        with pytest.raises(ConfigurationError, match="Unsupported hybrid backend"):
            normalize_backend_name("textract")

    def test_unknown_mode(self):
        """Unknown triage modes are configuration errors."""
        assert normalize_mode("FULL") == TriageMode.FULL
        with pytest.raises(ConfigurationError):
            normalize_mode("sometimes")


class TestBuildHybridConfig:
    """Tests for building the canonical hybrid configuration."""

    def test_defaults_from_settings(self, base_settings):
        """Settings supply every value not given explicitly."""
        config = build_hybrid_config(base_settings)
        assert not config.enabled
        assert config.mode == TriageMode.AUTO
        assert config.timeout_ms == 30000
        assert config.fallback is True

    def test_explicit_options_override(self, base_settings):
        """Explicit options win over settings."""
        config = build_hybrid_config(
            base_settings,
            backend="docling",
            mode="full",
            url="http://docling:5002",
            timeout_ms=5000,
            fallback=False,
        )
        assert config.backend == BackendType.DOCLING
        assert config.is_full_mode
        assert config.url == "http://docling:5002"
        assert config.timeout_seconds == 5.0
        assert config.fallback is False

    def test_api_key_from_environment_settings(self, base_settings):
        """The Azure key falls back to the AZURE_API_KEY setting."""
        source = base_settings.model_copy(update={"azure_api_key": "env-key"})
        config = build_hybrid_config(source, backend="azure")
        assert config.api_key == "env-key"

    def test_explicit_api_key_wins(self, base_settings):
        """An explicit key is preferred over the environment."""
        source = base_settings.model_copy(update={"azure_api_key": "env-key"})
        config = build_hybrid_config(source, backend="azure", api_key="cli-key")
        assert config.api_key == "cli-key"

    def test_blank_url_is_none(self, base_settings):
        """A blank URL means 'use the backend default'."""
        config = build_hybrid_config(base_settings, backend="docling", url="  ")
        assert config.url is None
        assert config.effective_url("http://localhost:5002") == "http://localhost:5002"

    def test_deprecated_option_ignored(self, base_settings, caplog):
        """hybrid_ocr is accepted and ignored with a warning."""
        with caplog.at_level(logging.WARNING):
            config = build_hybrid_config(base_settings, backend="docling", hybrid_ocr="force")
        assert config.backend == BackendType.DOCLING
        assert "--hybrid-ocr is deprecated" in caplog.text

    def test_unknown_option(self, base_settings):
        """Unknown legacy options are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown hybrid option"):
            build_hybrid_config(base_settings, hybrid_turbo=True)

    def test_invalid_timeout(self, base_settings):
        """Non-positive timeouts are configuration errors."""
        with pytest.raises(ConfigurationError):
            build_hybrid_config(base_settings, backend="docling", timeout_ms=0)

    def test_config_is_frozen(self):
        """HybridConfig cannot be modified after validation."""
        config = HybridConfig(backend=BackendType.DOCLING)
        with pytest.raises(ValidationError):
            config.url = "http://elsewhere"


class TestFilterConfig:
    """Tests for the filter configuration."""

    def test_from_settings(self, base_settings):
        """Filter options come from settings."""
        source = base_settings.model_copy(update={"filter_min_font_size": 2.5})
        assert build_filter_config(source).min_font_size == 2.5


class TestPageSelection:
    """Tests for page range parsing."""

    def test_none_means_all(self):
        """No selection means every page."""
        assert parse_page_selection(None) is None
        assert parse_page_selection(" ") is None

    def test_ranges_and_singles(self):
        """1-indexed input becomes a 0-indexed set."""
        assert parse_page_selection("1,3,5-7") == {0, 2, 4, 5, 6}

    @pytest.mark.parametrize("value", ["0", "3-1", "a", "1-x"])
    def test_invalid(self, value):
        """Malformed selections are configuration errors."""
        with pytest.raises(ConfigurationError):
            parse_page_selection(value)
