"""Tests for settings and logging setup."""

import pytest
import structlog
from pydantic import ValidationError

from py_wlbg.config import Settings
from py_wlbg.logging_config import configure_logging


class TestSettings:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("WLBG_ACCUMULATOR_WORKERS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.accumulator_workers >= 1
        assert settings.accumulator_chunk_columns == 64
        assert settings.rasterizer_backend == "gl"
        assert (settings.gl_version_major, settings.gl_version_minor) == (3, 3)
        assert 0.0 < settings.density_epsilon < 1e-6

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("WLBG_ACCUMULATOR_WORKERS", "3")
        monkeypatch.setenv("WLBG_RASTERIZER_BACKEND", "kdtree")
        settings = Settings(_env_file=None)

        assert settings.accumulator_workers == 3
        assert settings.rasterizer_backend == "kdtree"

    @pytest.mark.parametrize("name,value", [
        ("WLBG_ACCUMULATOR_WORKERS", "0"),
        ("WLBG_RASTERIZER_BACKEND", "vulkan"),
        ("WLBG_DENSITY_EPSILON", "0"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestLogging:
    """Test structlog configuration."""

    @pytest.mark.parametrize("fmt", ["json", "plain"])
    def test_configure(self, fmt):
        configure_logging(level="DEBUG", fmt=fmt)
        logger = structlog.get_logger("py_wlbg.test")
        logger.debug("configured", fmt=fmt)
        assert structlog.is_configured()
