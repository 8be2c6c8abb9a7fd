"""Shared fixtures for the Voronoi kernel tests."""

import os

import numpy as np
import pytest

from py_wlbg.core import DensityField, GLContextError, VoronoiDiagram


@pytest.fixture
def gl_diagram():
    """
    Factory for GPU diagrams.

    Skips the test when no OpenGL context exists, unless the GPU backend was
    requested explicitly through ``WLBG_RASTERIZER_BACKEND=gl``, in which case
    the missing context is a failure.
    """
    created = []
    required = os.environ.get("WLBG_RASTERIZER_BACKEND") == "gl"

    def make(width, height):
        diagram = VoronoiDiagram(width, height)
        try:
            diagram.create()
        except GLContextError as exc:
            if required:
                pytest.fail(f"WLBG_RASTERIZER_BACKEND=gl but no OpenGL 3.3 context: {exc}")
            pytest.skip(f"No headless OpenGL 3.3 context: {exc}")
        created.append(diagram)
        return diagram

    yield make

    for diagram in created:
        diagram.destroy()


@pytest.fixture
def random_sites():
    """Reproducible random sites in [0, 1]^2."""
    def make(count, seed=7):
        rng = np.random.default_rng(seed)
        return rng.random((count, 2))
    return make


@pytest.fixture
def gradient_density():
    """Density field getting darker from left to right."""
    def make(width, height):
        gray = np.tile(np.linspace(255, 0, width), (height, 1))
        return DensityField.from_luminance(gray)
    return make
