"""Tests for the k-d tree reference rasterizer."""

import numpy as np
import pytest

from py_wlbg.core import (
    EncodingOverflowError, InvalidInputError, KDTreeDiagram,
    create_diagram, get_or_create_diagram,
)
from py_wlbg.core.cell_encoder import MAX_ENCODABLE


class TestKDTreeDiagram:
    """Test exact nearest-site assignment."""

    def test_single_site_covers_canvas(self):
        index_map = KDTreeDiagram(20, 12).calculate([[0.5, 0.5]])
        assert index_map.site_count == 1
        assert np.all(index_map.data == 0)

    def test_left_right_split(self):
        """Test that two sites split the canvas at the bisector."""
        index_map = KDTreeDiagram(10, 4).calculate([[0.25, 0.5], [0.75, 0.5]])
        assert np.all(index_map.data[:, :5] == 0)
        assert np.all(index_map.data[:, 5:] == 1)

    def test_top_left_origin(self):
        """Test that y = 0 addresses the top row."""
        index_map = KDTreeDiagram(4, 10).calculate([[0.5, 0.1], [0.5, 0.9]])
        assert index_map.get(0, 0) == 0
        assert index_map.get(0, 9) == 1

    def test_pixel_space_distance(self):
        """Test that distances are isotropic on a wide canvas."""
        # In normalized units site 1 is closer to pixel (50, 5); in pixels site 0 is.
        index_map = KDTreeDiagram(100, 10).calculate([[0.5, 0.0], [0.4, 0.5]])
        assert index_map.get(50, 5) == 0

    def test_indices_in_range(self, random_sites):
        index_map = KDTreeDiagram(64, 40).calculate(random_sites(300))
        assert index_map.data.max() < 300

    def test_resize(self):
        diagram = KDTreeDiagram(8, 8)
        diagram.calculate([[0.5, 0.5]])
        index_map = diagram.resize(16, 4).calculate([[0.5, 0.5]])
        assert index_map.data.shape == (4, 16)


class TestSiteValidation:
    """Test site preconditions shared by all rasterizers."""

    def test_empty_sites(self):
        with pytest.raises(InvalidInputError):
            KDTreeDiagram(8, 8).calculate([])

    def test_malformed_sites(self):
        with pytest.raises(InvalidInputError):
            KDTreeDiagram(8, 8).calculate([[0.1, 0.2, 0.3]])

    def test_non_finite_sites(self):
        with pytest.raises(InvalidInputError):
            KDTreeDiagram(8, 8).calculate([[0.1, np.inf]])

    @pytest.mark.parametrize("site", [[-0.01, 0.5], [0.5, 1.01], [3.0, -2.0]])
    def test_sites_outside_unit_square(self, site):
        """Test that a site off the canvas is an input error, not a coverage failure."""
        with pytest.raises(InvalidInputError):
            KDTreeDiagram(8, 8).calculate([[0.5, 0.5], site])

    def test_unit_square_bounds_accepted(self):
        index_map = KDTreeDiagram(8, 8).calculate([[0.0, 0.0], [1.0, 1.0]])
        assert index_map.get(0, 0) == 0
        assert index_map.get(7, 7) == 1

    def test_encoding_overflow(self):
        """Test that too many sites are rejected before any work is done."""
        sites = np.broadcast_to(np.zeros(2, dtype=np.float32), (MAX_ENCODABLE + 1, 2))
        with pytest.raises(EncodingOverflowError):
            KDTreeDiagram(8, 8).calculate(sites)


class TestDiagramFactory:
    """Test backend selection and reuse."""

    def test_create_reference_backend(self):
        diagram = create_diagram(8, 6, backend="kdtree")
        assert isinstance(diagram, KDTreeDiagram)

    def test_unknown_backend(self):
        with pytest.raises(InvalidInputError):
            create_diagram(8, 6, backend="vulkan")

    def test_reuse_same_size(self):
        diagram = create_diagram(8, 6, backend="kdtree")
        assert get_or_create_diagram(diagram, 8, 6) is diagram

    def test_resize_on_new_size(self):
        diagram = create_diagram(8, 6, backend="kdtree")
        reused = get_or_create_diagram(diagram, 12, 6)
        assert reused is diagram
        assert (reused.width, reused.height) == (12, 6)

    def test_create_when_missing(self):
        diagram = get_or_create_diagram(None, 8, 6, backend="kdtree")
        assert (diagram.width, diagram.height) == (8, 6)


class TestTieBreaking:
    """Test that equidistant sites resolve like the GPU depth test."""

    @pytest.mark.parametrize("sites", [
        [[0.5, 0.5], [0.125, 0.5]],
        [[0.125, 0.5], [0.5, 0.5]],
    ])
    def test_lower_index_wins(self, sites):
        # Pixel center 2.5 lies exactly between the sites at x = 1 and x = 4.
        index_map = KDTreeDiagram(8, 1).calculate(sites)
        assert index_map.get(2, 0) == 0

    def test_untied_pixels_unaffected(self):
        index_map = KDTreeDiagram(8, 1).calculate([[0.5, 0.5], [0.125, 0.5]])
        assert index_map.get(1, 0) == 1
        assert index_map.get(3, 0) == 0
