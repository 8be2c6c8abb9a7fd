"""Tests for the cell index color codec."""

import numpy as np
import pytest

from py_wlbg.core.cell_encoder import (
    MAX_ENCODABLE, check_site_count, decode, decode_pixels, encode,
    encode_color, encode_colors, encode_pixels,
)
from py_wlbg.core.errors import EncodingOverflowError, InvalidInputError


class TestScalarCodec:
    """Test single index encoding."""

    def test_channel_layout(self):
        """Test that channels hold bits 16-23, 8-15 and 0-7."""
        assert encode(0x123456) == (0x12, 0x34, 0x56)
        assert encode(0) == (0, 0, 0)
        assert encode(MAX_ENCODABLE) == (255, 255, 255)

    @pytest.mark.parametrize("index", [0, 1, 255, 256, 65535, 65536, 1234567, MAX_ENCODABLE])
    def test_round_trip(self, index):
        """Test that decoding an encoded index yields the index."""
        assert decode(*encode(index)) == index

    def test_normalized_color(self):
        """Test that normalized colors map back to exact bytes."""
        r, g, b = encode_color(0x01FF80)
        assert round(r * 255) == 0x01
        assert round(g * 255) == 0xFF
        assert round(b * 255) == 0x80


class TestVectorizedCodec:
    """Test array encoding and decoding."""

    def test_full_index_space_round_trip(self):
        """Test every index in [0, 2^24) survives an encode/decode cycle."""
        indices = np.arange(1 << 24, dtype=np.uint32)
        decoded = decode_pixels(encode_pixels(indices))
        np.testing.assert_array_equal(decoded, indices)

    def test_colors_quantize_exactly(self):
        """Test that GPU colors convert back to the original bytes."""
        count = 70000
        colors = encode_colors(count)
        assert colors.shape == (count, 3)
        assert colors.dtype == np.float32

        quantized = np.rint(colors * 255.0).astype(np.uint8)
        np.testing.assert_array_equal(decode_pixels(quantized), np.arange(count))

    def test_decode_preserves_shape(self):
        """Test that decoding an image yields a grid of the same size."""
        rgb = np.zeros((4, 5, 3), dtype=np.uint8)
        rgb[2, 3] = (0, 1, 2)
        decoded = decode_pixels(rgb)
        assert decoded.shape == (4, 5)
        assert decoded.dtype == np.uint32
        assert decoded[2, 3] == 258


class TestSiteCount:
    """Test site count preconditions."""

    def test_empty_rejected(self):
        with pytest.raises(InvalidInputError):
            check_site_count(0)

    def test_limit_accepted(self):
        check_site_count(1)
        check_site_count(MAX_ENCODABLE)

    def test_overflow_rejected(self):
        """Test that counts beyond 24 bits are surfaced, not truncated."""
        with pytest.raises(EncodingOverflowError):
            check_site_count(MAX_ENCODABLE + 1)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            check_site_count(1 << 25)
