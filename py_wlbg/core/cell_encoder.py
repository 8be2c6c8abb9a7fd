"""
Cell index <-> RGB color codec.

Each site is drawn with a unique color holding its 24-bit index, 8 bits per
channel (R = index >> 16, G = index >> 8, B = index). Reading the framebuffer
back and decoding yields the owning site of every pixel.
"""

from typing import Tuple

import numpy as np

from .errors import EncodingOverflowError, InvalidInputError

MAX_ENCODABLE = (1 << 24) - 1


def encode(index: int) -> Tuple[int, int, int]:
    """Pack an index into an (r, g, b) byte triple."""
    return (index >> 16) & 0xFF, (index >> 8) & 0xFF, index & 0xFF


def decode(r: int, g: int, b: int) -> int:
    """Inverse of :func:`encode`."""
    return (int(r) << 16) | (int(g) << 8) | int(b)


def encode_color(index: int) -> Tuple[float, float, float]:
    """Normalized color of a single index, as uploaded to the GPU."""
    r, g, b = encode(index)
    return r / 255.0, g / 255.0, b / 255.0


def encode_pixels(indices: np.ndarray) -> np.ndarray:
    """
    Vectorized :func:`encode`.

    Returns:
        uint8 array of shape indices.shape + (3,)
    """
    indices = np.asarray(indices, dtype=np.uint32)
    return np.stack(
        [(indices >> 16) & 0xFF, (indices >> 8) & 0xFF, indices & 0xFF], axis=-1
    ).astype(np.uint8)


def encode_colors(count: int) -> np.ndarray:
    """
    Normalized per-instance colors for indices ``0 .. count-1``.

    Returns:
        float32 array of shape (count, 3)
    """
    channels = encode_pixels(np.arange(count, dtype=np.uint32))
    return channels.astype(np.float32) / np.float32(255.0)


def decode_pixels(rgb: np.ndarray) -> np.ndarray:
    """
    Decode an array of RGB bytes (..., 3) into uint32 indices (...).
    """
    rgb = np.asarray(rgb, dtype=np.uint32)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def check_site_count(count: int) -> None:
    """
    Validate that ``count`` sites can be encoded.

    ``count`` itself must also be encodable because it doubles as the
    background color of the framebuffer.

    Raises:
        InvalidInputError: if there are no sites
        EncodingOverflowError: if the count exceeds 2^24 - 1
    """
    if count <= 0:
        raise InvalidInputError("At least one site is required")
    if count > MAX_ENCODABLE:
        raise EncodingOverflowError(
            f"{count} sites exceed the 24-bit index space (max {MAX_ENCODABLE})"
        )
