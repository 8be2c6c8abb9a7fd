"""Pixel grids exchanged between the rasterizer, the accumulator and the caller."""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from ..config import settings
from .errors import InvalidInputError


@dataclass(eq=False)
class IndexMap:
    """
    Per-pixel owning site index of a rasterized Voronoi diagram.

    ``data`` is a row-major (height, width) uint32 array with row 0 at the top
    of the canvas. Valid entries are ``< site_count``; ``site_count`` itself is
    the background value of an uncovered pixel.
    """
    width: int
    height: int
    site_count: int
    data: Optional[np.ndarray] = field(default=None)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(f"Invalid index map size {self.width}x{self.height}")
        if self.data is None:
            self.data = np.zeros((self.height, self.width), dtype=np.uint32)
        else:
            self.data = np.ascontiguousarray(self.data, dtype=np.uint32)
            if self.data.shape != (self.height, self.width):
                raise InvalidInputError(
                    f"Index data shape {self.data.shape} does not match "
                    f"{self.height}x{self.width}"
                )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    def set(self, x: int, y: int, value: int) -> None:
        self.data[y, x] = value

    def get(self, x: int, y: int) -> int:
        return int(self.data[y, x])

    def count(self) -> int:
        """Number of sites encoded in this map."""
        return self.site_count


@dataclass(frozen=True, eq=False)
class DensityField:
    """
    Immutable (height, width) grid of weights in (0, 1].

    Darker image pixels carry more weight. Every weight is strictly
    positive so each pixel contributes mass to its cell.
    """
    values: np.ndarray

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 2 or values.size == 0:
            raise InvalidInputError(f"Density field must be a non-empty 2-D grid, got shape {values.shape}")
        if not np.all(np.isfinite(values)) or np.any(values <= 0.0) or np.any(values > 1.0):
            raise InvalidInputError("Density weights must lie in (0, 1]")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @classmethod
    def from_luminance(cls, gray: np.ndarray, epsilon: Optional[float] = None) -> "DensityField":
        """
        Derive weights from 8-bit luminance: ``max(1 - gray / 255, epsilon)``.

        Args:
            gray: (height, width) luminance values in [0, 255]
            epsilon: Minimum weight, defaults to ``settings.density_epsilon``
        """
        if epsilon is None:
            epsilon = settings.density_epsilon
        gray = np.asarray(gray, dtype=np.float64)
        return cls(np.maximum(1.0 - gray / 255.0, epsilon))

    @classmethod
    def from_rgb(cls, rgb: np.ndarray, epsilon: Optional[float] = None) -> "DensityField":
        """
        Derive weights from an 8-bit (height, width, 3+) RGB(A) image.

        Luminance uses the integer gray formula ``(11r + 16g + 5b) / 32``.
        """
        rgb = np.asarray(rgb)
        if rgb.ndim != 3 or rgb.shape[2] < 3:
            raise InvalidInputError(f"Expected an RGB image, got shape {rgb.shape}")
        channels = rgb[..., :3].astype(np.int64)
        gray = (channels[..., 0] * 11 + channels[..., 1] * 16 + channels[..., 2] * 5) // 32
        return cls.from_luminance(gray, epsilon)

    @classmethod
    def uniform(cls, width: int, height: int, value: float = 1.0) -> "DensityField":
        return cls(np.full((height, width), value, dtype=np.float64))

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    def value(self, x: int, y: int) -> float:
        return float(self.values[y, x])
