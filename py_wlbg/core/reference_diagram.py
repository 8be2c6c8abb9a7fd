"""Exact CPU rasterization of Voronoi diagrams using a k-d tree."""

import numpy as np
import structlog
from scipy.spatial import cKDTree

from .errors import InvalidInputError
from .index_map import IndexMap
from .voronoi_diagram import check_decoded_indices, validate_sites

logger = structlog.get_logger()


class KDTreeDiagram:
    """
    Nearest-site assignment of every pixel center, computed on the CPU.

    Same ``calculate`` contract as the GPU diagram but exact, so it serves
    as a ground truth and as a fallback where no OpenGL context exists.
    When the two nearest sites are equidistant from a pixel center the lower
    index wins, as with the depth test on the GPU.
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Invalid canvas size {width}x{height}")
        self.width = width
        self.height = height
        self._centers = None

    def __enter__(self) -> "KDTreeDiagram":
        return self.create()

    def __exit__(self, exc_type, exc, tb):
        self.destroy()

    def create(self) -> "KDTreeDiagram":
        return self

    def destroy(self) -> None:
        self._centers = None

    def resize(self, width: int, height: int) -> "KDTreeDiagram":
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Invalid canvas size {width}x{height}")
        if (width, height) != (self.width, self.height):
            self.width = width
            self.height = height
            self._centers = None
        return self

    def _pixel_centers(self) -> np.ndarray:
        if self._centers is None:
            ys, xs = np.mgrid[0:self.height, 0:self.width]
            self._centers = np.column_stack([xs.ravel() + 0.5, ys.ravel() + 0.5])
        return self._centers

    def calculate(self, sites) -> IndexMap:
        points = validate_sites(sites).astype(np.float64)
        site_count = len(points)

        # Distances are measured in pixels so non-square canvases stay isotropic.
        scaled = points * np.array([self.width, self.height], dtype=np.float64)
        tree = cKDTree(scaled)
        if site_count == 1:
            nearest = np.zeros(self.width * self.height, dtype=np.int64)
        else:
            distances, candidates = tree.query(self._pixel_centers(), k=2, workers=-1)
            tied = distances[:, 0] == distances[:, 1]
            nearest = np.where(tied, candidates.min(axis=1), candidates[:, 0])

        indices = nearest.astype(np.uint32).reshape(self.height, self.width)
        check_decoded_indices(indices, site_count)

        logger.debug("Reference diagram calculated", sites=site_count,
                     width=self.width, height=self.height)
        return IndexMap(self.width, self.height, site_count, indices)
