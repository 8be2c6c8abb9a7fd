"""
Per-cell statistics of a rasterized Voronoi diagram.

Each cell's area, density mass, centroid and principal-axis orientation are
derived from its raw image moments, accumulated over all pixels it owns.

The canvas is split into fixed-width column partitions that are reduced in
parallel. Every partition yields a sparse table holding only the cells it
touched; the tables are then summed into the global accumulators in
partition order. Because partitioning does not depend on the number of
workers, results are bitwise identical for any worker count.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..config import settings
from .errors import DimensionMismatchError, InvalidInputError, InvariantViolationError
from .index_map import DensityField, IndexMap

logger = structlog.get_logger()


@dataclass
class CellStatistics:
    """
    Statistics of one Voronoi cell.

    ``centroid`` is normalized to [0, 1]^2 like the sites. A cell that owns no
    pixels keeps its default (or carried-forward) centroid and orientation;
    callers detect it through ``sum_density == 0``.
    """
    area: int = 0
    sum_density: float = 0.0
    centroid: Tuple[float, float] = (0.0, 0.0)
    orientation: float = 0.0


@dataclass(eq=False)
class CellMoments:
    """Raw moments of every cell, in pixel-index units."""
    area: np.ndarray
    m00: np.ndarray
    m10: np.ndarray
    m01: np.ndarray
    m11: np.ndarray
    m20: np.ndarray
    m02: np.ndarray
    width: int = field(default=0)
    height: int = field(default=0)

    @classmethod
    def zeros(cls, count: int, width: int = 0, height: int = 0) -> "CellMoments":
        return cls(np.zeros(count, dtype=np.int64),
                   *(np.zeros(count, dtype=np.float64) for _ in range(6)),
                   width=width, height=height)

    def __len__(self) -> int:
        return len(self.area)

    def add(self, partial: "SparseMoments") -> None:
        """Sum a sparse partition table into these accumulators."""
        keys = partial.keys
        self.area[keys] += partial.area
        self.m00[keys] += partial.moments[0]
        self.m10[keys] += partial.moments[1]
        self.m01[keys] += partial.moments[2]
        self.m11[keys] += partial.moments[3]
        self.m20[keys] += partial.moments[4]
        self.m02[keys] += partial.moments[5]


class SparseMoments(NamedTuple):
    """Moments of the cells touched by one partition."""
    keys: np.ndarray     # distinct cell ids, sorted
    area: np.ndarray     # pixel count per key
    moments: np.ndarray  # (6, len(keys)): m00, m10, m01, m11, m20, m02


def accumulate_partition(indices: np.ndarray, weights: np.ndarray, x_offset: int) -> SparseMoments:
    """
    Accumulate raw moments of a block of columns.

    Args:
        indices: (height, columns) cell ids of the block
        weights: (height, columns) density weights of the block
        x_offset: Canvas column of the block's first column

    Returns:
        Sparse table keyed by the cell ids present in the block
    """
    height, columns = indices.shape
    ys, xs = np.mgrid[0:height, x_offset:x_offset + columns]
    x = xs.ravel().astype(np.float64)
    y = ys.ravel().astype(np.float64)
    w = weights.ravel()

    keys, inverse = np.unique(indices.ravel(), return_inverse=True)
    inverse = inverse.ravel()
    n = len(keys)

    area = np.bincount(inverse, minlength=n)
    xw = x * w
    yw = y * w
    moments = np.stack([
        np.bincount(inverse, weights=w, minlength=n),
        np.bincount(inverse, weights=xw, minlength=n),
        np.bincount(inverse, weights=yw, minlength=n),
        np.bincount(inverse, weights=xw * y, minlength=n),
        np.bincount(inverse, weights=xw * x, minlength=n),
        np.bincount(inverse, weights=yw * y, minlength=n),
    ])
    return SparseMoments(keys, area, moments)


def _check_inputs(index_map: IndexMap, density: DensityField) -> None:
    if index_map.shape != density.shape:
        raise DimensionMismatchError(
            f"Index map is {index_map.width}x{index_map.height} but density field is "
            f"{density.width}x{density.height}"
        )
    if index_map.site_count <= 0:
        raise InvalidInputError("Index map encodes no sites")
    largest = int(index_map.data.max())
    if largest >= index_map.site_count:
        logger.error("Index map holds out-of-range cell", largest=largest,
                     sites=index_map.site_count)
        raise InvariantViolationError(
            f"Index map value {largest} out of range for {index_map.site_count} sites"
        )


def accumulate_moments(index_map: IndexMap, density: DensityField,
                       workers: Optional[int] = None,
                       chunk_columns: Optional[int] = None) -> CellMoments:
    """
    Raw moments of every cell of ``index_map`` weighted by ``density``.

    Args:
        index_map: Rasterized diagram
        density: Density field of identical size
        workers: Thread count, defaults to ``settings.accumulator_workers``
        chunk_columns: Partition width, defaults to ``settings.accumulator_chunk_columns``
    """
    _check_inputs(index_map, density)
    if workers is None:
        workers = settings.accumulator_workers
    if chunk_columns is None:
        chunk_columns = settings.accumulator_chunk_columns
    if workers < 1 or chunk_columns < 1:
        raise InvalidInputError("workers and chunk_columns must be positive")

    width, height = index_map.width, index_map.height
    starts = range(0, width, chunk_columns)

    logger.debug("Accumulating cell moments", cells=index_map.site_count,
                 partitions=len(starts), workers=workers)

    def run(x0: int) -> SparseMoments:
        x1 = min(x0 + chunk_columns, width)
        return accumulate_partition(index_map.data[:, x0:x1], density.values[:, x0:x1], x0)

    totals = CellMoments.zeros(index_map.site_count, width, height)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        # map() yields in submission order, which fixes the summation order.
        for partial in executor.map(run, starts):
            totals.add(partial)
    return totals


def finalize_cells(moments: CellMoments,
                   previous: Optional[Sequence[CellStatistics]] = None) -> List[CellStatistics]:
    """
    Turn raw moments into per-cell statistics.

    Cells without mass keep the centroid and orientation of ``previous``
    when given, otherwise the ``CellStatistics`` defaults.
    """
    count = len(moments)
    if previous is not None and len(previous) != count:
        raise InvalidInputError(
            f"Expected {count} previous cell statistics, got {len(previous)}"
        )

    m00 = moments.m00
    valid = m00 > 0.0
    safe = np.where(valid, m00, 1.0)

    cx = moments.m10 / safe
    cy = moments.m01 / safe
    mu20 = moments.m20 / safe - cx * cx
    mu11 = moments.m11 / safe - cx * cy
    mu02 = moments.m02 / safe - cy * cy
    orientation = np.arctan2(2.0 * mu11, mu20 - mu02) / 2.0

    centroid_x = (cx + 0.5) / moments.width
    centroid_y = (cy + 0.5) / moments.height

    cells = []
    for i in range(count):
        if valid[i]:
            centroid = (float(centroid_x[i]), float(centroid_y[i]))
            angle = float(orientation[i])
        elif previous is not None:
            centroid = tuple(previous[i].centroid)
            angle = previous[i].orientation
        else:
            centroid = (0.0, 0.0)
            angle = 0.0
        cells.append(CellStatistics(
            area=int(moments.area[i]),
            sum_density=float(m00[i]),
            centroid=centroid,
            orientation=angle,
        ))
    return cells


def accumulate_cells(index_map: IndexMap, density: DensityField,
                     previous: Optional[Sequence[CellStatistics]] = None,
                     workers: Optional[int] = None,
                     chunk_columns: Optional[int] = None) -> List[CellStatistics]:
    """
    Compute area, mass, centroid and orientation of every Voronoi cell.

    Args:
        index_map: Rasterized diagram
        density: Density field of identical size
        previous: Statistics of the previous iteration; empty cells carry
            their centroid and orientation forward
        workers: Thread count, defaults to ``settings.accumulator_workers``
        chunk_columns: Partition width, defaults to ``settings.accumulator_chunk_columns``

    Returns:
        One CellStatistics per site, in site order

    Raises:
        DimensionMismatchError: map and density sizes differ
        InvariantViolationError: map holds an index >= its site count
    """
    moments = accumulate_moments(index_map, density, workers, chunk_columns)
    cells = finalize_cells(moments, previous)

    empty = int(np.count_nonzero(moments.m00 <= 0.0))
    if empty:
        logger.debug("Cells without pixels", empty=empty, cells=len(cells))
    return cells
