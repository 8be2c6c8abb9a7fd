"""
Weighted Voronoi kernel: index map rasterization and cell moment accumulation.
"""

from .errors import (
    VoronoiKernelError, InvalidInputError, EncodingOverflowError,
    DimensionMismatchError, InvariantViolationError, ThreadAffinityError,
    GLContextError,
)
from .index_map import IndexMap, DensityField
from .voronoi_diagram import VoronoiDiagram, create_diagram, get_or_create_diagram
from .reference_diagram import KDTreeDiagram
from .voronoi_cells import CellStatistics, CellMoments, accumulate_cells, accumulate_moments

__all__ = ['VoronoiKernelError', 'InvalidInputError', 'EncodingOverflowError',
           'DimensionMismatchError', 'InvariantViolationError', 'ThreadAffinityError',
           'GLContextError', 'IndexMap', 'DensityField',
           'VoronoiDiagram', 'create_diagram', 'get_or_create_diagram', 'KDTreeDiagram',
           'CellStatistics', 'CellMoments', 'accumulate_cells', 'accumulate_moments']
