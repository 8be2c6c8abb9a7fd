"""Error taxonomy of the Voronoi kernel."""


class VoronoiKernelError(Exception):
    """Base class for every kernel failure."""


class InvalidInputError(VoronoiKernelError, ValueError):
    """Empty or malformed site set, or malformed auxiliary input."""


class EncodingOverflowError(VoronoiKernelError, ValueError):
    """Site count exceeds the 24-bit color index space."""


class DimensionMismatchError(VoronoiKernelError, ValueError):
    """Index map and density field sizes disagree."""


class InvariantViolationError(VoronoiKernelError, RuntimeError):
    """Decoded index out of range (uncovered pixel or corrupt read-back)."""


class ThreadAffinityError(VoronoiKernelError, RuntimeError):
    """A rendering session was used from a thread that does not own it."""


class GLContextError(VoronoiKernelError, RuntimeError):
    """Headless OpenGL context could not be created or bound."""
