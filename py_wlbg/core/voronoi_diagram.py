"""
Cell-index rasterization of Voronoi diagrams on the GPU.

Every site is drawn as a cone whose apex sits on the site and whose depth
grows with planar distance from it. With depth testing enabled, the closest
cone wins at each pixel, so the color buffer ends up holding the encoded
index of the nearest site. See "Fast Computation of Generalized Voronoi
Diagrams Using Graphics Hardware", Hoff et al., Proc. of SIGGRAPH 99.
"""

import ctypes
import math
import threading
from typing import Optional

import numpy as np
import structlog

from ..config import settings
from .cell_encoder import check_site_count, decode_pixels, encode_color, encode_colors
from .errors import GLContextError, InvalidInputError, InvariantViolationError, ThreadAffinityError
from .gl_context import GLContext
from .index_map import IndexMap
from .shaders import VORONOI_FRAGMENT, VORONOI_VERTEX

logger = structlog.get_logger()

# Radius (in units of the longer canvas side) reaching the far corner from any site.
CONE_RADIUS = math.sqrt(2.0)
# Depth of the cone rim; the apex has depth 0.
CONE_DEPTH = 0.99


def calc_num_cone_slices(radius: float, max_error: float) -> int:
    """
    Number of lateral slices keeping the faceted cone within ``max_error``
    of a true circular cone of the given radius.
    """
    alpha = 2.0 * math.acos((radius - max_error) / radius)
    return int(math.ceil(2.0 * math.pi / alpha))


def create_cone_vertices(width: int, height: int) -> np.ndarray:
    """
    Triangle fan approximating a cone that covers the whole canvas.

    Offsets are in normalized canvas units. The cone is circular in pixel
    space: its radius is measured in units of the longer side and scaled
    per axis, which for landscape canvases reduces to stretching y by the
    aspect ratio. The rim polygon circumscribes the radius circle so that
    faceting never leaves the far corner uncovered.

    Returns:
        float32 array of shape (slices + 2, 3): apex, rim vertices, and the
        first rim vertex repeated to close the fan
    """
    longer = max(width, height)
    max_error = 1.0 / longer
    slices = calc_num_cone_slices(CONE_RADIUS, max_error)

    angle_incr = 2.0 * math.pi / slices
    rim_radius = CONE_RADIUS / math.cos(angle_incr / 2.0)
    scale_x = longer / width
    scale_y = longer / height

    angles = np.arange(slices, dtype=np.float64) * angle_incr
    rim = np.empty((slices, 3), dtype=np.float64)
    rim[:, 0] = rim_radius * np.cos(angles) * scale_x
    rim[:, 1] = rim_radius * np.sin(angles) * scale_y
    rim[:, 2] = CONE_DEPTH

    apex = np.zeros((1, 3), dtype=np.float64)
    return np.vstack([apex, rim, rim[:1]]).astype(np.float32)


def validate_sites(sites) -> np.ndarray:
    """Coerce sites to a contiguous float32 (N, 2) array inside [0, 1]^2."""
    try:
        points = np.asarray(sites, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Sites must be numeric (x, y) pairs: {exc}") from exc
    if points.size == 0:
        check_site_count(0)
    if points.ndim != 2 or points.shape[1] != 2:
        raise InvalidInputError(f"Sites must have shape (N, 2), got {points.shape}")
    check_site_count(len(points))
    if not np.all(np.isfinite(points)):
        raise InvalidInputError("Site coordinates must be finite")
    if np.any(points < 0.0) or np.any(points > 1.0):
        raise InvalidInputError("Site coordinates must lie in [0, 1]")
    return np.ascontiguousarray(points)


def check_decoded_indices(indices: np.ndarray, site_count: int) -> None:
    """Raise if any decoded index falls outside ``[0, site_count)``."""
    bad = indices >= site_count
    if not np.any(bad):
        return
    uncovered = int(np.count_nonzero(indices == site_count))
    corrupt = int(np.count_nonzero(bad)) - uncovered
    logger.error("Decoded index out of range",
                 sites=site_count, uncovered_pixels=uncovered, corrupt_pixels=corrupt)
    raise InvariantViolationError(
        f"{uncovered} uncovered and {corrupt} corrupt pixels decoded for {site_count} sites"
    )


class VoronoiDiagram:
    """
    GPU rendering session producing index maps for a fixed resolution.

    The session owns its OpenGL context, shader program, framebuffer and
    static cone geometry. It has single-thread affinity: the thread that
    calls :meth:`create` is the only one allowed to call :meth:`calculate`,
    :meth:`resize` or :meth:`destroy`. Concurrent diagrams need separate
    instances.
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Invalid canvas size {width}x{height}")
        self.width = width
        self.height = height
        self.cone_vertices = 0

        self._context: Optional[GLContext] = None
        self._owner: Optional[int] = None
        self._program = None
        self._vao = None
        self._cone_vbo = None
        self._position_vbo = None
        self._color_vbo = None
        self._fbo = None
        self._color_rb = None
        self._depth_rb = None

    def __enter__(self) -> "VoronoiDiagram":
        return self.create()

    def __exit__(self, exc_type, exc, tb):
        self.destroy()

    @property
    def created(self) -> bool:
        return self._context is not None

    def _check_owner(self) -> None:
        if self._owner != threading.get_ident():
            raise ThreadAffinityError(
                "VoronoiDiagram must be used from the thread that created it"
            )

    def create(self) -> "VoronoiDiagram":
        """Set up the context, shader pipeline, framebuffer and cone geometry."""
        if self.created:
            self._check_owner()
            return self

        context = GLContext().create()
        gl = context.gl
        from OpenGL.GL import shaders

        self._context = context
        self._owner = threading.get_ident()

        # Core profile requires a bound VAO when the program is validated.
        self._vao = gl.glGenVertexArrays(1)
        gl.glBindVertexArray(self._vao)

        self._program = shaders.compileProgram(
            shaders.compileShader(VORONOI_VERTEX, gl.GL_VERTEX_SHADER),
            shaders.compileShader(VORONOI_FRAGMENT, gl.GL_FRAGMENT_SHADER),
        )

        self._cone_vbo, self._position_vbo, self._color_vbo = gl.glGenBuffers(3)

        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._position_vbo)
        gl.glEnableVertexAttribArray(1)
        gl.glVertexAttribPointer(1, 2, gl.GL_FLOAT, gl.GL_FALSE, 0, ctypes.c_void_p(0))
        gl.glVertexAttribDivisor(1, 1)

        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._color_vbo)
        gl.glEnableVertexAttribArray(2)
        gl.glVertexAttribPointer(2, 3, gl.GL_FLOAT, gl.GL_FALSE, 0, ctypes.c_void_p(0))
        gl.glVertexAttribDivisor(2, 1)

        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)
        gl.glBindVertexArray(0)

        self._build_resolution_resources()

        logger.info("Voronoi diagram created",
                    width=self.width, height=self.height, cone_vertices=self.cone_vertices)
        return self

    def _build_resolution_resources(self) -> None:
        """(Re)build everything that depends on the canvas size."""
        gl = self._context.gl

        cone = create_cone_vertices(self.width, self.height)
        self.cone_vertices = len(cone)

        gl.glBindVertexArray(self._vao)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._cone_vbo)
        gl.glBufferData(gl.GL_ARRAY_BUFFER, cone.nbytes, cone, gl.GL_STATIC_DRAW)
        gl.glEnableVertexAttribArray(0)
        gl.glVertexAttribPointer(0, 3, gl.GL_FLOAT, gl.GL_FALSE, 0, ctypes.c_void_p(0))
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)
        gl.glBindVertexArray(0)

        self._fbo = gl.glGenFramebuffers(1)
        self._color_rb, self._depth_rb = gl.glGenRenderbuffers(2)

        gl.glBindRenderbuffer(gl.GL_RENDERBUFFER, self._color_rb)
        gl.glRenderbufferStorage(gl.GL_RENDERBUFFER, gl.GL_RGBA8, self.width, self.height)
        gl.glBindRenderbuffer(gl.GL_RENDERBUFFER, self._depth_rb)
        gl.glRenderbufferStorage(gl.GL_RENDERBUFFER, gl.GL_DEPTH_COMPONENT24, self.width, self.height)
        gl.glBindRenderbuffer(gl.GL_RENDERBUFFER, 0)

        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, self._fbo)
        gl.glFramebufferRenderbuffer(gl.GL_FRAMEBUFFER, gl.GL_COLOR_ATTACHMENT0,
                                     gl.GL_RENDERBUFFER, self._color_rb)
        gl.glFramebufferRenderbuffer(gl.GL_FRAMEBUFFER, gl.GL_DEPTH_ATTACHMENT,
                                     gl.GL_RENDERBUFFER, self._depth_rb)
        status = gl.glCheckFramebufferStatus(gl.GL_FRAMEBUFFER)
        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, 0)
        if status != gl.GL_FRAMEBUFFER_COMPLETE:
            logger.error("Framebuffer incomplete", status=int(status))
            raise GLContextError(f"Framebuffer incomplete (status 0x{int(status):x})")

    def _release_resolution_resources(self) -> None:
        gl = self._context.gl
        if self._fbo is not None:
            gl.glDeleteFramebuffers(1, [self._fbo])
            gl.glDeleteRenderbuffers(2, [self._color_rb, self._depth_rb])
        self._fbo = self._color_rb = self._depth_rb = None

    def resize(self, width: int, height: int) -> "VoronoiDiagram":
        """Rebuild size-dependent resources if the resolution changed."""
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Invalid canvas size {width}x{height}")
        if (width, height) == (self.width, self.height):
            return self
        self.width = width
        self.height = height
        if self.created:
            self._check_owner()
            self._context.make_current()
            self._release_resolution_resources()
            self._build_resolution_resources()
        logger.info("Voronoi diagram resized",
                    width=width, height=height, cone_vertices=self.cone_vertices)
        return self

    def destroy(self) -> None:
        """Release every GPU resource and the context."""
        if not self.created:
            return
        self._check_owner()
        gl = self._context.gl
        self._context.make_current()
        self._release_resolution_resources()
        gl.glDeleteBuffers(3, [self._cone_vbo, self._position_vbo, self._color_vbo])
        gl.glDeleteVertexArrays(1, [self._vao])
        gl.glDeleteProgram(self._program)
        self._context.destroy()

        self._context = None
        self._owner = None
        self._program = self._vao = None
        self._cone_vbo = self._position_vbo = self._color_vbo = None
        logger.debug("Voronoi diagram destroyed", width=self.width, height=self.height)

    def calculate(self, sites) -> IndexMap:
        """
        Rasterize the Voronoi diagram of ``sites``.

        Blocks until the framebuffer has been read back.

        Args:
            sites: (N, 2) positions in [0, 1]^2, top-left origin

        Returns:
            IndexMap holding the nearest site index of every pixel

        Raises:
            InvalidInputError: empty, malformed or out-of-range site set
            EncodingOverflowError: more than 2^24 - 1 sites
            InvariantViolationError: a pixel decoded to an index >= N
            ThreadAffinityError: called from a non-owning thread
        """
        points = validate_sites(sites)
        if not self.created:
            self.create()
        self._check_owner()

        site_count = len(points)
        colors = encode_colors(site_count)
        gl = self._context.gl
        self._context.make_current()

        gl.glBindVertexArray(self._vao)
        gl.glUseProgram(self._program)

        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._position_vbo)
        gl.glBufferData(gl.GL_ARRAY_BUFFER, points.nbytes, points, gl.GL_STREAM_DRAW)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._color_vbo)
        gl.glBufferData(gl.GL_ARRAY_BUFFER, colors.nbytes, colors, gl.GL_STREAM_DRAW)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)

        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, self._fbo)
        gl.glViewport(0, 0, self.width, self.height)

        gl.glDisable(gl.GL_MULTISAMPLE)
        gl.glDisable(gl.GL_DITHER)
        gl.glDisable(gl.GL_BLEND)
        gl.glClampColor(gl.GL_CLAMP_READ_COLOR, gl.GL_FALSE)

        gl.glEnable(gl.GL_DEPTH_TEST)
        gl.glDepthFunc(gl.GL_LESS)

        # Background decodes to site_count, one past the valid range.
        r, g, b = encode_color(site_count)
        gl.glClearColor(r, g, b, 1.0)
        gl.glClearDepth(1.0)
        gl.glClear(gl.GL_COLOR_BUFFER_BIT | gl.GL_DEPTH_BUFFER_BIT)

        gl.glDrawArraysInstanced(gl.GL_TRIANGLE_FAN, 0, self.cone_vertices, site_count)

        gl.glUseProgram(0)
        gl.glBindVertexArray(0)

        gl.glReadBuffer(gl.GL_COLOR_ATTACHMENT0)
        gl.glPixelStorei(gl.GL_PACK_ALIGNMENT, 1)
        pixels = gl.glReadPixels(0, 0, self.width, self.height, gl.GL_RGB, gl.GL_UNSIGNED_BYTE)
        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, 0)

        rgb = np.frombuffer(pixels, dtype=np.uint8).reshape(self.height, self.width, 3)
        # OpenGL rows start at the bottom; index maps start at the top.
        indices = decode_pixels(rgb[::-1])
        check_decoded_indices(indices, site_count)

        logger.debug("Voronoi diagram calculated", sites=site_count,
                     width=self.width, height=self.height)
        return IndexMap(self.width, self.height, site_count, indices)


def get_or_create_diagram(existing, width: int, height: int, backend: Optional[str] = None):
    """
    Reuse a diagram for the given resolution or create a new one.

    A diagram whose size differs is resized in place, so its context and
    shader pipeline survive and only size-dependent resources are rebuilt.

    Args:
        existing: Previously created diagram (can be None)
        width: Canvas width in pixels
        height: Canvas height in pixels
        backend: ``"gl"`` or ``"kdtree"`` when a new diagram is needed

    Returns:
        Diagram ready for ``calculate``
    """
    if existing is None:
        logger.info("Creating new diagram", width=width, height=height)
        return create_diagram(width, height, backend)
    if (existing.width, existing.height) != (width, height):
        return existing.resize(width, height)
    logger.debug("Reusing existing diagram", width=width, height=height)
    return existing


def create_diagram(width: int, height: int, backend: Optional[str] = None):
    """
    Build an index map rasterizer.

    Args:
        width: Canvas width in pixels
        height: Canvas height in pixels
        backend: ``"gl"`` (cone splatting) or ``"kdtree"`` (CPU reference),
            defaults to ``settings.rasterizer_backend``
    """
    backend = backend or settings.rasterizer_backend
    if backend == "gl":
        return VoronoiDiagram(width, height).create()
    if backend == "kdtree":
        from .reference_diagram import KDTreeDiagram
        return KDTreeDiagram(width, height)
    raise InvalidInputError(f"Unknown rasterizer backend: {backend}")
