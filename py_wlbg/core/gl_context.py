"""
Headless OpenGL context for off-screen rasterization.

The context is created through EGL without a window or surface; rendering
goes into framebuffer objects owned by the caller. PyOpenGL picks its
platform at import time, so the EGL platform is selected before OpenGL is
first imported. Mesa resolves ``EGL_DEFAULT_DISPLAY`` against a window
system unless ``EGL_PLATFORM`` names another platform, and there is none on
a headless host, so the surfaceless platform is the default.
"""

import ctypes
import os
from typing import Optional

import structlog

from ..config import settings
from .errors import GLContextError

logger = structlog.get_logger()


def load_gl():
    """
    Import PyOpenGL's GL and EGL bindings with the EGL platform selected.

    Values already set for ``PYOPENGL_PLATFORM`` or ``EGL_PLATFORM`` are kept.

    Returns:
        Tuple of (GL module, EGL module)
    """
    os.environ.setdefault("PYOPENGL_PLATFORM", "egl")
    os.environ.setdefault("EGL_PLATFORM", "surfaceless")
    try:
        from OpenGL import EGL, GL
    except (ImportError, OSError, AttributeError) as exc:
        raise GLContextError(f"OpenGL/EGL bindings unavailable: {exc}") from exc
    return GL, EGL


class GLContext:
    """Surfaceless EGL context bound to the OpenGL core profile."""

    def __init__(self, major: Optional[int] = None, minor: Optional[int] = None):
        self.major = major if major is not None else settings.gl_version_major
        self.minor = minor if minor is not None else settings.gl_version_minor
        self.gl = None
        self.egl = None
        self._display = None
        self._context = None

    @property
    def created(self) -> bool:
        return self._context is not None

    def create(self) -> "GLContext":
        if self.created:
            return self

        gl, egl = load_gl()
        from OpenGL import arrays

        config_attributes = arrays.GLintArray.asArray([
            egl.EGL_SURFACE_TYPE, egl.EGL_PBUFFER_BIT,
            egl.EGL_RED_SIZE, 8,
            egl.EGL_GREEN_SIZE, 8,
            egl.EGL_BLUE_SIZE, 8,
            egl.EGL_DEPTH_SIZE, 24,
            egl.EGL_COLOR_BUFFER_TYPE, egl.EGL_RGB_BUFFER,
            egl.EGL_RENDERABLE_TYPE, egl.EGL_OPENGL_BIT,
            egl.EGL_CONFORMANT, egl.EGL_OPENGL_BIT,
            egl.EGL_NONE,
        ])
        context_attributes = arrays.GLintArray.asArray([
            egl.EGL_CONTEXT_MAJOR_VERSION, self.major,
            egl.EGL_CONTEXT_MINOR_VERSION, self.minor,
            egl.EGL_CONTEXT_OPENGL_PROFILE_MASK, egl.EGL_CONTEXT_OPENGL_CORE_PROFILE_BIT,
            egl.EGL_NONE,
        ])

        try:
            display = egl.eglGetDisplay(egl.EGL_DEFAULT_DISPLAY)
            major, minor = ctypes.c_long(), ctypes.c_long()
            if not egl.eglInitialize(display, major, minor):
                raise GLContextError("eglInitialize failed")

            num_configs = ctypes.c_long()
            configs = (egl.EGLConfig * 1)()
            if not egl.eglChooseConfig(display, config_attributes, configs, 1, num_configs):
                raise GLContextError("eglChooseConfig failed")
            if num_configs.value < 1:
                raise GLContextError("No EGL config supports off-screen OpenGL rendering")

            if not egl.eglBindAPI(egl.EGL_OPENGL_API):
                raise GLContextError("eglBindAPI(EGL_OPENGL_API) failed")

            context = egl.eglCreateContext(display, configs[0], egl.EGL_NO_CONTEXT, context_attributes)
            if not context:
                raise GLContextError(f"Could not create an OpenGL {self.major}.{self.minor} core context")
        except GLContextError:
            logger.error("EGL context creation failed", major=self.major, minor=self.minor)
            raise
        except Exception as exc:
            logger.error("EGL context creation failed", major=self.major, minor=self.minor, error=str(exc))
            raise GLContextError(f"EGL context creation failed: {exc}") from exc

        self.gl = gl
        self.egl = egl
        self._display = display
        self._context = context
        self.make_current()

        logger.info("OpenGL context created",
                    egl_version=f"{major.value}.{minor.value}",
                    gl_version=f"{self.major}.{self.minor}")
        return self

    def make_current(self) -> None:
        if not self.created:
            raise GLContextError("OpenGL context has not been created")
        egl = self.egl
        if not egl.eglMakeCurrent(self._display, egl.EGL_NO_SURFACE, egl.EGL_NO_SURFACE, self._context):
            raise GLContextError("eglMakeCurrent failed")

    def release(self) -> None:
        if not self.created:
            return
        egl = self.egl
        egl.eglMakeCurrent(self._display, egl.EGL_NO_SURFACE, egl.EGL_NO_SURFACE, egl.EGL_NO_CONTEXT)

    def destroy(self) -> None:
        if not self.created:
            return
        egl = self.egl
        self.release()
        # The default display is shared process-wide; leave it initialized.
        egl.eglDestroyContext(self._display, self._context)
        self._context = None
        self._display = None
        logger.debug("OpenGL context destroyed")
