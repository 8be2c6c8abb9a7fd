"""Configuration management."""

import os

import numpy as np
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Kernel settings pulled from environment variables (prefix ``WLBG_``)."""

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Logging format (json or plain)")

    # Moment accumulation
    accumulator_workers: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
        description="Worker threads used by the cell moment accumulator",
    )
    accumulator_chunk_columns: int = Field(
        default=64, ge=1, description="Canvas columns per accumulation partition"
    )

    # Density derivation
    density_epsilon: float = Field(
        default=float(np.finfo(np.float32).eps),
        gt=0.0,
        le=1.0,
        description="Lower bound of every density weight",
    )

    # Rasterization
    rasterizer_backend: str = Field(
        default="gl", pattern="^(gl|kdtree)$", description="Index map backend"
    )
    gl_version_major: int = Field(default=3, description="Requested OpenGL major version")
    gl_version_minor: int = Field(default=3, description="Requested OpenGL minor version")

    model_config = SettingsConfigDict(
        env_prefix="WLBG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
