"""
Radial Grid
===========

Precomputed per-pixel unit vectors pointing away from the frame center.

The grid is a pure function of the working resolution. It is built once
when a session starts and rebuilt whenever the resolution changes; the
looming score projects every flow vector onto it.

Formula:
    (cx, cy) = (W / 2, H / 2)
    r = sqrt((x - cx)² + (y - cy)²) + ε,   ε = 1e-6
    rx = (x - cx) / r,  ry = (y - cy) / r
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from loomwatch.errors import ConfigurationError


logger = logging.getLogger(__name__)

RADIAL_EPSILON = 1e-6


@dataclass(frozen=True)
class RadialGrid:
    """
    Unit vectors from the frame center to each pixel.

    Attributes:
        width: Working width the grid was built for
        height: Working height the grid was built for
        rx: Horizontal unit component, shape (H, W), read-only
        ry: Vertical unit component, shape (H, W), read-only
    """

    width: int
    height: int
    rx: np.ndarray
    ry: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width) of the grid."""
        return (self.height, self.width)

    def matches(self, width: int, height: int) -> bool:
        """Whether the grid was built for the given resolution."""
        return self.width == width and self.height == height


def build_radial_grid(width: int, height: int) -> RadialGrid:
    """
    Build the radial unit-vector grid for a resolution.

    Args:
        width: Working width in pixels (> 0)
        height: Working height in pixels (> 0)

    Returns:
        Immutable RadialGrid

    Raises:
        ConfigurationError: If width or height is not positive
    """
    if width <= 0 or height <= 0:
        raise ConfigurationError(
            f"Radial grid dimensions must be > 0, got {width}x{height}"
        )

    cx = width / 2.0
    cy = height / 2.0

    xs, ys = np.meshgrid(
        np.arange(width, dtype=np.float64) - cx,
        np.arange(height, dtype=np.float64) - cy,
    )
    r = np.sqrt(xs ** 2 + ys ** 2) + RADIAL_EPSILON

    rx = (xs / r).astype(np.float32)
    ry = (ys / r).astype(np.float32)
    rx.setflags(write=False)
    ry.setflags(write=False)

    logger.info(f"Radial grid built: {width}x{height}")

    return RadialGrid(width=width, height=height, rx=rx, ry=ry)
