"""
Flow Metrics
============

Per-frame scalar metrics computed from a dense flow field.

This module provides:
    - Magnitude field: per-pixel speed, Gaussian-blurred
    - Mean magnitude: whole-frame motion intensity
    - Looming score: mean outward radial flow (expansion signature)
    - Direction classification: left / center / right zone comparison

Formulas:
    magnitude = GaussianBlur(sqrt(u² + v²))
    p = u·rx + v·ry
    looming_score = mean(p | p > 0), or 0.0 when no pixel expands

Design Note:
    Averaging only the outward-pointing projections isolates expansion
    from uniform camera pan, which would otherwise cancel to near zero
    when averaged over the whole frame.
"""

import logging

import cv2
import numpy as np

from loomwatch.errors import ConfigurationError
from loomwatch.flow.optical_flow import FlowField
from loomwatch.flow.radial_grid import RadialGrid
from loomwatch.models.flow import DirectionReading
from loomwatch.models.state import Direction


logger = logging.getLogger(__name__)


LEFT_ZONE_END = 0.30
RIGHT_ZONE_START = 0.70
CENTER_BIAS = 0.9
DIRECTION_MARGIN = 0.4


def compute_magnitude_field(flow: FlowField, blur_kernel: int = 5) -> np.ndarray:
    """
    Compute the per-pixel flow magnitude, optionally blurred.

    Args:
        flow: Dense flow field
        blur_kernel: Odd Gaussian kernel size; values <= 1 disable blurring

    Returns:
        Magnitude field (H, W), float32
    """
    magnitude = flow.magnitude.astype(np.float32)
    if blur_kernel > 1:
        magnitude = cv2.GaussianBlur(magnitude, (blur_kernel, blur_kernel), 0)
    return magnitude


def compute_mean_magnitude(magnitude: np.ndarray) -> float:
    """
    Mean of a magnitude field.

    Returns:
        Mean magnitude in pixels/frame, 0.0 for an empty field
    """
    if magnitude.size == 0:
        return 0.0
    return float(np.mean(magnitude))


def compute_looming_score(flow: FlowField, grid: RadialGrid) -> float:
    """
    Compute the looming (expansion) score.

    Projects each flow vector onto the outward radial unit vector and
    averages only the positive projections.

    Args:
        flow: Dense flow field
        grid: Radial grid of the same dimensions

    Returns:
        Mean positive radial projection, 0.0 if no pixel expands

    Raises:
        ConfigurationError: If flow and grid dimensions differ
    """
    if flow.shape != grid.shape:
        raise ConfigurationError(
            f"Flow shape {flow.shape} does not match radial grid "
            f"{grid.shape}; rebuild the grid for the new resolution"
        )

    projection = flow.u * grid.rx + flow.v * grid.ry
    outward = projection[projection > 0]

    if outward.size == 0:
        return 0.0

    return float(np.mean(outward))


def _zone_mean(zone: np.ndarray) -> float:
    if zone.size == 0:
        return 0.0
    return float(np.mean(zone))


def classify_direction(
    magnitude: np.ndarray,
    left_edge: float = LEFT_ZONE_END,
    right_edge: float = RIGHT_ZONE_START,
    center_bias: float = CENTER_BIAS,
    margin: float = DIRECTION_MARGIN,
) -> DirectionReading:
    """
    Classify the dominant motion bearing from a magnitude field.

    Columns are split into left [0, 0.3W), center [0.3W, 0.7W) and
    right [0.7W, W). Rules, first match wins:
        1. center >= 0.9 * max(zones)      -> center
        2. left > right * (1 + margin)     -> left
        3. right > left * (1 + margin)     -> right
        4. otherwise                       -> center

    Args:
        magnitude: Magnitude field (H, W)
        left_edge: End of the left zone as a fraction of width
        right_edge: Start of the right zone as a fraction of width
        center_bias: Fraction of the max the center needs to win
        margin: Relative margin one side needs over the other

    Returns:
        DirectionReading with direction and zone means (empty zones are 0.0)
    """
    width = magnitude.shape[1]
    left_end = int(width * left_edge)
    right_start = int(width * right_edge)

    left = _zone_mean(magnitude[:, :left_end])
    center = _zone_mean(magnitude[:, left_end:right_start])
    right = _zone_mean(magnitude[:, right_start:])

    max_mag = max(left, center, right)

    if center >= center_bias * max_mag:
        direction = Direction.CENTER
    elif left > right * (1 + margin):
        direction = Direction.LEFT
    elif right > left * (1 + margin):
        direction = Direction.RIGHT
    else:
        direction = Direction.CENTER

    return DirectionReading(direction=direction, left=left, center=center, right=right)
