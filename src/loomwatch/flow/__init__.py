"""
Flow Module
===========

Flow fields and the per-frame metrics derived from them.

This module provides:
    - FlowField and the Farnebäck estimator that produces it
    - RadialGrid precomputation
    - Magnitude field, looming score and direction classification

No tracking, no depth, no recognition: only aggregate flow metrics.
"""

from loomwatch.flow.optical_flow import (
    FarnebackFlowEstimator,
    FlowField,
    OpticalFlowEstimator,
)
from loomwatch.flow.radial_grid import RadialGrid, build_radial_grid
from loomwatch.flow.metrics import (
    classify_direction,
    compute_looming_score,
    compute_magnitude_field,
    compute_mean_magnitude,
)

__all__ = [
    # Flow estimation
    "OpticalFlowEstimator",
    "FarnebackFlowEstimator",
    "FlowField",
    # Radial grid
    "RadialGrid",
    "build_radial_grid",
    # Metrics
    "compute_magnitude_field",
    "compute_mean_magnitude",
    "compute_looming_score",
    "classify_direction",
]
