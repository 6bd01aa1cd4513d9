"""
Signal processors for flow extraction, smoothing, integration and
adaptive baselines.
"""

from loomwatch.signals.baseline import AdaptiveThresholds, BaselineEstimator
from loomwatch.signals.flow_processor import FlowSignalProcessor
from loomwatch.signals.motion import MotionSmoother, TemporalIntegrator

__all__ = [
    "AdaptiveThresholds",
    "BaselineEstimator",
    "FlowSignalProcessor",
    "MotionSmoother",
    "TemporalIntegrator",
]
