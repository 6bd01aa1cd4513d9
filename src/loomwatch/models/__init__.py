"""
Data Models
===========

Models for the LoomWatch detection pipeline.

Models:
    Input:
        - FrameMessage: Schema for messages from the camera source

    State:
        - Direction: Coarse bearing (left, center, right)
        - DetectionMode: MAG, INT, LOOM, HOLD, NONE
        - DetectionState: Mutable per-session record

    Flow:
        - DirectionReading: Direction plus zone magnitudes
        - FrameMeasurements: Raw per-frame measurements

    Output:
        - AlertSignal: Alert decision for the speech collaborator
        - DetectionEvent: Immutable per-frame result
"""

from loomwatch.models.input import FrameMessage
from loomwatch.models.state import DetectionMode, DetectionState, Direction
from loomwatch.models.flow import DirectionReading, FrameMeasurements
from loomwatch.models.output import AlertSignal, DetectionEvent

__all__ = [
    # Input
    "FrameMessage",
    # State
    "Direction",
    "DetectionMode",
    "DetectionState",
    # Flow
    "DirectionReading",
    "FrameMeasurements",
    # Output
    "AlertSignal",
    "DetectionEvent",
]
