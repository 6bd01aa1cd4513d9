"""
Flow Reading Models
===================

Per-frame measurements derived from a flow field.
"""

from dataclasses import dataclass

from loomwatch.models.state import Direction


@dataclass(frozen=True, slots=True)
class DirectionReading:
    """
    Result of the spatial direction classification.

    Attributes:
        direction: Classified bearing for this frame
        left: Mean magnitude of the left zone
        center: Mean magnitude of the center zone
        right: Mean magnitude of the right zone
    """

    direction: Direction
    left: float
    center: float
    right: float

    def __repr__(self) -> str:
        return (
            f"DirectionReading({self.direction.value}, "
            f"L={self.left:.3f}, C={self.center:.3f}, R={self.right:.3f})"
        )


@dataclass(frozen=True, slots=True)
class FrameMeasurements:
    """
    Raw (unsmoothed) measurements for one frame.

    Attributes:
        avg_magnitude: Mean of the (blurred) magnitude field
        looming_score: Mean outward radial flow component
        reading: Direction classification with zone magnitudes
    """

    avg_magnitude: float
    looming_score: float
    reading: DirectionReading
