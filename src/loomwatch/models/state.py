"""
Detection State Models
======================

This module defines the per-session state of the detection pipeline.

Core Concepts:
    - Direction: Coarse bearing of the dominant motion (left/center/right)
    - DetectionMode: Which signal triggered or holds the detection
    - DetectionState: The single mutable record owned by a session

Lifecycle:
    A DetectionState is created at session start, mutated exactly once per
    delivered frame (strictly sequentially) and discarded at session end.
    Starting a new session replaces the record entirely.

Example:
    from loomwatch.models.state import DetectionState

    state = DetectionState.create()
    state.smoothed_magnitude = 0.4
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional


BASELINE_CAPACITY = 30
DIRECTION_HISTORY_SIZE = 5


class Direction(str, Enum):
    """
    Coarse bearing of an approaching obstacle.

    CENTER is the default: ties and ambiguous frames resolve forward.
    """

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class DetectionMode(str, Enum):
    """
    Detection mode tag.

    Attributes:
        MAG: Smoothed magnitude exceeded the high threshold
        INT: Temporal integrator exceeded its threshold
        LOOM: Looming (radial expansion) score exceeded its threshold
        HOLD: Still detected, held by hysteresis
        NONE: Clear
    """

    MAG = "MAG"
    INT = "INT"
    LOOM = "LOOM"
    HOLD = "HOLD"
    NONE = "NONE"


def _baseline_deque() -> Deque[float]:
    return deque(maxlen=BASELINE_CAPACITY)


def _direction_deque() -> Deque[Direction]:
    return deque(maxlen=DIRECTION_HISTORY_SIZE)


@dataclass
class DetectionState:
    """
    Mutable detection state for one session.

    Owned exclusively by the pipeline. Stages receive it by reference and
    mutate their own fields; no locking is performed, so frames must be
    processed one at a time.

    Attributes:
        smoothed_magnitude: Exponentially smoothed mean flow magnitude
        integrator: Leaky accumulator of raw magnitude (never negative)
        is_detected: Current hysteresis state
        detection_mode: Mode tag of the last processed frame
        baseline_samples: Smoothed magnitudes collected while clear (FIFO)
        direction_history: Raw directions collected while detected (FIFO)
        last_alert_timestamp_ms: Time of the last raised alert, if any
        frame_index: Number of frames delivered to this session
    """

    smoothed_magnitude: float = 0.0
    integrator: float = 0.0
    is_detected: bool = False
    detection_mode: DetectionMode = DetectionMode.NONE
    baseline_samples: Deque[float] = field(default_factory=_baseline_deque)
    direction_history: Deque[Direction] = field(default_factory=_direction_deque)
    last_alert_timestamp_ms: Optional[float] = None
    frame_index: int = 0

    @classmethod
    def create(
        cls,
        baseline_capacity: int = BASELINE_CAPACITY,
        direction_history_size: int = DIRECTION_HISTORY_SIZE,
    ) -> "DetectionState":
        """Create a fresh state with the given FIFO capacities."""
        return cls(
            baseline_samples=deque(maxlen=baseline_capacity),
            direction_history=deque(maxlen=direction_history_size),
        )
