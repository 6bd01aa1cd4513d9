"""
Direction Stabilizer
====================

Majority vote over the recent raw directions while an obstacle is
detected, so the announced bearing does not flicker frame to frame.

Ties between equally frequent labels go to the label appended most
recently. Outside a detection the history is emptied and the stabilized
bearing is CENTER.
"""

import logging
from collections import Counter
from typing import Iterable

from loomwatch.models.state import DetectionState, Direction


logger = logging.getLogger(__name__)


def majority_direction(history: Iterable[Direction]) -> Direction:
    """
    Most frequent label in the history, most recent wins ties.

    Returns CENTER for an empty history.
    """
    labels = list(history)
    if not labels:
        return Direction.CENTER

    counts = Counter(labels)
    best = max(counts.values())

    for label in reversed(labels):
        if counts[label] == best:
            return label

    return Direction.CENTER


class DirectionStabilizer:
    """
    Stabilizes raw per-frame directions using DetectionState.direction_history.

    Example:
        stabilizer = DirectionStabilizer()
        stable = stabilizer.update(state, Direction.LEFT)
    """

    def update(self, state: DetectionState, raw_direction: Direction) -> Direction:
        """
        Update the history with this frame's direction.

        Must run after the state machine has decided is_detected for the
        frame.

        Args:
            state: Session state
            raw_direction: Direction classified for this frame

        Returns:
            Stabilized direction
        """
        if not state.is_detected:
            state.direction_history.clear()
            return Direction.CENTER

        state.direction_history.append(raw_direction)
        return majority_direction(state.direction_history)
