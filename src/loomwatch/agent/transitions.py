"""
State Transition Logic
======================

Detection state machine with threshold hysteresis.

This module implements the per-frame CLEAR / DETECTED decision.

Key Features:
    - Three independent triggers: magnitude, integrator, looming
    - Fixed trigger priority for the mode tag: MAG > INT > LOOM
    - Separate enter (high) and exit (low) thresholds to avoid chattering
    - Exit also requires the integrator to have drained below half its
      trigger level

Transition Rules (evaluated in order):
    1. mag or int or loom             -> DETECTED, mode = first trigger
    2. s < low and I < 0.5 * INT      -> CLEAR, mode = NONE
    3. otherwise                      -> unchanged, mode = HOLD if detected else NONE

    mag  = s > high and s > MIN_MAG
    int  = I > INT
    loom = L > LOOM
"""

import logging
from dataclasses import dataclass

from loomwatch.errors import ConfigurationError
from loomwatch.models.state import DetectionMode, DetectionState
from loomwatch.signals.baseline import AdaptiveThresholds


logger = logging.getLogger(__name__)


@dataclass
class DetectionThresholds:
    """
    Fixed thresholds of the state machine.

    The magnitude enter/exit thresholds are adaptive and supplied per
    frame by the BaselineEstimator.
    """

    integration: float = 15.0
    looming: float = 0.3
    min_magnitude: float = 0.5
    release_integration_factor: float = 0.5


@dataclass
class TransitionResult:
    """Result of a transition evaluation."""

    is_detected: bool
    detection_mode: DetectionMode
    was_detected: bool
    mag_detected: bool = False
    int_detected: bool = False
    loom_detected: bool = False

    @property
    def transition_occurred(self) -> bool:
        return self.is_detected != self.was_detected

    @property
    def entered_detection(self) -> bool:
        """CLEAR -> DETECTED this frame."""
        return self.is_detected and not self.was_detected

    def __repr__(self) -> str:
        state = "DETECTED" if self.is_detected else "CLEAR"
        return f"TransitionResult({state}, {self.detection_mode.value})"


class DetectionStateMachine:
    """
    CLEAR / DETECTED state machine with hysteresis.

    Example:
        machine = DetectionStateMachine()
        result = machine.evaluate(state, thresholds, looming_score=0.1)
    """

    def __init__(self, thresholds: DetectionThresholds = None) -> None:
        """
        Initialize the state machine.

        Args:
            thresholds: Fixed thresholds (uses defaults if None)

        Raises:
            ConfigurationError: If a threshold is not positive
        """
        self.thresholds = thresholds or DetectionThresholds()

        th = self.thresholds
        if th.integration <= 0 or th.looming <= 0 or th.min_magnitude < 0:
            raise ConfigurationError(f"Invalid detection thresholds: {th}")
        if not 0 < th.release_integration_factor <= 1:
            raise ConfigurationError(
                f"release_integration_factor must be in (0, 1], "
                f"got {th.release_integration_factor}"
            )

        logger.info(
            f"DetectionStateMachine initialized: "
            f"int={th.integration}, loom={th.looming}, min_mag={th.min_magnitude}"
        )

    def evaluate(
        self,
        state: DetectionState,
        adaptive: AdaptiveThresholds,
        looming_score: float,
    ) -> TransitionResult:
        """
        Decide the detection state for the current frame.

        Reads smoothed_magnitude and integrator from the state (already
        updated for this frame) and writes is_detected / detection_mode.

        Args:
            state: Session state
            adaptive: Enter/exit thresholds in effect for this frame
            looming_score: Looming score of this frame

        Returns:
            TransitionResult describing the decision
        """
        th = self.thresholds
        smoothed = state.smoothed_magnitude
        integrator = state.integrator
        was_detected = state.is_detected

        mag_detected = smoothed > adaptive.high and smoothed > th.min_magnitude
        int_detected = integrator > th.integration
        loom_detected = looming_score > th.looming

        if mag_detected or int_detected or loom_detected:
            state.is_detected = True
            if mag_detected:
                state.detection_mode = DetectionMode.MAG
            elif int_detected:
                state.detection_mode = DetectionMode.INT
            else:
                state.detection_mode = DetectionMode.LOOM
        elif (
            smoothed < adaptive.low and
            integrator < th.integration * th.release_integration_factor
        ):
            state.is_detected = False
            state.detection_mode = DetectionMode.NONE
        else:
            state.detection_mode = (
                DetectionMode.HOLD if state.is_detected else DetectionMode.NONE
            )

        result = TransitionResult(
            is_detected=state.is_detected,
            detection_mode=state.detection_mode,
            was_detected=was_detected,
            mag_detected=mag_detected,
            int_detected=int_detected,
            loom_detected=loom_detected,
        )

        if result.transition_occurred:
            logger.warning(
                f"DETECTION STATE CHANGE: "
                f"{'CLEAR' if was_detected else 'DETECTED'} "
                f"[frame {state.frame_index}] mode={state.detection_mode.value} "
                f"mag={smoothed:.2f} (high={adaptive.high:.2f}, low={adaptive.low:.2f}) "
                f"int={integrator:.1f} loom={looming_score:.3f}"
            )

        return result
