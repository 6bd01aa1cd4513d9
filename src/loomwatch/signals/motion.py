"""
Motion Signal Processors
========================

Temporal filters over the per-frame mean flow magnitude.

This module provides:
    - MotionSmoother: single-pole exponential smoothing
    - TemporalIntegrator: asymmetric leaky accumulator

Smoothing Choice (EMA):
    smoothed = α * avg + (1 - α) * smoothed,  α = 0.5
    The result is always a convex combination of the new sample and the
    previous value, so it never leaves their range.

Integration Choice (asymmetric leak):
    clear:    integrator = β * integrator + avg,   β = 0.88
    detected: integrator = max(0, 0.95 * integrator)
    Charging while clear catches a slow sustained approach that never
    crosses the single-frame magnitude threshold; decaying while detected
    keeps the trailing motion of the same event from re-triggering.

Both processors mutate the DetectionState they are given and must run
before the state machine decides the current frame, so they see the
previous frame's detection state.
"""

import logging

from loomwatch.errors import ConfigurationError
from loomwatch.models.state import DetectionState


logger = logging.getLogger(__name__)


SMOOTHING_ALPHA = 0.5
INTEGRATOR_CHARGE_DECAY = 0.88
INTEGRATOR_DETECTED_DECAY = 0.95


class MotionSmoother:
    """
    Exponential smoothing of mean flow magnitude.

    Applied to every frame unconditionally.

    Example:
        smoother = MotionSmoother(alpha=0.5)
        smoothed = smoother.update(state, avg_magnitude=1.2)
    """

    def __init__(self, alpha: float = SMOOTHING_ALPHA) -> None:
        """
        Initialize the smoother.

        Args:
            alpha: Weight of the newest sample, in (0, 1]
                - 0.2 = very smooth, slow response
                - 0.5 = balanced (default)
                - 1.0 = no smoothing
        """
        if not 0 < alpha <= 1:
            raise ConfigurationError(f"smoothing alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha

    def update(self, state: DetectionState, avg_magnitude: float) -> float:
        """
        Fold the frame's mean magnitude into the smoothed value.

        Args:
            state: Session state (smoothed_magnitude is updated in place)
            avg_magnitude: Mean of the frame's magnitude field

        Returns:
            New smoothed magnitude
        """
        state.smoothed_magnitude = (
            self.alpha * avg_magnitude +
            (1 - self.alpha) * state.smoothed_magnitude
        )
        return state.smoothed_magnitude


class TemporalIntegrator:
    """
    Asymmetric leaky integrator of raw mean magnitude.

    Charges while the session is clear and only decays while detected.
    The value never goes negative.
    """

    def __init__(
        self,
        charge_decay: float = INTEGRATOR_CHARGE_DECAY,
        detected_decay: float = INTEGRATOR_DETECTED_DECAY,
    ) -> None:
        """
        Initialize the integrator.

        Args:
            charge_decay: Leak factor β applied before adding the sample, in [0, 1)
            detected_decay: Decay factor applied while detected, in [0, 1]
        """
        errors = []
        if not 0 <= charge_decay < 1:
            errors.append(f"charge_decay must be in [0, 1), got {charge_decay}")
        if not 0 <= detected_decay <= 1:
            errors.append(f"detected_decay must be in [0, 1], got {detected_decay}")
        if errors:
            raise ConfigurationError(
                "Integrator parameter validation failed:\n" + "\n".join(errors)
            )

        self.charge_decay = charge_decay
        self.detected_decay = detected_decay

    def update(self, state: DetectionState, avg_magnitude: float) -> float:
        """
        Charge or decay the integrator based on the current detection state.

        Args:
            state: Session state; is_detected must still hold the previous
                frame's decision
            avg_magnitude: Mean of the frame's magnitude field (>= 0)

        Returns:
            New integrator value
        """
        if state.is_detected:
            state.integrator = max(0.0, state.integrator * self.detected_decay)
        else:
            state.integrator = max(
                0.0, self.charge_decay * state.integrator + avg_magnitude
            )
        return state.integrator
