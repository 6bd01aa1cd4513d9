"""
Adaptive Baseline
=================

Rolling baseline of calm-period motion, used to adapt the hysteresis
thresholds to the scene.

A scene with persistently high ambient motion (rough handheld walking)
should not trigger on its own noise. While clear, the smoothed magnitude
is sampled into a bounded FIFO; once enough samples exist, their median
scales the thresholds, clamped to a band around the nominal values so
they cannot drift to degenerate settings.

Formulas:
    baseline = median(samples)                           if n >= 10
    high = clamp(1.4 * baseline, 0.6 * HIGH, 1.5 * HIGH)  if baseline > 0.3
    low  = clamp(1.0 * baseline, 0.6 * LOW,  1.5 * LOW)   if baseline > 0.3
    otherwise high = HIGH (2.0), low = LOW (1.4)

The median of an even-sized window is its upper middle element.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from loomwatch.errors import ConfigurationError
from loomwatch.models.state import DetectionState


logger = logging.getLogger(__name__)


NOMINAL_HIGH = 2.0
NOMINAL_LOW = 1.4


@dataclass(frozen=True, slots=True)
class AdaptiveThresholds:
    """
    Hysteresis thresholds in effect for one frame.

    Attributes:
        high: Enter threshold for smoothed magnitude
        low: Exit threshold for smoothed magnitude
        baseline: Median of baseline samples, None if too few
        adapted: Whether the thresholds were derived from the baseline
    """

    high: float
    low: float
    baseline: Optional[float] = None
    adapted: bool = False


def _clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


class BaselineEstimator:
    """
    Rolling median of smoothed magnitude collected during clear periods.

    The sample FIFO lives in DetectionState.baseline_samples; its maxlen
    is the window capacity.
    """

    def __init__(
        self,
        nominal_high: float = NOMINAL_HIGH,
        nominal_low: float = NOMINAL_LOW,
        min_samples: int = 10,
        activation_floor: float = 0.3,
        high_multiplier: float = 1.4,
        low_multiplier: float = 1.0,
        clamp_min: float = 0.6,
        clamp_max: float = 1.5,
    ) -> None:
        errors = []
        if nominal_low > nominal_high:
            errors.append(f"nominal_low ({nominal_low}) exceeds nominal_high ({nominal_high})")
        if min_samples < 1:
            errors.append(f"min_samples must be >= 1, got {min_samples}")
        if clamp_min > clamp_max:
            errors.append(f"clamp_min ({clamp_min}) exceeds clamp_max ({clamp_max})")
        if errors:
            raise ConfigurationError(
                "Baseline parameter validation failed:\n" + "\n".join(errors)
            )

        self.nominal_high = nominal_high
        self.nominal_low = nominal_low
        self.min_samples = min_samples
        self.activation_floor = activation_floor
        self.high_multiplier = high_multiplier
        self.low_multiplier = low_multiplier
        self.clamp_min = clamp_min
        self.clamp_max = clamp_max

    def record(self, state: DetectionState) -> None:
        """Sample the smoothed magnitude if the session is currently clear."""
        if not state.is_detected:
            state.baseline_samples.append(state.smoothed_magnitude)

    def baseline(self, state: DetectionState) -> Optional[float]:
        """Median of the collected samples, or None with insufficient history."""
        samples = state.baseline_samples
        if len(samples) < self.min_samples:
            return None
        ordered = sorted(samples)
        return ordered[len(ordered) // 2]

    def thresholds(self, state: DetectionState) -> AdaptiveThresholds:
        """Derive the thresholds for the current frame."""
        baseline = self.baseline(state)

        if baseline is None or baseline <= self.activation_floor:
            return AdaptiveThresholds(
                high=self.nominal_high,
                low=self.nominal_low,
                baseline=baseline,
                adapted=False,
            )

        high = _clamp(
            baseline * self.high_multiplier,
            self.clamp_min * self.nominal_high,
            self.clamp_max * self.nominal_high,
        )
        low = _clamp(
            baseline * self.low_multiplier,
            self.clamp_min * self.nominal_low,
            self.clamp_max * self.nominal_low,
        )
        return AdaptiveThresholds(high=high, low=low, baseline=baseline, adapted=True)

    def update(self, state: DetectionState) -> AdaptiveThresholds:
        """Record a sample (when clear) and return the thresholds."""
        self.record(state)
        return self.thresholds(state)
