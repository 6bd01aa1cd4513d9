"""
Analytics Module
================

Running counters over emitted DetectionEvents.

Analytics are for observability ONLY and never feed back into detection.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from loomwatch.models.output import DetectionEvent
from loomwatch.models.state import DetectionMode


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AnalyticsSnapshot:
    """Point-in-time copy of the counters."""

    frames: int
    detected_frames: int
    detections: int
    alerts: int
    state_changes: int
    mode_counts: Dict[str, int]
    peak_smoothed_magnitude: float
    peak_integrator: float
    peak_looming_score: float

    @property
    def detected_ratio(self) -> float:
        if self.frames == 0:
            return 0.0
        return self.detected_frames / self.frames

    def to_dict(self) -> dict:
        return {
            "frames": self.frames,
            "detected_frames": self.detected_frames,
            "detected_ratio": round(self.detected_ratio, 4),
            "detections": self.detections,
            "alerts": self.alerts,
            "state_changes": self.state_changes,
            "mode_counts": dict(self.mode_counts),
            "peak_smoothed_magnitude": round(self.peak_smoothed_magnitude, 4),
            "peak_integrator": round(self.peak_integrator, 4),
            "peak_looming_score": round(self.peak_looming_score, 4),
        }


@dataclass
class DetectionAnalytics:
    """
    Accumulates per-session detection statistics.

    A "detection" is one CLEAR -> DETECTED transition; detected_frames
    counts every frame spent detected; state_changes counts transitions
    in both directions.
    """

    frames: int = 0
    detected_frames: int = 0
    detections: int = 0
    alerts: int = 0
    state_changes: int = 0
    mode_counts: Dict[str, int] = field(
        default_factory=lambda: {mode.value: 0 for mode in DetectionMode}
    )
    peak_smoothed_magnitude: float = 0.0
    peak_integrator: float = 0.0
    peak_looming_score: float = 0.0
    _last_detected: Optional[bool] = None

    def record(self, event: DetectionEvent) -> None:
        """Fold one event into the counters."""
        self.frames += 1
        self.mode_counts[event.detection_mode.value] += 1

        if event.is_detected:
            self.detected_frames += 1
            if not self._last_detected:
                self.detections += 1
        if self._last_detected is not None and event.is_detected != self._last_detected:
            self.state_changes += 1
        if event.alert_raised:
            self.alerts += 1

        self.peak_smoothed_magnitude = max(self.peak_smoothed_magnitude, event.smoothed_magnitude)
        self.peak_integrator = max(self.peak_integrator, event.integrator)
        self.peak_looming_score = max(self.peak_looming_score, event.looming_score)

        self._last_detected = event.is_detected

    def snapshot(self) -> AnalyticsSnapshot:
        return AnalyticsSnapshot(
            frames=self.frames,
            detected_frames=self.detected_frames,
            detections=self.detections,
            alerts=self.alerts,
            state_changes=self.state_changes,
            mode_counts=dict(self.mode_counts),
            peak_smoothed_magnitude=self.peak_smoothed_magnitude,
            peak_integrator=self.peak_integrator,
            peak_looming_score=self.peak_looming_score,
        )

    def reset(self) -> None:
        """Clear all counters (new session)."""
        self.__init__()
        logger.debug("DetectionAnalytics reset")
