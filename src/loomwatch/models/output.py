"""
Output Models
=============

This module defines the per-frame output contract of the detection
pipeline.

Output Contract:
    {
        "frame_index": 412,
        "timestamp_ms": 1770500938284.0,
        "is_detected": true,
        "detection_mode": "MAG",
        "stable_direction": "left",
        "smoothed_magnitude": 2.41,
        "integrator": 9.8,
        "looming_score": 0.12,
        "alert_raised": true,
        "alert_message": "Obstacle detected on the left!",
        "avg_magnitude": 3.27,
        "raw_direction": "left",
        "left_magnitude": 4.1,
        "center_magnitude": 1.2,
        "right_magnitude": 0.6,
        "threshold_high": 2.0,
        "threshold_low": 1.4
    }

Design Rules:
    - One DetectionEvent per delivered frame
    - Events are immutable snapshots; consumers never mutate pipeline state
    - The first eight fields are the control-critical decision; the rest
      are diagnostics for status text and dashboards
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from loomwatch.models.state import DetectionMode, Direction


class AlertSignal(BaseModel):
    """
    Alert decision for one frame.

    Consumed by the speech collaborator, which applies its own
    busy/cooldown guard. Both gates must pass for audible output.
    """

    model_config = ConfigDict(frozen=True)

    fire: bool = Field(default=False, description="Whether an alert fires this frame")
    message: Optional[str] = Field(default=None, description="Alert text when firing")


class DetectionEvent(BaseModel):
    """
    Immutable per-frame detection result.

    Attributes:
        frame_index: Index of the frame within the session (from 0)
        is_detected: Hysteresis state after this frame
        detection_mode: Trigger/hold tag for this frame
        stable_direction: Majority-vote bearing (center while clear)
        smoothed_magnitude: Exponentially smoothed mean magnitude
        integrator: Leaky integrator value
        looming_score: Mean outward radial flow
        alert_raised: Whether the alert gate fired
        alert_message: Alert text when raised
    """

    model_config = ConfigDict(frozen=True)

    frame_index: int = Field(..., ge=0, description="Frame index within the session")
    is_detected: bool = Field(..., description="Obstacle currently detected")
    detection_mode: DetectionMode = Field(..., description="MAG, INT, LOOM, HOLD or NONE")
    stable_direction: Direction = Field(..., description="Stabilized bearing")
    smoothed_magnitude: float = Field(..., ge=0.0, description="Smoothed mean magnitude")
    integrator: float = Field(..., ge=0.0, description="Temporal integrator value")
    looming_score: float = Field(..., ge=0.0, description="Looming score")
    alert_raised: bool = Field(default=False, description="Alert fired this frame")
    alert_message: Optional[str] = Field(default=None, description="Alert text")

    # Diagnostics
    timestamp_ms: Optional[float] = Field(default=None, description="Frame time (ms)")
    avg_magnitude: float = Field(default=0.0, ge=0.0, description="Raw mean magnitude")
    raw_direction: Direction = Field(default=Direction.CENTER, description="Unstabilized bearing")
    left_magnitude: float = Field(default=0.0, ge=0.0)
    center_magnitude: float = Field(default=0.0, ge=0.0)
    right_magnitude: float = Field(default=0.0, ge=0.0)
    threshold_high: Optional[float] = Field(default=None, description="Enter threshold used")
    threshold_low: Optional[float] = Field(default=None, description="Exit threshold used")

    @property
    def alert(self) -> AlertSignal:
        """Alert signal view of this event."""
        return AlertSignal(fire=self.alert_raised, message=self.alert_message)
