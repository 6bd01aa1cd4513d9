"""
Frame Data Model
================

Internal frame representation for the ingestion pipeline.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Validated camera frame.

    Attributes:
        frame_id: Monotonically increasing frame counter from the source
        timestamp: UNIX timestamp (seconds) when the frame was captured
        fps: Declared FPS of the source
        image_b64: Base64-encoded JPEG frame data (not decoded)
        stream_generation: Camera stream the frame belongs to; bumped by
            the consumer on every new connection or clock restart
    """

    frame_id: int
    timestamp: float
    fps: int
    image_b64: str
    stream_generation: int = 0

    @property
    def timestamp_ms(self) -> float:
        """Capture time in milliseconds."""
        return self.timestamp * 1000.0

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.3f}, "
            f"fps={self.fps})"
        )
