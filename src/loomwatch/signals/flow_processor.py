"""
Flow Signal Processor
=====================

Turns a sequence of camera frames into dense flow fields.

This processor:
    - Decodes incoming frames to grayscale
    - Resizes them to the fixed working resolution
    - Keeps the previous frame and estimates Farnebäck flow against it
    - Returns None for the first frame of a session (no flow yet)

The detection core consumes the resulting FlowField; a None result tells
it to short-circuit the frame.
"""

import logging
from typing import Optional

import numpy as np

from loomwatch.errors import ConfigurationError
from loomwatch.flow.optical_flow import (
    FarnebackFlowEstimator,
    FlowField,
    OpticalFlowEstimator,
    resize_to_working,
)
from loomwatch.stream.frame import Frame
from loomwatch.stream.image_decoder import ImageDecodeError, decode_frame_grayscale


logger = logging.getLogger(__name__)


class FlowSignalProcessor:
    """
    Frame-to-flow adapter with one frame of memory.

    Attributes:
        width: Working width in pixels
        height: Working height in pixels

    Example:
        processor = FlowSignalProcessor(width=480, height=360)

        for frame in frames:
            flow = processor.update(frame)
            event = graph.on_frame(flow)
    """

    def __init__(
        self,
        width: int = 480,
        height: int = 360,
        estimator: Optional[OpticalFlowEstimator] = None,
        log_every_n_frames: int = 30,
    ) -> None:
        """
        Initialize flow signal processor.

        Args:
            width: Working width (> 0)
            height: Working height (> 0)
            estimator: Flow backend (defaults to Farnebäck)
            log_every_n_frames: Logging interval

        Raises:
            ConfigurationError: If the working resolution is invalid
        """
        if width <= 0 or height <= 0:
            raise ConfigurationError(
                f"Working resolution must be positive, got {width}x{height}"
            )

        self.width = width
        self.height = height
        self.log_every_n_frames = log_every_n_frames
        self._estimator = estimator or FarnebackFlowEstimator()

        self._prev_gray: Optional[np.ndarray] = None
        self._frame_count: int = 0
        self._flow_error_count: int = 0

        logger.info(f"FlowSignalProcessor initialized: working size={width}x{height}")

    def update_gray(self, gray: np.ndarray) -> Optional[FlowField]:
        """
        Process a grayscale frame.

        Args:
            gray: Grayscale frame (H, W), uint8, any size

        Returns:
            FlowField at working resolution, or None for the first frame
            of a session or when flow estimation fails
        """
        self._frame_count += 1
        curr_gray = resize_to_working(gray, self.width, self.height)

        if self._prev_gray is None:
            logger.debug("First frame, storing for next")
            self._prev_gray = curr_gray
            return None

        try:
            flow = self._estimator.compute(self._prev_gray, curr_gray)
        except Exception as e:
            self._flow_error_count += 1
            logger.error(f"Optical flow computation failed: {e}")
            flow = None
        finally:
            self._prev_gray = curr_gray

        if flow is not None and self._frame_count % self.log_every_n_frames == 0:
            logger.info(
                f"Flow [frame {self._frame_count}]: "
                f"mean |flow|={float(np.mean(flow.magnitude)):.3f}"
            )

        return flow

    def update(self, frame: Frame) -> Optional[FlowField]:
        """
        Decode and process a stream frame.

        Returns:
            FlowField, or None for the first frame, a decode error or a
            flow failure
        """
        try:
            gray = decode_frame_grayscale(frame)
        except ImageDecodeError as e:
            logger.warning(f"Frame decode failed: {e}")
            return None

        return self.update_gray(gray)

    @property
    def frame_count(self) -> int:
        """Number of frames processed."""
        return self._frame_count

    @property
    def has_previous_frame(self) -> bool:
        return self._prev_gray is not None

    def reset(self) -> None:
        """Drop the previous frame (new session)."""
        self._prev_gray = None
        self._frame_count = 0
        logger.info("FlowSignalProcessor reset")

    def get_metrics(self) -> dict:
        """Get processor metrics for observability."""
        return {
            "frame_count": self._frame_count,
            "flow_errors": self._flow_error_count,
            "working_size": f"{self.width}x{self.height}",
        }
