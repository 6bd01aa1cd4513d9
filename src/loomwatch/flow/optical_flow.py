"""
Optical Flow
============

Dense optical flow field and its Farnebäck estimator.

The detection core treats flow computation as a black box that returns a
per-pixel horizontal/vertical displacement. This module holds the field
type shared with the core and the OpenCV adapter the service uses to
produce it.

Key Design Decisions:
    - FlowField arrays are read-only after construction
    - Non-finite displacements are zeroed so NaN never reaches the pipeline
    - Dimensions are fixed per session; resizing happens before estimation
"""

import logging
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


logger = logging.getLogger(__name__)


class FlowField(BaseModel):
    """
    Dense optical flow field.

    Contains horizontal (u) and vertical (v) displacement for each pixel,
    in pixels per frame.

    Attributes:
        u: Horizontal displacement (positive = rightward), shape (H, W)
        v: Vertical displacement (positive = downward), shape (H, W)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    u: np.ndarray = Field(..., description="Horizontal displacement (H, W) array")
    v: np.ndarray = Field(..., description="Vertical displacement (H, W) array")

    @field_validator("u", "v", mode="before")
    @classmethod
    def _as_readonly_float(cls, value: np.ndarray) -> np.ndarray:
        array = np.asarray(value, dtype=np.float32)
        if array.ndim != 2:
            raise ValueError(f"Flow components must be 2D, got shape {array.shape}")
        if not np.all(np.isfinite(array)):
            logger.warning("Non-finite flow values replaced with 0.0")
            array = np.nan_to_num(array, nan=0.0, posinf=0.0, neginf=0.0)
        array = np.array(array, copy=True)
        array.setflags(write=False)
        return array

    @model_validator(mode="after")
    def _check_shapes(self) -> "FlowField":
        if self.u.shape != self.v.shape:
            raise ValueError(
                f"Flow component shapes must match. Got: "
                f"{self.u.shape} vs {self.v.shape}"
            )
        return self

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width) of the field."""
        return self.u.shape

    @property
    def width(self) -> int:
        return int(self.u.shape[1])

    @property
    def height(self) -> int:
        return int(self.u.shape[0])

    @property
    def magnitude(self) -> np.ndarray:
        """Unblurred flow magnitude at each pixel."""
        return np.sqrt(self.u ** 2 + self.v ** 2)


class OpticalFlowEstimator(Protocol):
    """
    Protocol for optical flow estimation backends.

    All implementations compute dense flow between two grayscale frames
    of equal size.
    """

    def compute(self, prev_frame: np.ndarray, curr_frame: np.ndarray) -> FlowField:
        """
        Compute optical flow between two consecutive frames.

        Args:
            prev_frame: Previous grayscale frame (H, W), uint8
            curr_frame: Current grayscale frame (H, W), uint8

        Returns:
            FlowField with u and v displacement arrays
        """
        ...


class FarnebackFlowEstimator:
    """
    Farnebäck dense optical flow estimator.

    Uses OpenCV's calcOpticalFlowFarneback. Defaults match the mobile
    obstacle detector this pipeline was tuned on.

    Reference:
        Farnebäck, G. (2003). Two-Frame Motion Estimation Based on
        Polynomial Expansion. Image Analysis, 363-370.
    """

    def __init__(
        self,
        pyr_scale: float = 0.5,
        levels: int = 3,
        winsize: int = 15,
        iterations: int = 3,
        poly_n: int = 5,
        poly_sigma: float = 1.2,
    ) -> None:
        """
        Initialize Farnebäck flow estimator.

        Args:
            pyr_scale: Pyramid scale factor
            levels: Number of pyramid levels
            winsize: Averaging window size
            iterations: Iterations per pyramid level
            poly_n: Polynomial expansion neighborhood
            poly_sigma: Polynomial expansion smoothing
        """
        self.pyr_scale = pyr_scale
        self.levels = levels
        self.winsize = winsize
        self.iterations = iterations
        self.poly_n = poly_n
        self.poly_sigma = poly_sigma

        logger.info(
            f"FarnebackFlowEstimator initialized: "
            f"winsize={winsize}, levels={levels}, iterations={iterations}"
        )

    def compute(self, prev_frame: np.ndarray, curr_frame: np.ndarray) -> FlowField:
        """
        Compute Farnebäck optical flow.

        Raises:
            ValueError: If frames have invalid shape or dtype
        """
        if prev_frame.ndim != 2 or curr_frame.ndim != 2:
            raise ValueError(
                f"Frames must be 2D grayscale. Got shapes: "
                f"{prev_frame.shape}, {curr_frame.shape}"
            )

        if prev_frame.shape != curr_frame.shape:
            raise ValueError(
                f"Frame shapes must match. Got: "
                f"{prev_frame.shape} vs {curr_frame.shape}"
            )

        if prev_frame.dtype != np.uint8 or curr_frame.dtype != np.uint8:
            raise ValueError(
                f"Frames must be uint8. Got: "
                f"{prev_frame.dtype}, {curr_frame.dtype}"
            )

        flow = cv2.calcOpticalFlowFarneback(
            prev_frame,
            curr_frame,
            None,
            self.pyr_scale,
            self.levels,
            self.winsize,
            self.iterations,
            self.poly_n,
            self.poly_sigma,
            0,
        )

        return FlowField(u=flow[..., 0], v=flow[..., 1])


def resize_to_working(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize a grayscale frame to the working resolution if needed."""
    if frame.shape[1] == width and frame.shape[0] == height:
        return frame
    return cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)


def estimator_from_config(config: Optional[object] = None) -> FarnebackFlowEstimator:
    """
    Build an estimator from an OpticalFlowConfig-like object.

    Args:
        config: Object exposing Farnebäck parameters, or None for defaults
    """
    if config is None:
        return FarnebackFlowEstimator()
    return FarnebackFlowEstimator(
        pyr_scale=config.pyr_scale,
        levels=config.levels,
        winsize=config.winsize,
        iterations=config.iterations,
        poly_n=config.poly_n,
        poly_sigma=config.poly_sigma,
    )
