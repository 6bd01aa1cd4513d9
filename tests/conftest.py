"""
Test Configuration
==================

Pytest fixtures and test configuration for LoomWatch.
"""

import cv2
import numpy as np
import pytest

from loomwatch.agent.graph import DetectionAgentGraph
from loomwatch.flow.optical_flow import FlowField
from loomwatch.flow.radial_grid import build_radial_grid
from loomwatch.models.state import DetectionState


# Small working resolution keeps graph tests fast; center (24, 18) is a pixel.
TEST_WIDTH = 48
TEST_HEIGHT = 36


def radial_flow(width: int, height: int, speed: float) -> FlowField:
    """
    Flow along the radial direction.

    Positive speed expands away from the center (looming), negative speed
    contracts toward it and never produces a positive radial projection.
    Magnitude is |speed| everywhere except the exact center pixel.
    """
    grid = build_radial_grid(width, height)
    return FlowField(u=grid.rx * speed, v=grid.ry * speed)


def zone_flow(width: int, height: int, left: float, center: float, right: float) -> FlowField:
    """
    Rightward flow whose speed differs per direction zone.

    Zone boundaries follow the classifier: int(0.3W) and int(0.7W).
    """
    left_end = int(width * 0.3)
    right_start = int(width * 0.7)

    u = np.zeros((height, width), dtype=np.float32)
    u[:, :left_end] = left
    u[:, left_end:right_start] = center
    u[:, right_start:] = right
    return FlowField(u=u, v=np.zeros_like(u))


class FakeClock:
    """Millisecond clock advanced manually."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture
def detection_state():
    """Fresh session state."""
    return DetectionState.create()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def graph(fake_clock):
    """Detection graph with an active session and no magnitude blur."""
    g = DetectionAgentGraph(blur_kernel=1, clock=fake_clock)
    g.on_session_start(TEST_WIDTH, TEST_HEIGHT)
    yield g
    g.on_session_stop()


@pytest.fixture
def sample_frame_message():
    """Provide a sample FrameMessage payload for testing."""
    return {
        "source": "camera",
        "frame_id": 100,
        "timestamp": 1707321234.567,
        "fps": 30,
        "image": "aGVsbG8=",
    }


@pytest.fixture
def textured_image():
    """Smooth random texture suitable for optical flow."""
    rng = np.random.default_rng(7)
    noise = rng.integers(0, 256, size=(120, 160), dtype=np.uint8)

    return cv2.GaussianBlur(noise, (7, 7), 0)


@pytest.fixture
def make_radial_flow():
    """Factory: make_radial_flow(speed, width=48, height=36)."""
    def _make(speed: float, width: int = TEST_WIDTH, height: int = TEST_HEIGHT) -> FlowField:
        return radial_flow(width, height, speed)
    return _make


@pytest.fixture
def make_zone_flow():
    """Factory: make_zone_flow(left, center, right, width=48, height=36)."""
    def _make(left: float, center: float, right: float,
              width: int = TEST_WIDTH, height: int = TEST_HEIGHT) -> FlowField:
        return zone_flow(width, height, left, center, right)
    return _make
