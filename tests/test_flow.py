"""
Flow Tests
==========

Tests for flow fields, the radial grid and per-frame flow metrics.
"""

import numpy as np
import pytest
from pydantic import ValidationError

from loomwatch.errors import ConfigurationError
from loomwatch.flow.metrics import (
    classify_direction,
    compute_looming_score,
    compute_magnitude_field,
    compute_mean_magnitude,
)
from loomwatch.flow.optical_flow import FarnebackFlowEstimator, FlowField
from loomwatch.flow.radial_grid import build_radial_grid
from loomwatch.models.state import Direction


def zone_magnitude(width: int, left: float, center: float, right: float, height: int = 10) -> np.ndarray:
    mag = np.zeros((height, width), dtype=np.float32)
    left_end = int(width * 0.3)
    right_start = int(width * 0.7)
    mag[:, :left_end] = left
    mag[:, left_end:right_start] = center
    mag[:, right_start:] = right
    return mag


class TestFlowField:
    """Tests for FlowField validation."""

    def test_shape_properties(self):
        flow = FlowField(u=np.zeros((4, 6)), v=np.zeros((4, 6)))
        assert flow.shape == (4, 6)
        assert flow.width == 6
        assert flow.height == 4
        assert flow.u.dtype == np.float32

    def test_mismatched_components_rejected(self):
        with pytest.raises(ValidationError):
            FlowField(u=np.zeros((4, 6)), v=np.zeros((4, 5)))

    def test_non_2d_rejected(self):
        with pytest.raises(ValidationError):
            FlowField(u=np.zeros(10), v=np.zeros(10))

    def test_non_finite_values_zeroed(self):
        u = np.array([[np.nan, 1.0], [np.inf, -np.inf]])
        flow = FlowField(u=u, v=np.zeros((2, 2)))

        assert np.all(np.isfinite(flow.u))
        assert flow.u[0, 1] == 1.0
        assert flow.u[0, 0] == 0.0

    def test_components_read_only(self):
        source = np.ones((3, 3))
        flow = FlowField(u=source, v=np.zeros((3, 3)))

        with pytest.raises(ValueError):
            flow.u[0, 0] = 5.0

        # The caller's array is copied, not frozen
        source[0, 0] = 5.0
        assert flow.u[0, 0] == 1.0


class TestRadialGrid:
    """Tests for the radial unit-vector grid."""

    def test_unit_length_except_center(self):
        grid = build_radial_grid(48, 36)
        norm = grid.rx.astype(np.float64) ** 2 + grid.ry.astype(np.float64) ** 2

        center = (18, 24)
        assert grid.rx[center] == 0.0
        assert grid.ry[center] == 0.0

        mask = np.ones_like(norm, dtype=bool)
        mask[center] = False
        assert np.all(np.abs(norm[mask] - 1.0) < 1e-4)

    def test_odd_dimensions_have_no_zero_vector(self):
        grid = build_radial_grid(5, 5)
        norm = grid.rx ** 2 + grid.ry ** 2
        assert np.all(np.abs(norm - 1.0) < 1e-4)

    def test_points_away_from_center(self):
        grid = build_radial_grid(48, 36)
        assert grid.rx[18, 47] > 0.99
        assert grid.rx[18, 0] < -0.99
        assert grid.ry[0, 24] < -0.99
        assert grid.ry[35, 24] > 0.99

    def test_shape_and_matches(self):
        grid = build_radial_grid(48, 36)
        assert grid.shape == (36, 48)
        assert grid.rx.shape == (36, 48)
        assert grid.matches(48, 36)
        assert not grid.matches(36, 48)

    def test_read_only(self):
        grid = build_radial_grid(8, 8)
        with pytest.raises(ValueError):
            grid.rx[0, 0] = 1.0

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-1, 5)])
    def test_invalid_dimensions(self, width, height):
        with pytest.raises(ConfigurationError):
            build_radial_grid(width, height)


class TestLoomingScore:
    """Tests for the looming (expansion) score."""

    def test_pure_expansion(self, make_radial_flow):
        grid = build_radial_grid(48, 36)
        score = compute_looming_score(make_radial_flow(1.0), grid)
        assert score == pytest.approx(1.0, abs=1e-4)

    def test_expansion_scales_with_speed(self, make_radial_flow):
        grid = build_radial_grid(48, 36)
        score = compute_looming_score(make_radial_flow(2.5), grid)
        assert score == pytest.approx(2.5, abs=1e-3)

    def test_contraction_scores_zero(self, make_radial_flow):
        grid = build_radial_grid(48, 36)
        assert compute_looming_score(make_radial_flow(-3.0), grid) == 0.0

    def test_zero_flow_scores_zero(self):
        grid = build_radial_grid(16, 12)
        flow = FlowField(u=np.zeros((12, 16)), v=np.zeros((12, 16)))
        assert compute_looming_score(flow, grid) == 0.0

    def test_pan_only_counts_outward_half(self):
        grid = build_radial_grid(48, 36)
        flow = FlowField(u=np.ones((36, 48)), v=np.zeros((36, 48)))
        score = compute_looming_score(flow, grid)
        assert 0.0 < score < 1.0

    def test_shape_mismatch(self):
        grid = build_radial_grid(48, 36)
        flow = FlowField(u=np.ones((36, 40)), v=np.ones((36, 40)))
        with pytest.raises(ConfigurationError):
            compute_looming_score(flow, grid)


class TestMagnitude:
    """Tests for the magnitude field and its mean."""

    def test_unblurred_magnitude(self):
        flow = FlowField(u=np.full((5, 5), 3.0), v=np.full((5, 5), 4.0))
        mag = compute_magnitude_field(flow, blur_kernel=1)
        assert np.allclose(mag, 5.0)

    def test_blur_preserves_uniform_field(self):
        flow = FlowField(u=np.full((20, 20), 3.0), v=np.full((20, 20), 4.0))
        mag = compute_magnitude_field(flow, blur_kernel=5)
        assert np.allclose(mag, 5.0, atol=1e-4)

    def test_blur_spreads_a_spike(self):
        u = np.zeros((11, 11), dtype=np.float32)
        u[5, 5] = 10.0
        mag = compute_magnitude_field(FlowField(u=u, v=np.zeros_like(u)), blur_kernel=5)
        assert mag[5, 5] < 10.0
        assert mag[5, 6] > 0.0

    def test_mean_of_empty_field(self):
        assert compute_mean_magnitude(np.zeros((0, 0), dtype=np.float32)) == 0.0

    def test_mean(self):
        assert compute_mean_magnitude(np.array([[1.0, 3.0]])) == pytest.approx(2.0)


class TestDirectionClassifier:
    """Tests for the left/center/right classification."""

    def test_left_heavy(self):
        reading = classify_direction(zone_magnitude(100, left=2.0, center=0.5, right=0.3))
        assert reading.direction == Direction.LEFT
        assert reading.left == pytest.approx(2.0)
        assert reading.center == pytest.approx(0.5)
        assert reading.right == pytest.approx(0.3)

    def test_right_heavy(self):
        reading = classify_direction(zone_magnitude(100, left=0.3, center=0.5, right=2.0))
        assert reading.direction == Direction.RIGHT

    def test_center_wins_near_max(self):
        # 1.0 >= 0.9 * 1.05
        reading = classify_direction(zone_magnitude(100, left=1.05, center=1.0, right=0.1))
        assert reading.direction == Direction.CENTER

    def test_balanced_sides_resolve_to_center(self):
        reading = classify_direction(zone_magnitude(100, left=2.0, center=0.1, right=1.8))
        assert reading.direction == Direction.CENTER

    def test_side_margin_is_strict(self):
        # left == right * 1.4 is not enough
        reading = classify_direction(zone_magnitude(100, left=1.4, center=0.0, right=1.0))
        assert reading.direction == Direction.CENTER

    def test_zero_field(self):
        reading = classify_direction(np.zeros((10, 100), dtype=np.float32))
        assert reading.direction == Direction.CENTER
        assert reading.left == reading.center == reading.right == 0.0

    def test_single_column_has_empty_zones(self):
        reading = classify_direction(np.ones((4, 1), dtype=np.float32))
        assert reading.left == 0.0
        assert reading.center == 0.0
        assert reading.right == pytest.approx(1.0)

    def test_zone_boundaries(self):
        # W=10: left [0,3), center [3,7), right [7,10)
        mag = np.zeros((2, 10), dtype=np.float32)
        mag[:, 2] = 3.0
        mag[:, 7] = 3.0
        reading = classify_direction(mag)
        assert reading.left == pytest.approx(1.0)
        assert reading.center == 0.0
        assert reading.right == pytest.approx(1.0)


class TestFarnebackEstimator:
    """Tests for the OpenCV flow backend."""

    def test_detects_horizontal_shift(self, textured_image):
        shifted = np.roll(textured_image, 2, axis=1)
        flow = FarnebackFlowEstimator().compute(textured_image, shifted)

        interior_u = flow.u[20:-20, 20:-20]
        interior_v = flow.v[20:-20, 20:-20]
        assert flow.shape == textured_image.shape
        assert np.median(interior_u) > 1.0
        assert abs(float(np.median(interior_v))) < 0.5

    def test_rejects_mismatched_frames(self, textured_image):
        with pytest.raises(ValueError):
            FarnebackFlowEstimator().compute(textured_image, textured_image[:, :100])

    def test_rejects_non_uint8(self, textured_image):
        with pytest.raises(ValueError):
            FarnebackFlowEstimator().compute(
                textured_image.astype(np.float32), textured_image.astype(np.float32)
            )
