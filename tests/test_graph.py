"""
Detection Graph Tests
=====================

End-to-end tests of the per-frame pipeline on synthetic flow fields.
"""

import pytest

from loomwatch.agent.graph import DetectionAgentGraph, create_detection_graph
from loomwatch.config import Settings
from loomwatch.errors import ConfigurationError
from loomwatch.models.state import DetectionMode, Direction


class TestSessionLifecycle:
    """Tests for session start/stop and frame bookkeeping."""

    def test_frame_without_session(self):
        graph = DetectionAgentGraph()
        with pytest.raises(ConfigurationError):
            graph.on_frame(None)

    def test_first_frame_is_neutral(self, graph):
        event = graph.on_frame(None, timestamp_ms=0.0)
        state = graph.detection_state

        assert event.frame_index == 0
        assert not event.is_detected
        assert event.detection_mode == DetectionMode.NONE
        assert event.stable_direction == Direction.CENTER
        assert event.looming_score == 0.0
        assert not event.alert_raised
        assert event.threshold_high is None
        assert graph.last_event is event

        assert state.frame_index == 1
        assert state.smoothed_magnitude == 0.0
        assert state.integrator == 0.0
        assert len(state.baseline_samples) == 0

    def test_frame_index_advances(self, graph, make_radial_flow):
        indices = [graph.on_frame(None).frame_index]
        indices += [graph.on_frame(make_radial_flow(-0.1)).frame_index for _ in range(3)]
        assert indices == [0, 1, 2, 3]

    def test_clock_supplies_timestamp(self, graph, fake_clock):
        fake_clock.advance(1234.0)
        assert graph.on_frame(None).timestamp_ms == 1234.0

    def test_absent_flow_mid_session_keeps_state(self, graph, make_radial_flow):
        graph.on_frame(None)
        graph.on_frame(make_radial_flow(3.0), timestamp_ms=100.0)
        state = graph.detection_state
        before = (state.smoothed_magnitude, state.integrator, len(state.baseline_samples))

        event = graph.on_frame(None, timestamp_ms=200.0)

        assert event.is_detected
        assert event.detection_mode == DetectionMode.HOLD
        assert not event.alert_raised
        assert (state.smoothed_magnitude, state.integrator, len(state.baseline_samples)) == before
        assert state.frame_index == 3

    def test_absent_flow_keeps_bearing_while_detected(self, graph, make_zone_flow):
        graph.on_frame(None, timestamp_ms=0.0)
        graph.on_frame(make_zone_flow(10.0, 0.0, 0.0), timestamp_ms=33.0)
        detected = graph.on_frame(make_zone_flow(10.0, 0.0, 0.0), timestamp_ms=66.0)
        assert detected.stable_direction == Direction.LEFT

        gap = graph.on_frame(None, timestamp_ms=99.0)

        assert gap.is_detected
        assert gap.detection_mode == DetectionMode.HOLD
        assert gap.stable_direction == Direction.LEFT
        assert list(graph.detection_state.direction_history) == [Direction.LEFT]

    def test_shape_mismatch(self, graph, make_radial_flow):
        with pytest.raises(ConfigurationError):
            graph.on_frame(make_radial_flow(1.0, width=20, height=10))
        assert graph.detection_state.frame_index == 0

    def test_rebuild_grid(self, graph, make_radial_flow):
        graph.rebuild_grid(20, 10)
        event = graph.on_frame(make_radial_flow(-0.5, width=20, height=10))
        assert event.frame_index == 0
        assert graph.grid.shape == (10, 20)

    def test_restart_replaces_state(self, graph, make_radial_flow):
        graph.on_frame(None)
        graph.on_frame(make_radial_flow(3.0))
        assert graph.detection_state.is_detected

        graph.on_session_start(48, 36)

        state = graph.detection_state
        assert state.frame_index == 0
        assert not state.is_detected
        assert state.last_alert_timestamp_ms is None

    def test_stop(self, graph):
        graph.on_session_stop()
        assert not graph.active
        assert graph.get_metrics() == {"active": False}
        with pytest.raises(ConfigurationError):
            graph.on_frame(None)


class TestScenarios:
    """Behavioral scenarios on synthetic scenes."""

    def test_calm_scene(self, graph, make_radial_flow):
        events = [graph.on_frame(None)]
        events += [graph.on_frame(make_radial_flow(-0.1)) for _ in range(40)]

        assert all(not e.is_detected for e in events)
        assert all(e.detection_mode == DetectionMode.NONE for e in events)
        assert not any(e.alert_raised for e in events)
        assert events[-1].avg_magnitude == pytest.approx(0.1, abs=1e-3)

    def test_sudden_burst(self, graph, make_radial_flow):
        graph.on_frame(None, timestamp_ms=0.0)
        calm = [
            graph.on_frame(make_radial_flow(-0.1), timestamp_ms=33.0 * i)
            for i in range(1, 11)
        ]
        burst = graph.on_frame(make_radial_flow(-5.0), timestamp_ms=363.0)

        assert not any(e.is_detected for e in calm)
        assert burst.smoothed_magnitude > 2.0
        assert burst.threshold_high == pytest.approx(2.0)
        assert burst.is_detected
        assert burst.detection_mode == DetectionMode.MAG
        assert burst.alert_raised
        assert burst.alert_message == "Obstacle detected ahead!"
        assert sum(e.alert_raised for e in calm + [burst]) == 1

    def test_slow_approach_integrates(self, graph, make_radial_flow):
        events = [graph.on_frame(None)]
        for _ in range(25):
            events.append(graph.on_frame(make_radial_flow(-2.0)))

        first = next(e for e in events if e.is_detected)

        assert first.frame_index == 19
        assert first.detection_mode == DetectionMode.INT
        assert first.integrator > 15.0
        assert first.looming_score == 0.0
        for e in events[1:first.frame_index + 1]:
            assert e.smoothed_magnitude < e.threshold_high

    def test_left_heavy_flow(self, graph, make_zone_flow):
        graph.on_frame(None, timestamp_ms=0.0)
        first = graph.on_frame(make_zone_flow(10.0, 0.0, 0.0), timestamp_ms=33.0)
        second = graph.on_frame(make_zone_flow(10.0, 0.0, 0.0), timestamp_ms=66.0)

        assert first.raw_direction == Direction.LEFT
        assert first.left_magnitude == pytest.approx(10.0)
        assert not first.is_detected
        assert first.stable_direction == Direction.CENTER

        assert second.is_detected
        assert second.detection_mode == DetectionMode.MAG
        assert second.stable_direction == Direction.LEFT
        assert second.alert_message == "Obstacle detected on the left!"

    def test_looming_alert_cadence(self, graph, make_radial_flow):
        graph.on_frame(None, timestamp_ms=0.0)
        events = [
            graph.on_frame(make_radial_flow(1.0), timestamp_ms=100.0 * i)
            for i in range(1, 31)
        ]

        assert all(e.is_detected for e in events)
        assert all(e.detection_mode == DetectionMode.LOOM for e in events)
        assert [e.frame_index for e in events if e.alert_raised] == [1, 22]


class TestFactory:
    """Tests for building the graph from settings."""

    def test_from_default_settings(self, fake_clock):
        graph = create_detection_graph(Settings(), clock=fake_clock)
        graph.on_session_start(48, 36)

        assert graph.blur_kernel == 5
        assert graph.baseline.nominal_high == 2.0
        assert graph.alert_gate.cooldown_ms == 2000
        assert graph.on_frame(None).timestamp_ms == 0.0

    def test_overrides(self):
        settings = Settings.model_validate({
            "thresholds": {"high": 3.0, "low": 2.0, "integration": 20.0},
            "alert": {"cooldown_ms": 500},
            "direction": {"history_size": 3},
        })
        graph = create_detection_graph(settings)
        graph.on_session_start(16, 12)

        assert graph.baseline.nominal_high == 3.0
        assert graph.state_machine.thresholds.integration == 20.0
        assert graph.alert_gate.cooldown_ms == 500
        assert graph.detection_state.direction_history.maxlen == 3

    def test_metrics(self, graph, make_radial_flow):
        graph.on_frame(None)
        graph.on_frame(make_radial_flow(-0.1))
        metrics = graph.get_metrics()

        assert metrics["active"]
        assert metrics["frames"] == 2
        assert metrics["baseline_samples"] == 1
        assert metrics["grid"] == {"width": 48, "height": 36}
