"""
Service Tests
=============

Tests for the HTTP endpoints and the per-frame service pipeline
(lifespan not started, no camera source).
"""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from loomwatch import main
from loomwatch.agent.graph import DetectionAgentGraph
from loomwatch.models.output import DetectionEvent
from loomwatch.models.state import DetectionMode, Direction
from loomwatch.notify import LoggingSpeechNotifier
from loomwatch.observability import DetectionAnalytics
from loomwatch.signals import FlowSignalProcessor
from loomwatch.stream import Frame
from loomwatch.stream.image_decoder import encode_grayscale_jpeg


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def detected_event():
    return DetectionEvent(
        frame_index=7,
        timestamp_ms=1000.0,
        is_detected=True,
        detection_mode=DetectionMode.MAG,
        stable_direction=Direction.RIGHT,
        smoothed_magnitude=2.5,
        integrator=4.0,
        looming_score=0.1,
        alert_raised=True,
        alert_message="Obstacle detected on the right!",
    )


class TestEndpoints:
    """Tests for service endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_without_event(self, client, monkeypatch):
        monkeypatch.setattr(main, "_current_event", None)
        data = client.get("/").json()

        assert data["service"] == "LoomWatch"
        assert data["detection"] is None

    def test_root_with_event(self, client, monkeypatch, detected_event):
        monkeypatch.setattr(main, "_current_event", detected_event)
        data = client.get("/").json()

        assert data["detection"] == "DETECTED (MAG)"
        assert "Dir: right" in data["summary"]

    def test_not_ready_without_pipeline(self, client):
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_event_unavailable(self, client, monkeypatch):
        monkeypatch.setattr(main, "_current_event", None)
        assert client.get("/event").status_code == 503

    def test_event(self, client, monkeypatch, detected_event):
        monkeypatch.setattr(main, "_current_event", detected_event)
        response = client.get("/event")

        assert response.status_code == 200
        data = response.json()
        assert data["frame_index"] == 7
        assert data["detection_mode"] == "MAG"
        assert data["stable_direction"] == "right"
        assert data["alert_message"] == "Obstacle detected on the right!"

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200

        data = response.json()
        assert "frame_errors" in data
        assert data["detection"] == {}


class ExpandingFlowEstimator:
    """Returns the same looming flow for every frame pair."""

    def __init__(self, make_radial_flow, speed: float) -> None:
        self.make_radial_flow = make_radial_flow
        self.speed = speed

    def compute(self, prev_frame, curr_frame):
        height, width = curr_frame.shape
        return self.make_radial_flow(self.speed, width=width, height=height)


def install_pipeline(monkeypatch, fake_clock, estimator=None):
    processor = FlowSignalProcessor(width=48, height=36, estimator=estimator)
    graph = DetectionAgentGraph(blur_kernel=1, clock=fake_clock)
    graph.on_session_start(48, 36)
    analytics = DetectionAnalytics()

    monkeypatch.setattr(main, "_flow_processor", processor)
    monkeypatch.setattr(main, "_graph", graph)
    monkeypatch.setattr(main, "_notifier", LoggingSpeechNotifier(clock=fake_clock))
    monkeypatch.setattr(main, "_analytics", analytics)
    monkeypatch.setattr(main, "_session_generation", 0)
    monkeypatch.setattr(main, "_current_event", None)
    return processor, graph, analytics


def stream_frame(frame_id: int, payload: str, timestamp: float, generation: int) -> Frame:
    return Frame(
        frame_id=frame_id,
        timestamp=timestamp,
        fps=30,
        image_b64=payload,
        stream_generation=generation,
    )


class TestStreamRestart:
    """A new camera stream starts a fresh detection session."""

    def test_first_frame_of_new_stream_has_no_flow(self, monkeypatch, fake_clock, textured_image):
        processor, graph, _ = install_pipeline(monkeypatch, fake_clock)
        old = encode_grayscale_jpeg(textured_image)
        new = encode_grayscale_jpeg(np.roll(textured_image, 40, axis=1))

        main.process_frame(stream_frame(1, old, 1.0, generation=1))
        main.process_frame(stream_frame(2, old, 1.1, generation=1))
        event = main.process_frame(stream_frame(1, new, 50.0, generation=2))

        assert event.frame_index == 0
        assert not event.is_detected
        assert not event.alert_raised
        assert event.looming_score == 0.0
        assert event.threshold_high is None
        assert graph.detection_state.frame_index == 1
        assert processor.frame_count == 1
        assert main.get_current_event() is event

    def test_same_stream_keeps_session(self, monkeypatch, fake_clock, textured_image):
        _, graph, _ = install_pipeline(monkeypatch, fake_clock)
        payload = encode_grayscale_jpeg(textured_image)

        main.process_frame(stream_frame(1, payload, 1.0, generation=1))
        event = main.process_frame(stream_frame(2, payload, 1.1, generation=1))

        assert event.frame_index == 1
        assert event.threshold_high is not None
        assert graph.detection_state.frame_index == 2

    def test_restarted_clock_reopens_alert_cooldown(
        self, monkeypatch, fake_clock, textured_image, make_radial_flow
    ):
        _, _, analytics = install_pipeline(
            monkeypatch, fake_clock, ExpandingFlowEstimator(make_radial_flow, 1.0)
        )
        payload = encode_grayscale_jpeg(textured_image)

        main.process_frame(stream_frame(1, payload, 10000.0, generation=1))
        assert main.process_frame(stream_frame(2, payload, 10000.125, generation=1)).alert_raised

        # New stream with its clock restarted, frames 125 ms apart
        events = [
            main.process_frame(stream_frame(i + 1, payload, 1.0 + 0.125 * i, generation=2))
            for i in range(100)
        ]

        assert all(e.is_detected for e in events[1:])
        assert [e.frame_index for e in events if e.alert_raised] == [1, 18, 35, 52, 69, 86]
        assert analytics.snapshot().alerts == 7
