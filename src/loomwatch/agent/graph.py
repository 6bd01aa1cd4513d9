"""
Detection Graph
===============

LangGraph pipeline for per-frame obstacle detection.

LangGraph is used for CONTROL FLOW only: every node is a deterministic
function of the flow field and the session's DetectionState.

Graph Structure:
    START → measure ─┬─(flow)────→ update_signals → decide → stabilize → alert → emit → END
                     └─(no flow)──────────────────────────────────────────────→ emit

    measure:        magnitude field, mean magnitude, looming score, raw direction
    update_signals: smoothing, integrator, baseline sampling, adaptive thresholds
    decide:         CLEAR / DETECTED hysteresis
    stabilize:      majority vote of recent directions
    alert:          cooldown-limited alert decision
    emit:           immutable DetectionEvent, frame counter advance

Ordering:
    The integrator and the baseline read the detection state of the
    previous frame; the state machine runs after both.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from loomwatch.agent.alerts import AlertGate
from loomwatch.agent.direction import DirectionStabilizer, majority_direction
from loomwatch.agent.transitions import (
    DetectionStateMachine,
    DetectionThresholds,
    TransitionResult,
)
from loomwatch.errors import ConfigurationError
from loomwatch.flow.metrics import (
    CENTER_BIAS,
    DIRECTION_MARGIN,
    LEFT_ZONE_END,
    RIGHT_ZONE_START,
    classify_direction,
    compute_looming_score,
    compute_magnitude_field,
    compute_mean_magnitude,
)
from loomwatch.flow.optical_flow import FlowField
from loomwatch.flow.radial_grid import RadialGrid, build_radial_grid
from loomwatch.models.flow import FrameMeasurements
from loomwatch.models.output import AlertSignal, DetectionEvent
from loomwatch.models.state import (
    BASELINE_CAPACITY,
    DIRECTION_HISTORY_SIZE,
    DetectionMode,
    DetectionState,
    Direction,
)
from loomwatch.signals.baseline import AdaptiveThresholds, BaselineEstimator
from loomwatch.signals.motion import MotionSmoother, TemporalIntegrator


logger = logging.getLogger(__name__)


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


class DetectionGraphState(TypedDict, total=False):
    """
    State passed through the detection graph for one frame.

    Attributes:
        detection_state: Persistent session state
        flow: Flow field of this frame (None on the first frame)
        grid: Radial grid of the session
        timestamp_ms: Frame time in milliseconds
        measurements: Per-frame flow metrics
        was_detected: Detection state before this frame's transition
        thresholds: Adaptive thresholds used for this frame
        transition: State machine result
        stable_direction: Stabilized direction
        alert: Alert decision
        event: Output event
    """
    detection_state: DetectionState
    flow: Optional[FlowField]
    grid: RadialGrid
    timestamp_ms: float
    measurements: Optional[FrameMeasurements]
    was_detected: bool
    thresholds: Optional[AdaptiveThresholds]
    transition: Optional[TransitionResult]
    stable_direction: Direction
    alert: AlertSignal
    event: Optional[DetectionEvent]


class DetectionAgentGraph:
    """
    Session-scoped obstacle detection pipeline.

    Example:
        graph = DetectionAgentGraph()
        graph.on_session_start(480, 360)

        for flow in flows:                 # first flow is None
            event = graph.on_frame(flow)
            if event.alert_raised:
                speak(event.alert_message)

        graph.on_session_stop()
    """

    def __init__(
        self,
        smoother: Optional[MotionSmoother] = None,
        integrator: Optional[TemporalIntegrator] = None,
        baseline: Optional[BaselineEstimator] = None,
        state_machine: Optional[DetectionStateMachine] = None,
        stabilizer: Optional[DirectionStabilizer] = None,
        alert_gate: Optional[AlertGate] = None,
        blur_kernel: int = 5,
        left_edge: float = LEFT_ZONE_END,
        right_edge: float = RIGHT_ZONE_START,
        center_bias: float = CENTER_BIAS,
        direction_margin: float = DIRECTION_MARGIN,
        baseline_capacity: int = BASELINE_CAPACITY,
        direction_history_size: int = DIRECTION_HISTORY_SIZE,
        clock: Callable[[], float] = _wall_clock_ms,
        log_every_n_frames: int = 30,
    ) -> None:
        """
        Initialize the detection graph.

        Args:
            smoother: Magnitude smoother (defaults if None)
            integrator: Temporal integrator (defaults if None)
            baseline: Baseline estimator (defaults if None)
            state_machine: Detection state machine (defaults if None)
            stabilizer: Direction stabilizer (defaults if None)
            alert_gate: Alert gate (defaults if None)
            blur_kernel: Gaussian kernel for the magnitude field (<= 1 disables)
            left_edge: Left zone end as a fraction of width
            right_edge: Right zone start as a fraction of width
            center_bias: Fraction of the max the center zone needs to win
            direction_margin: Relative margin one side needs over the other
            baseline_capacity: Baseline FIFO size
            direction_history_size: Direction FIFO size
            clock: Returns the current time in milliseconds
            log_every_n_frames: Log a summary every N frames
        """
        if not 0 < left_edge <= right_edge < 1:
            raise ConfigurationError(
                f"Direction zone edges must satisfy 0 < left <= right < 1, "
                f"got left={left_edge}, right={right_edge}"
            )
        if baseline_capacity < 1 or direction_history_size < 1:
            raise ConfigurationError("FIFO capacities must be >= 1")

        self.smoother = smoother or MotionSmoother()
        self.integrator = integrator or TemporalIntegrator()
        self.baseline = baseline or BaselineEstimator()
        self.state_machine = state_machine or DetectionStateMachine()
        self.stabilizer = stabilizer or DirectionStabilizer()
        self.alert_gate = alert_gate or AlertGate()

        self.blur_kernel = blur_kernel
        self.left_edge = left_edge
        self.right_edge = right_edge
        self.center_bias = center_bias
        self.direction_margin = direction_margin
        self.baseline_capacity = baseline_capacity
        self.direction_history_size = direction_history_size
        self._clock = clock
        self.log_every_n_frames = log_every_n_frames

        self._graph = self._build_graph()

        self._detection_state: Optional[DetectionState] = None
        self._grid: Optional[RadialGrid] = None
        self._last_event: Optional[DetectionEvent] = None

        logger.info("DetectionAgentGraph initialized")

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(DetectionGraphState)

        workflow.add_node("measure", self._measure_node)
        workflow.add_node("update_signals", self._update_signals_node)
        workflow.add_node("decide", self._decide_node)
        workflow.add_node("stabilize", self._stabilize_node)
        workflow.add_node("alert", self._alert_node)
        workflow.add_node("emit", self._emit_node)

        workflow.set_entry_point("measure")
        workflow.add_conditional_edges(
            "measure",
            self._route_after_measure,
            {"score": "update_signals", "skip": "emit"},
        )
        workflow.add_edge("update_signals", "decide")
        workflow.add_edge("decide", "stabilize")
        workflow.add_edge("stabilize", "alert")
        workflow.add_edge("alert", "emit")
        workflow.add_edge("emit", END)

        return workflow.compile()

    # =========================================================================
    # Nodes
    # =========================================================================

    def _measure_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        """Compute the per-frame flow metrics."""
        flow = state.get("flow")
        if flow is None:
            return {"measurements": None}

        magnitude = compute_magnitude_field(flow, self.blur_kernel)
        measurements = FrameMeasurements(
            avg_magnitude=compute_mean_magnitude(magnitude),
            looming_score=compute_looming_score(flow, state["grid"]),
            reading=classify_direction(
                magnitude,
                left_edge=self.left_edge,
                right_edge=self.right_edge,
                center_bias=self.center_bias,
                margin=self.direction_margin,
            ),
        )
        return {"measurements": measurements}

    @staticmethod
    def _route_after_measure(state: DetectionGraphState) -> str:
        return "skip" if state.get("measurements") is None else "score"

    def _update_signals_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        """Smooth, integrate and sample the baseline using the previous decision."""
        detection = state["detection_state"]
        avg = state["measurements"].avg_magnitude
        was_detected = detection.is_detected

        self.smoother.update(detection, avg)
        self.integrator.update(detection, avg)
        thresholds = self.baseline.update(detection)

        return {"was_detected": was_detected, "thresholds": thresholds}

    def _decide_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        transition = self.state_machine.evaluate(
            state["detection_state"],
            state["thresholds"],
            state["measurements"].looming_score,
        )
        return {"transition": transition}

    def _stabilize_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        stable = self.stabilizer.update(
            state["detection_state"],
            state["measurements"].reading.direction,
        )
        return {"stable_direction": stable}

    def _alert_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        signal = self.alert_gate.evaluate(
            state["detection_state"],
            state["transition"].entered_detection,
            state["stable_direction"],
            state["timestamp_ms"],
        )
        return {"alert": signal}

    def _emit_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        """Snapshot the session state into a DetectionEvent."""
        detection = state["detection_state"]
        measurements = state.get("measurements")

        if measurements is None:
            # No flow: report without touching the session state; an ongoing
            # detection keeps its bearing
            if detection.is_detected:
                mode = DetectionMode.HOLD
                bearing = majority_direction(detection.direction_history)
            else:
                mode = DetectionMode.NONE
                bearing = Direction.CENTER

            event = DetectionEvent(
                frame_index=detection.frame_index,
                timestamp_ms=state["timestamp_ms"],
                is_detected=detection.is_detected,
                detection_mode=mode,
                stable_direction=bearing,
                smoothed_magnitude=detection.smoothed_magnitude,
                integrator=detection.integrator,
                looming_score=0.0,
            )
        else:
            reading = measurements.reading
            thresholds = state["thresholds"]
            alert = state["alert"]
            event = DetectionEvent(
                frame_index=detection.frame_index,
                timestamp_ms=state["timestamp_ms"],
                is_detected=detection.is_detected,
                detection_mode=detection.detection_mode,
                stable_direction=state["stable_direction"],
                smoothed_magnitude=detection.smoothed_magnitude,
                integrator=detection.integrator,
                looming_score=measurements.looming_score,
                alert_raised=alert.fire,
                alert_message=alert.message,
                avg_magnitude=measurements.avg_magnitude,
                raw_direction=reading.direction,
                left_magnitude=reading.left,
                center_magnitude=reading.center,
                right_magnitude=reading.right,
                threshold_high=thresholds.high,
                threshold_low=thresholds.low,
            )

        detection.frame_index += 1

        if detection.frame_index % self.log_every_n_frames == 0:
            logger.info(
                f"Detection [frame {event.frame_index}]: "
                f"detected={event.is_detected}, mode={event.detection_mode.value}, "
                f"mag={event.smoothed_magnitude:.2f}, int={event.integrator:.1f}, "
                f"loom={event.looming_score:.3f}, dir={event.stable_direction.value}"
            )

        return {"event": event}

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def on_session_start(self, width: int, height: int) -> None:
        """
        Start a new session at the given working resolution.

        Replaces any previous session state entirely.

        Raises:
            ConfigurationError: If width or height is not positive
        """
        self._grid = build_radial_grid(width, height)
        self._detection_state = DetectionState.create(
            baseline_capacity=self.baseline_capacity,
            direction_history_size=self.direction_history_size,
        )
        self._last_event = None
        logger.info(f"Detection session started at {width}x{height}")

    def on_session_stop(self) -> None:
        """End the current session and discard its state."""
        if self._detection_state is not None:
            logger.info(
                f"Detection session stopped after "
                f"{self._detection_state.frame_index} frames"
            )
        self._detection_state = None
        self._grid = None
        self._last_event = None

    def rebuild_grid(self, width: int, height: int) -> None:
        """Rebuild the radial grid after a resolution change, keeping state."""
        if self._detection_state is None:
            raise ConfigurationError("rebuild_grid called without an active session")
        self._grid = build_radial_grid(width, height)

    def on_frame(
        self,
        flow: Optional[FlowField],
        timestamp_ms: Optional[float] = None,
    ) -> DetectionEvent:
        """
        Process one frame.

        Args:
            flow: Flow field between the previous and current frame, or
                None when no previous frame exists
            timestamp_ms: Frame time in milliseconds (defaults to the clock)

        Returns:
            DetectionEvent for this frame

        Raises:
            ConfigurationError: Without an active session, or when the flow
                dimensions do not match the radial grid
        """
        if self._detection_state is None or self._grid is None:
            raise ConfigurationError("on_frame called without an active session")

        if flow is not None and not self._grid.matches(flow.width, flow.height):
            raise ConfigurationError(
                f"Flow shape {flow.shape} does not match radial grid "
                f"{self._grid.shape}; call rebuild_grid first"
            )

        if timestamp_ms is None:
            timestamp_ms = self._clock()

        result = self._graph.invoke({
            "detection_state": self._detection_state,
            "flow": flow,
            "grid": self._grid,
            "timestamp_ms": timestamp_ms,
        })

        self._detection_state = result["detection_state"]
        self._last_event = result["event"]
        return self._last_event

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def active(self) -> bool:
        return self._detection_state is not None

    @property
    def detection_state(self) -> Optional[DetectionState]:
        """Live session state (read-only use)."""
        return self._detection_state

    @property
    def grid(self) -> Optional[RadialGrid]:
        return self._grid

    @property
    def last_event(self) -> Optional[DetectionEvent]:
        return self._last_event

    def get_metrics(self) -> Dict[str, Any]:
        """Get pipeline metrics for observability."""
        state = self._detection_state
        if state is None:
            return {"active": False}

        return {
            "active": True,
            "frames": state.frame_index,
            "is_detected": state.is_detected,
            "detection_mode": state.detection_mode.value,
            "smoothed_magnitude": state.smoothed_magnitude,
            "integrator": state.integrator,
            "baseline_samples": len(state.baseline_samples),
            "baseline": self.baseline.baseline(state),
            "grid": {"width": self._grid.width, "height": self._grid.height},
        }


def create_detection_graph(settings: Any, clock: Optional[Callable[[], float]] = None) -> DetectionAgentGraph:
    """
    Create the detection graph from Settings.

    Args:
        settings: loomwatch.config.Settings
        clock: Optional millisecond clock (wall clock if None)

    Returns:
        Configured DetectionAgentGraph
    """
    th = settings.thresholds
    bl = settings.baseline
    direction = settings.direction
    alert = settings.alert

    return DetectionAgentGraph(
        smoother=MotionSmoother(alpha=settings.smoothing.alpha),
        integrator=TemporalIntegrator(
            charge_decay=settings.integrator.charge_decay,
            detected_decay=settings.integrator.detected_decay,
        ),
        baseline=BaselineEstimator(
            nominal_high=th.high,
            nominal_low=th.low,
            min_samples=bl.min_samples,
            activation_floor=bl.activation_floor,
            high_multiplier=bl.high_multiplier,
            low_multiplier=bl.low_multiplier,
            clamp_min=bl.clamp_min,
            clamp_max=bl.clamp_max,
        ),
        state_machine=DetectionStateMachine(DetectionThresholds(
            integration=th.integration,
            looming=th.looming,
            min_magnitude=th.min_magnitude,
        )),
        alert_gate=AlertGate(
            cooldown_ms=alert.cooldown_ms,
            message_template=alert.message_template,
            direction_labels=alert.direction_labels,
        ),
        blur_kernel=settings.processing.blur_kernel,
        left_edge=direction.left_edge,
        right_edge=direction.right_edge,
        center_bias=direction.center_bias,
        direction_margin=direction.margin,
        baseline_capacity=bl.capacity,
        direction_history_size=direction.history_size,
        clock=clock or _wall_clock_ms,
        log_every_n_frames=settings.logging.every_n_frames,
    )
