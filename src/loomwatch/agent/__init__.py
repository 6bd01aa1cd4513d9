"""
Detection agent: state machine, direction stabilization, alerting and
the LangGraph pipeline that runs them per frame.
"""

from loomwatch.agent.alerts import AlertGate
from loomwatch.agent.direction import DirectionStabilizer, majority_direction
from loomwatch.agent.graph import DetectionAgentGraph, create_detection_graph
from loomwatch.agent.transitions import (
    DetectionStateMachine,
    DetectionThresholds,
    TransitionResult,
)

__all__ = [
    "AlertGate",
    "DetectionAgentGraph",
    "DetectionStateMachine",
    "DetectionThresholds",
    "DirectionStabilizer",
    "TransitionResult",
    "create_detection_graph",
    "majority_direction",
]
