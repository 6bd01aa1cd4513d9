"""
LoomWatch
=========

Optical-flow obstacle approach detection for a moving camera.

This package turns a per-frame dense optical flow field into a stable,
rate-limited "obstacle approaching" decision with a coarse bearing
(left / center / right).

Components:
    - flow: Flow fields, radial grid, looming score, direction zones
    - signals: Smoothing, temporal integration, adaptive baseline
    - agent: LangGraph-orchestrated detection state machine and alert gate
    - stream: WebSocket frame ingestion
    - notify: Speech collaborator
    - observability: Status text and running analytics

Example:
    from loomwatch.agent import DetectionAgentGraph

    graph = DetectionAgentGraph()
    graph.on_session_start(480, 360)
    event = graph.on_frame(flow)
"""

__version__ = "0.1.0"
__author__ = "LoomWatch Project"

__all__ = [
    "__version__",
]
