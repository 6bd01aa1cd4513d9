"""
Status Text
===========

Human-readable renderings of a DetectionEvent for overlays, logs and the
service root endpoint.
"""

from loomwatch.models.output import DetectionEvent


def format_status(event: DetectionEvent) -> str:
    """
    One-line status.

    Returns:
        "DETECTED (<mode>)" while detected, "CLEAR" otherwise
    """
    if event.is_detected:
        return f"DETECTED ({event.detection_mode.value})"
    return "CLEAR"


def format_metrics(event: DetectionEvent) -> str:
    """Multi-line metrics block: frame, magnitude, integrator, looming, direction."""
    return (
        f"Frame: {event.frame_index}\n"
        f"Mag: {event.smoothed_magnitude:.2f}\n"
        f"Int: {event.integrator:.1f}\n"
        f"Loom: {event.looming_score:.3f}\n"
        f"Dir: {event.stable_direction.value}"
    )
