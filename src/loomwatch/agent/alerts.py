"""
Alert Gate
==========

Decides when a detection is worth announcing.

An alert fires while detected if any of:
    - the session just entered detection this frame
    - no alert has been raised yet in this session
    - more than `cooldown_ms` elapsed since the last alert

The gate is rate limiting only. The speech notifier downstream applies
its own busy/cooldown guard before anything is heard.
"""

import logging
from typing import Dict, Optional

from loomwatch.errors import ConfigurationError
from loomwatch.models.output import AlertSignal
from loomwatch.models.state import DetectionState, Direction


logger = logging.getLogger(__name__)


ALERT_COOLDOWN_MS = 2000.0
DEFAULT_MESSAGE_TEMPLATE = "Obstacle detected {direction}!"
DEFAULT_DIRECTION_LABELS: Dict[str, str] = {
    Direction.CENTER.value: "ahead",
    Direction.LEFT.value: "on the left",
    Direction.RIGHT.value: "on the right",
}


class AlertGate:
    """
    Cooldown-limited alert decision.

    Example:
        gate = AlertGate(cooldown_ms=2000)
        signal = gate.evaluate(state, entered_detection, Direction.LEFT, now_ms)
    """

    def __init__(
        self,
        cooldown_ms: float = ALERT_COOLDOWN_MS,
        message_template: str = DEFAULT_MESSAGE_TEMPLATE,
        direction_labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize the gate.

        Args:
            cooldown_ms: Minimum spacing of repeated alerts during one detection
            message_template: Message format; `{direction}` is replaced by
                the label of the stabilized direction
            direction_labels: Spoken label per direction value

        Raises:
            ConfigurationError: On a negative cooldown or a template that
                cannot be formatted
        """
        if cooldown_ms < 0:
            raise ConfigurationError(f"cooldown_ms must be >= 0, got {cooldown_ms}")

        self.cooldown_ms = cooldown_ms
        self.message_template = message_template
        self.direction_labels = dict(DEFAULT_DIRECTION_LABELS)
        if direction_labels:
            self.direction_labels.update(direction_labels)

        try:
            self.format_message(Direction.CENTER)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid alert message template {message_template!r}: {e}"
            ) from e

    def format_message(self, direction: Direction) -> str:
        """Render the alert text for a direction."""
        label = self.direction_labels.get(direction.value, direction.value)
        return self.message_template.format(direction=label)

    def evaluate(
        self,
        state: DetectionState,
        entered_detection: bool,
        stable_direction: Direction,
        now_ms: float,
    ) -> AlertSignal:
        """
        Decide whether to alert for this frame.

        Updates state.last_alert_timestamp_ms when the alert fires.

        Args:
            state: Session state (after the transition for this frame)
            entered_detection: Whether CLEAR -> DETECTED happened this frame
            stable_direction: Stabilized direction for this frame
            now_ms: Current time in milliseconds

        Returns:
            AlertSignal (fire=False while clear or cooling down)
        """
        if not state.is_detected:
            return AlertSignal()

        last = state.last_alert_timestamp_ms
        due = (
            entered_detection or
            last is None or
            now_ms - last > self.cooldown_ms
        )
        if not due:
            return AlertSignal()

        message = self.format_message(stable_direction)
        state.last_alert_timestamp_ms = now_ms

        logger.info(f"ALERT [frame {state.frame_index}]: {message}")
        return AlertSignal(fire=True, message=message)
