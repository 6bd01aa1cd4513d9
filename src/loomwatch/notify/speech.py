"""
Speech Notifier
===============

Audible-output gate for alert messages.

The AlertGate decides that an alert is due; the notifier decides whether
it can actually be spoken right now. A message is refused when:
    - the speech engine is not ready
    - a previous message is still being spoken
    - the notifier's own cooldown has not elapsed

LoggingSpeechNotifier "speaks" into the log. A device front end replaces
it with a real text-to-speech engine behind the same interface.
"""

import logging
import time
from typing import Callable, Optional, Protocol

from loomwatch.models.output import AlertSignal


logger = logging.getLogger(__name__)


SPEECH_COOLDOWN_MS = 2000.0


class SpeechNotifier(Protocol):
    """Anything that can try to speak an alert message."""

    def speak(self, message: str, now_ms: Optional[float] = None) -> bool:
        """Speak the message; returns False if refused."""
        ...


class LoggingSpeechNotifier:
    """
    Speech notifier that writes utterances to the log.

    Example:
        notifier = LoggingSpeechNotifier(cooldown_ms=2000)
        notifier.notify(event.alert, now_ms=event.timestamp_ms)
    """

    def __init__(
        self,
        cooldown_ms: float = SPEECH_COOLDOWN_MS,
        enabled: bool = True,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        Initialize the notifier.

        Args:
            cooldown_ms: Minimum gap between two utterances
            enabled: Whether the engine is ready to speak
            clock: Millisecond clock (wall clock if None)
        """
        self.cooldown_ms = cooldown_ms
        self._ready = enabled
        self._speaking = False
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._last_spoken_ms: Optional[float] = None

        self.spoken_count = 0
        self.refused_count = 0
        self.last_message: Optional[str] = None

        logger.info(
            f"LoggingSpeechNotifier initialized: enabled={enabled}, cooldown={cooldown_ms}ms"
        )

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def speaking(self) -> bool:
        return self._speaking

    def set_speaking(self, speaking: bool) -> None:
        """Mark an utterance as in progress (real engines report this)."""
        self._speaking = speaking

    def speak(self, message: str, now_ms: Optional[float] = None) -> bool:
        """
        Speak a message if the engine is ready, idle and out of cooldown.

        Returns:
            True if spoken, False if refused
        """
        if not self._ready:
            logger.warning("Speech engine not ready")
            self.refused_count += 1
            return False

        if now_ms is None:
            now_ms = self._clock()

        cooling_down = (
            self._last_spoken_ms is not None and
            now_ms - self._last_spoken_ms < self.cooldown_ms
        )
        if cooling_down or self._speaking:
            self.refused_count += 1
            return False

        self._last_spoken_ms = now_ms
        self.spoken_count += 1
        self.last_message = message

        logger.info(f"SPEAK: {message}")
        return True

    def notify(self, alert: AlertSignal, now_ms: Optional[float] = None) -> bool:
        """Speak an alert signal if it fires."""
        if not alert.fire or not alert.message:
            return False
        return self.speak(alert.message, now_ms)

    def get_metrics(self) -> dict:
        return {
            "ready": self._ready,
            "speaking": self._speaking,
            "spoken_count": self.spoken_count,
            "refused_count": self.refused_count,
            "last_message": self.last_message,
        }
