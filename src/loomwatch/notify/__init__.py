"""
Notification collaborators that act on alert signals.
"""

from loomwatch.notify.speech import LoggingSpeechNotifier, SpeechNotifier

__all__ = [
    "LoggingSpeechNotifier",
    "SpeechNotifier",
]
