"""
Observability Module
====================

Status text and running analytics for LoomWatch.

DESIGN RULES:
    - Reads DetectionEvents only
    - Does NOT influence detection
"""

from loomwatch.observability.analytics import AnalyticsSnapshot, DetectionAnalytics
from loomwatch.observability.status import format_metrics, format_status


__all__ = [
    "AnalyticsSnapshot",
    "DetectionAnalytics",
    "format_metrics",
    "format_status",
]
