"""Recurring series detection (rent, utilities, subscriptions)."""
from bookkeeper.recurring.detector import (
    DetectionResult,
    DetectorSettings,
    RecurringSeriesDetector,
    amount_bucket,
    classify_cadence,
    series_confidence,
)

__all__ = [
    "DetectionResult",
    "DetectorSettings",
    "RecurringSeriesDetector",
    "amount_bucket",
    "classify_cadence",
    "series_confidence",
]
