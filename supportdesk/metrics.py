"""Aggregate support metrics over the interaction log."""

from typing import Any, Dict, Iterable

from .intent import UNKNOWN_INTENT
from .models import Metrics


def _confidence(record: Dict[str, Any]) -> float:
    value = record.get("confidence")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def compute_metrics(records: Iterable[Dict[str, Any]]) -> Metrics:
    """Compute deflection and confidence statistics.

    A record counts as deflected when it did not need a human. Ratios and
    averages are rounded to 3 decimals and are all 0 for an empty log.

    Args:
        records: Raw interaction records as stored in ``logs.json``.

    Returns:
        Metrics: total, deflected, deflectionRate, avgConfidence,
                 maxConfidence and a per-intent histogram.
    """
    total = 0
    deflected = 0
    confidence_sum = 0.0
    max_confidence = 0.0
    by_intent: Dict[str, int] = {}

    for record in records:
        total += 1
        if not record.get("needsHuman"):
            deflected += 1
        intent = str(record.get("intent") or UNKNOWN_INTENT)
        by_intent[intent] = by_intent.get(intent, 0) + 1
        confidence = _confidence(record)
        confidence_sum += confidence
        max_confidence = max(max_confidence, confidence)

    return Metrics(
        total=total,
        deflected=deflected,
        deflection_rate=round(deflected / total, 3) if total else 0.0,
        avg_confidence=round(confidence_sum / total, 3) if total else 0.0,
        max_confidence=round(max_confidence, 3),
        by_intent=by_intent,
    )
