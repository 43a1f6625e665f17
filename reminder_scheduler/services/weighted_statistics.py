"""Weighted statistics over readings.

Readings carry a trust weight: prompted readings count fully, organic
history is discounted by the lookback strategy. The median and confidence
below take those weights into account; outlier rejection ignores them, so
a far-off reading is dropped regardless of how trusted it is.
"""

import math
import statistics
from collections.abc import Sequence
from typing import TypeVar

from reminder_scheduler.services.lookback_strategy import LookbackStrategy
from reminder_scheduler.services.reading_context import DataQuality, ReadingWithWeight

# Fewer readings than this cannot support a statistic
MIN_READINGS_FOR_STATISTICS = 3

FALLBACK_CONFIDENCE = 0.5
BASE_CONFIDENCE = 0.7
SCHEDULED_READING_BONUS = 0.04
MAX_SCHEDULED_BONUS = 0.2
HISTORICAL_READING_BONUS = 0.02
MAX_HISTORICAL_BONUS = 0.1
SCHEDULED_RATIO_BONUS = 0.1

DEFAULT_OUTLIER_THRESHOLD = 2.0

R = TypeVar("R", bound=ReadingWithWeight)


def calculate_weighted_median(readings: Sequence[ReadingWithWeight]) -> float:
    """Weighted order statistic of minute_of_day.

    Returns the minute of the first reading (in time order) at which the
    cumulative weight reaches half of the total. Ties go to the earlier
    minute. An empty set returns 0; callers check the count first.

    Example:
        [(420, 0.4), (480, 1.0), (540, 1.0)] -> 480, since the cumulative
        weight 1.4 first reaches half of 2.4 at the second reading.
    """
    if not readings:
        return 0

    ordered = sorted(readings, key=lambda r: r.minute_of_day)
    half_weight = sum(r.weight for r in ordered) / 2

    cumulative = 0.0
    for reading in ordered:
        cumulative += reading.weight
        if cumulative >= half_weight:
            return reading.minute_of_day

    return ordered[-1].minute_of_day


def calculate_confidence(
    readings: Sequence[ReadingWithWeight],
    strategy: LookbackStrategy,
) -> float:
    """Score how far a reminder time derived from these readings can be trusted.

    Rewards the number of prompted readings, their share of the set, and
    (scaled by the strategy's historical weight) the number of organic ones.

    Args:
        readings: Readings the reminder time was derived from.
        strategy: Lookback strategy in effect for the user.

    Returns:
        Confidence in [0, 1]; exactly 0.5 with fewer than 3 readings.
    """
    total = len(readings)
    if total < MIN_READINGS_FOR_STATISTICS:
        return FALLBACK_CONFIDENCE

    scheduled = sum(1 for r in readings if r.data_quality == DataQuality.SCHEDULED_WEEK)
    historical = total - scheduled

    confidence = BASE_CONFIDENCE
    confidence += min(MAX_SCHEDULED_BONUS, scheduled * SCHEDULED_READING_BONUS)
    confidence += min(
        MAX_HISTORICAL_BONUS,
        historical * HISTORICAL_READING_BONUS * strategy.historical_weight,
    )
    confidence += (scheduled / total) * SCHEDULED_RATIO_BONUS

    return min(1.0, confidence)


def _median_and_deviation(values: Sequence[float]) -> tuple[float, float]:
    """Median and the root-mean-square deviation around it."""
    median = statistics.median(values)
    variance = sum((v - median) ** 2 for v in values) / len(values)
    return median, math.sqrt(variance)


def filter_outliers_by_weight(
    readings: Sequence[R],
    threshold: float = DEFAULT_OUTLIER_THRESHOLD,
) -> list[R]:
    """Drop readings more than `threshold` deviations from the median minute.

    Median and deviation are unweighted. When all minutes are identical the
    deviation is taken as 1. Sets of fewer than 3 readings pass through.
    """
    if len(readings) < MIN_READINGS_FOR_STATISTICS:
        return list(readings)

    median, deviation = _median_and_deviation([r.minute_of_day for r in readings])
    limit = threshold * (deviation or 1)

    return [r for r in readings if abs(r.minute_of_day - median) <= limit]
