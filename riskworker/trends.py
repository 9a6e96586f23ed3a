"""
Trend Predictor
===============
Short-horizon validation volume forecast from daily buckets.

The forecast extrapolates the last week's average by the week-over-week
growth rate:

    recent_avg     = mean(validations of the last 7 buckets)
    previous_avg   = mean(validations of the up-to-7 buckets before those)
    growth_rate    = (recent_avg - previous_avg) / previous_avg
    predicted_7day = round(recent_avg * 7 * (1 + growth_rate))
    confidence     = min(0.7 + (days_of_data / 30) * 0.3, 0.95)
"""

import logging
import math
from typing import Optional, Sequence

from riskworker.config import TrendConfig
from riskworker.models import DailyCount, PredictionRecord

logger = logging.getLogger(__name__)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def predict_validation_trend(
    daily: Sequence[DailyCount],
    config: TrendConfig,
    window_days: int = 30,
) -> Optional[PredictionRecord]:
    """
    Forecast next week's validation count.

    Args:
        daily: Daily buckets ordered by day ascending (days with no
            validations have no bucket)
        config: Trend config
        window_days: Length of the trailing window the buckets cover

    Returns:
        PredictionRecord, or None when there is not enough data or the
        previous week averages zero.
    """
    days_of_data = len(daily)
    if days_of_data < config.min_days:
        logger.info(f"Trend prediction skipped: {days_of_data} daily buckets (< {config.min_days})")
        return None

    week = config.week_days
    recent = daily[-week:]
    previous = daily[-2 * week:-week]

    recent_avg = _mean([d.validations for d in recent])

    if previous:
        previous_avg = _mean([d.validations for d in previous])
        if previous_avg == 0:
            logger.info("Trend prediction skipped: previous week averages zero validations")
            return None
        growth_rate = (recent_avg - previous_avg) / previous_avg
    else:
        # No earlier week to compare against
        previous_avg = None
        growth_rate = 0.0

    predicted = _round_half_up(recent_avg * week * (1 + growth_rate))
    confidence = min(
        config.base_confidence + (days_of_data / window_days) * config.confidence_span,
        config.max_confidence,
    )

    recent_counterfeit_avg = _mean([d.counterfeits for d in recent])
    supporting = {
        'recent_avg': round(recent_avg, 4),
        'previous_avg': round(previous_avg, 4) if previous_avg is not None else None,
        'growth_rate': round(growth_rate, 4),
        'days_of_data': days_of_data,
        'recent_counterfeit_avg': round(recent_counterfeit_avg, 4),
        'first_day': str(daily[0].day),
        'last_day': str(daily[-1].day),
    }

    return PredictionRecord(
        prediction_type=config.prediction_type,
        predicted_value=predicted,
        confidence=round(confidence, 4),
        supporting_data=supporting,
    )
