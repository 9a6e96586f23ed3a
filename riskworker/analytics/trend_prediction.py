"""
Trend Prediction
================
Aggregates validations per day over the trailing 30 days and upserts the
7-day validation forecast into predictions (one live row per type).
"""

import logging
from datetime import datetime, timedelta

from riskworker.analytics.base import RiskTaskBuilder
from riskworker.trends import predict_validation_trend

logger = logging.getLogger(__name__)


class TrendPredictionBuilder(RiskTaskBuilder):

    name = 'trend_prediction'

    def build(self, now: datetime) -> None:
        window_days = self.config.windows.trend_days
        daily = self.store.daily_validation_counts(now - timedelta(days=window_days))
        self.summary.processed = len(daily)

        record = predict_validation_trend(daily, self.config.trend, window_days=window_days)
        if record is None:
            self.summary.skipped += 1
            return

        record.created_at = now
        if self.store.upsert_prediction(record):
            self.summary.created += 1
        else:
            self.summary.updated += 1

        self.summary.details['predicted_value'] = record.predicted_value
        self.summary.details['confidence'] = record.confidence
        logger.info(
            f"{record.prediction_type}: {record.predicted_value} validations "
            f"(confidence={record.confidence})"
        )
