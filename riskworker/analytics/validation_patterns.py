"""
Validation Pattern Scan
=======================
Scores every user's validations in the last 24 hours with the anomaly model
and appends an AnomalyRecord for each user scoring above the threshold.

Runs every 15 minutes by default. Users with fewer than three validations in
the window are skipped (insufficient data).
"""

import logging
from datetime import datetime, timedelta

from riskworker.analytics.base import RiskTaskBuilder
from riskworker.detectors import group_by_user
from riskworker.features import extract_validation_features
from riskworker.models import AnomalyRecord
from riskworker.scoring import is_anomalous, risk_level, score_validation_pattern

logger = logging.getLogger(__name__)


class ValidationPatternBuilder(RiskTaskBuilder):

    name = 'validation_patterns'

    def build(self, now: datetime) -> None:
        window_hours = self.config.windows.validation_pattern_hours
        since = now - timedelta(hours=window_hours)

        events = self.store.fetch_validations_since(since)
        by_user = group_by_user(events)
        logger.info(f"Scanning {len(events)} validations from {len(by_user)} users")

        for user_id, user_events in by_user.items():
            features = extract_validation_features(
                user_id,
                user_events,
                self.config.anomaly,
                window_hours=window_hours,
                timezone_name=self.config.worker.timezone,
            )
            if features is None:
                self.summary.skipped += 1
                continue

            self.summary.processed += 1
            result = score_validation_pattern(features, self.config.anomaly)
            if not is_anomalous(result, self.config.anomaly):
                continue

            record = AnomalyRecord(
                description=(
                    f"Unusual validation pattern for user {user_id}: "
                    f"{', '.join(result.triggered)}"
                ),
                confidence_score=result.score,
                payload={
                    'user_id': user_id,
                    'risk_level': risk_level(result.score, self.config.risk_levels),
                    'triggered_rules': list(result.triggered),
                    'features': features.to_dict(),
                    'window_hours': window_hours,
                    'validation_ids': [e.id for e in user_events],
                },
                detected_at=now,
            )
            self.store.insert_anomaly(record)
            self.summary.created += 1
            logger.info(f"Anomaly recorded for user {user_id} (score={result.score})")

        self.summary.details['users_scanned'] = len(by_user)
