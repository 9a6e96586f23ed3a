"""
Suspicious Pattern Scan
=======================
Runs the geographic-speed detector over each user's last 24 hours and the
frequency detector over each user's last hour, appending one
SuspiciousPattern row per alert.
"""

import logging
from datetime import datetime, timedelta

from riskworker.analytics.base import RiskTaskBuilder
from riskworker.detectors import (
    detect_frequency_anomaly,
    detect_geographic_anomalies,
    group_by_user,
    recent_events,
)
from riskworker.store import summarize_counts

logger = logging.getLogger(__name__)


class SuspiciousPatternBuilder(RiskTaskBuilder):

    name = 'suspicious_patterns'

    def build(self, now: datetime) -> None:
        windows = self.config.windows
        since = now - timedelta(hours=windows.validation_pattern_hours)
        frequency_since = now - timedelta(minutes=windows.frequency_window_minutes)

        events = self.store.fetch_validations_since(since)
        by_user = group_by_user(events)
        logger.info(f"Scanning {len(by_user)} users for suspicious patterns")

        found = []
        for user_id, user_events in by_user.items():
            self.summary.processed += 1
            patterns = detect_geographic_anomalies(user_id, user_events, self.config.geographic)
            patterns += detect_frequency_anomaly(
                user_id, recent_events(user_events, frequency_since), self.config.frequency
            )

            for pattern in patterns:
                pattern.detected_at = now
                self.store.insert_suspicious_pattern(pattern)
                self.summary.created += 1
                found.append(pattern)
                logger.info(f"{pattern.pattern_type} for user {user_id} (score={pattern.risk_score})")

        self.summary.details['patterns'] = summarize_counts(found)
