"""
Channel Risk Update
===================
Recomputes the risk score of every active distribution channel from its
90-day validation and report aggregates.

Channels with no validations in the window are skipped entirely (their
stored risk_score is left untouched). Every other channel gets its
risk_score and a 'risk_assessment' metadata patch, regardless of score.
"""

import logging
from dataclasses import asdict
from datetime import datetime, timedelta

from riskworker.analytics.base import RiskTaskBuilder
from riskworker.features import extract_channel_features
from riskworker.models import MalformedMetadataError, MetadataPatch
from riskworker.scoring import risk_level, score_channel_risk

logger = logging.getLogger(__name__)

ASSESSMENT_KEY = 'risk_assessment'


class ChannelRiskBuilder(RiskTaskBuilder):

    name = 'channel_risk'

    def build(self, now: datetime) -> None:
        since = now - timedelta(days=self.config.windows.channel_days)
        channels = self.store.fetch_active_channels()
        logger.info(f"Updating risk for {len(channels)} active channels")

        levels = {}
        for channel in channels:
            stats = self.store.channel_stats(channel, since)
            features = extract_channel_features(stats, self.config.channel)
            if features is None:
                logger.debug(f"Channel {channel.id} has no validations in window, skipping")
                self.summary.skipped += 1
                continue

            self.summary.processed += 1
            result = score_channel_risk(features, self.config.channel)
            level = risk_level(result.score, self.config.risk_levels)

            patch = MetadataPatch(ASSESSMENT_KEY, {
                'risk_score': result.score,
                'risk_level': level,
                'triggered_rules': list(result.triggered),
                'features': features.to_dict(),
                'stats': asdict(stats),
                'window_days': self.config.windows.channel_days,
                'assessed_at': now.isoformat(),
            })
            try:
                self.store.update_channel_risk(channel.id, result.score, patch)
            except MalformedMetadataError as e:
                logger.error(f"Skipping channel {channel.id}: {e}")
                self.summary.record_error(channel.id, e)
                continue

            self.summary.updated += 1
            levels[level] = levels.get(level, 0) + 1

        self.summary.details['risk_levels'] = levels
