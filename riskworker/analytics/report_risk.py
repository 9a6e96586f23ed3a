"""
Counterfeit Report Risk Assessment
==================================
Scores every open counterfeit report (pending or investigating) and writes
the assessment into the report's metadata under 'risk_assessment'.

Every evaluated report gets a metadata patch, whatever its score. Reports
scoring above the investigate threshold move to 'investigating'; the rest
stay at (or return to) 'pending'. The decision depends only on the inputs,
so re-running with unchanged data yields the same status.
"""

import logging
from datetime import datetime

from riskworker.analytics.base import RiskTaskBuilder
from riskworker.features import extract_report_features
from riskworker.models import MalformedMetadataError, MetadataPatch
from riskworker.scoring import report_status_for, risk_level, score_counterfeit_risk

logger = logging.getLogger(__name__)

ASSESSMENT_KEY = 'risk_assessment'


class ReportRiskBuilder(RiskTaskBuilder):

    name = 'report_risk'

    def build(self, now: datetime) -> None:
        reports = self.store.fetch_open_reports()
        logger.info(f"Assessing {len(reports)} open counterfeit reports")

        transitions = 0
        for report in reports:
            reporter_history = self.store.reporter_history(report.reporter_id)
            product_history = self.store.product_validation_history(report.product_id)
            features = extract_report_features(
                report, reporter_history, product_history, self.config.counterfeit
            )
            result = score_counterfeit_risk(features, self.config.counterfeit)
            status = report_status_for(result, self.config.counterfeit)

            patch = MetadataPatch(ASSESSMENT_KEY, {
                'risk_score': result.score,
                'risk_level': risk_level(result.score, self.config.risk_levels),
                'decision': status,
                'triggered_rules': list(result.triggered),
                'features': features.to_dict(),
                'assessed_at': now.isoformat(),
            })

            self.summary.processed += 1
            try:
                self.store.update_report_risk(report.id, status, patch)
            except MalformedMetadataError as e:
                logger.error(f"Skipping report {report.id}: {e}")
                self.summary.record_error(report.id, e)
                continue

            self.summary.updated += 1
            if status != report.status:
                transitions += 1
                logger.info(f"Report {report.id}: {report.status} -> {status} (score={result.score})")

        self.summary.details['status_changes'] = transitions
