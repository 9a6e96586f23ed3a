"""
Risk Analytics Tasks
====================
The five periodic tasks of the risk worker and a runner that wraps each one
in pipeline_runs tracking.

Usage:
    from riskworker.analytics import run_task

    summary = run_task('channel_risk', db_manager, config)
"""

import logging
from typing import Dict, Type

from riskworker.analytics.base import RiskTaskBuilder, TaskSummary
from riskworker.analytics.channel_risk import ChannelRiskBuilder
from riskworker.analytics.report_risk import ReportRiskBuilder
from riskworker.analytics.suspicious_patterns import SuspiciousPatternBuilder
from riskworker.analytics.trend_prediction import TrendPredictionBuilder
from riskworker.analytics.validation_patterns import ValidationPatternBuilder
from riskworker.config import RiskConfig
from riskworker.pipeline_tracking import mark_run_partial, track_pipeline_run, update_run_metrics
from riskworker.store import EventStore

logger = logging.getLogger(__name__)

TASK_BUILDERS: Dict[str, Type[RiskTaskBuilder]] = {
    builder.name: builder
    for builder in (
        ValidationPatternBuilder,
        ReportRiskBuilder,
        ChannelRiskBuilder,
        SuspiciousPatternBuilder,
        TrendPredictionBuilder,
    )
}

MAX_ERRORS_IN_MESSAGE = 10


def run_task(name: str, db_manager, config: RiskConfig) -> TaskSummary:
    """
    Run one task against the database with pipeline tracking.

    Per-record errors mark the run PARTIAL; any other exception marks it
    FAILED and propagates to the caller.
    """
    if name not in TASK_BUILDERS:
        raise KeyError(f"Unknown task: {name}")

    builder = TASK_BUILDERS[name](EventStore(db_manager), config)
    with track_pipeline_run(db_manager, name, metadata={'task': name}) as run_id:
        summary = builder.run()
        update_run_metrics(
            db_manager, run_id,
            rows_processed=summary.processed,
            rows_created=summary.created,
            rows_updated=summary.updated,
            rows_skipped=summary.skipped,
            metadata=summary.details,
        )
        if summary.errors:
            shown = summary.errors[:MAX_ERRORS_IN_MESSAGE]
            message = f"{len(summary.errors)} record errors: " + "; ".join(shown)
            mark_run_partial(db_manager, run_id, message)
    return summary


__all__ = ['TASK_BUILDERS', 'TaskSummary', 'RiskTaskBuilder', 'run_task']
