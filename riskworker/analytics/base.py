"""
Common pieces of the periodic risk tasks: run summary and builder base class.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from riskworker.config import RiskConfig
from riskworker.models import utcnow
from riskworker.store import EventStore

logger = logging.getLogger(__name__)


@dataclass
class TaskSummary:
    """Summary statistics from one task run."""
    task: str
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def record_error(self, record_id: Any, error: Exception) -> None:
        self.errors.append(f"{record_id}: {error}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task': self.task,
            'processed': self.processed,
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped,
            'errors': self.errors,
            'details': self.details,
        }


class RiskTaskBuilder:
    """
    Base class for one periodic task.

    Subclasses implement build(now) and fill self.summary. Storage errors
    propagate out of run(); per-record data problems are recorded on the
    summary and the batch continues.
    """

    name = 'risk_task'

    def __init__(
        self,
        store: EventStore,
        config: RiskConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.summary = TaskSummary(task=self.name)

    def run(self, now: Optional[datetime] = None) -> TaskSummary:
        self.summary = TaskSummary(task=self.name)
        now = now or self.clock()
        logger.info(f"Starting {self.name} (as of {now.isoformat()})")
        self.build(now)
        logger.info(
            f"{self.name} complete: {self.summary.processed} processed, "
            f"{self.summary.created} created, {self.summary.updated} updated, "
            f"{self.summary.skipped} skipped, {len(self.summary.errors)} errors"
        )
        return self.summary

    def build(self, now: datetime) -> None:
        raise NotImplementedError
