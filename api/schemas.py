"""
Pydantic Response Schemas
=========================
Response models for the worker health API.
"""

from typing import Optional, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =====================================================================
# HEALTH & META SCHEMAS
# =====================================================================

class WorkerLiveness(BaseModel):
    """Worker process liveness read from its PID file."""
    alive: bool
    pid: Optional[int] = None
    started_at: Optional[datetime] = None
    heartbeat: Optional[datetime] = None


class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(description="Overall status: ok or degraded")
    db: str = Field(description="Database connection status")
    worker: WorkerLiveness
    version: str = Field(description="API version")
    timestamp: datetime = Field(default_factory=_utcnow)


class PipelineRunInfo(BaseModel):
    """Latest run of one periodic task."""
    pipeline_name: str
    run_id: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: Optional[str] = None
    rows_processed: Optional[int] = None
    rows_created: Optional[int] = None
    rows_updated: Optional[int] = None
    rows_skipped: Optional[int] = None
    error_message: Optional[str] = None


class PipelineRunList(BaseModel):
    runs: List[PipelineRunInfo] = []
