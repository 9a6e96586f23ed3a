"""
Health & Meta Router
====================
Database connectivity, worker liveness and the latest run of each task.
"""

from fastapi import APIRouter, Depends, HTTPException

from api import __version__
from api.deps import check_db_health, get_db, get_worker_config
from api.schemas import HealthStatus, PipelineRunInfo, PipelineRunList, WorkerLiveness
from riskworker.config import WorkerConfig
from riskworker.db_utils import DatabaseManager
from riskworker.pipeline_tracking import get_latest_runs
from riskworker.scheduler import is_alive, read_liveness

router = APIRouter(prefix="/api/v1", tags=["Health & Meta"])


@router.get("/health", response_model=HealthStatus)
def health_check(
    db: DatabaseManager = Depends(get_db),
    worker_config: WorkerConfig = Depends(get_worker_config),
):
    """
    Health check endpoint.

    Status is "ok" only when the database answers and the worker heartbeat
    is fresh.
    """
    db_healthy = check_db_health(db)

    info = read_liveness(worker_config.pid_file) or {}
    alive = is_alive(worker_config.pid_file, worker_config.heartbeat_max_age_seconds)
    worker = WorkerLiveness(
        alive=alive,
        pid=info.get('pid'),
        started_at=info.get('started_at'),
        heartbeat=info.get('heartbeat'),
    )

    return HealthStatus(
        status="ok" if db_healthy and alive else "degraded",
        db="ok" if db_healthy else "error",
        worker=worker,
        version=__version__,
    )


@router.get("/meta/runs", response_model=PipelineRunList)
def latest_runs(db: DatabaseManager = Depends(get_db)):
    """Most recent pipeline_runs row for every task."""
    try:
        runs = get_latest_runs(db)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching runs: {str(e)}")

    return PipelineRunList(runs=[PipelineRunInfo(**run) for run in runs])
