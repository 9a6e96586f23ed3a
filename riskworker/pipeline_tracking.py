"""
Pipeline Tracking Module
========================
Records every periodic task run in pipeline_runs so dashboards and the
health API can see when each task last ran and how it ended.

Features:
- Context manager for automatic run tracking
- Metrics update helpers
- Status management (RUNNING, SUCCESS, FAILED, PARTIAL)

Usage:
    from riskworker.pipeline_tracking import track_pipeline_run, update_run_metrics

    with track_pipeline_run(db_manager, "channel_risk") as run_id:
        summary = builder.run()
        update_run_metrics(db_manager, run_id, rows_processed=summary.processed)
"""

import json
import logging
import uuid
from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Generator

logger = logging.getLogger(__name__)


@contextmanager
def track_pipeline_run(
    db_manager,
    pipeline_name: str,
    metadata: Optional[Dict[str, Any]] = None
) -> Generator[str, None, None]:
    """
    Context manager for tracking a pipeline run.

    Automatically creates a run record on entry and updates status on exit.
    On success: status = 'SUCCESS' (unless already marked PARTIAL)
    On exception: status = 'FAILED' with error_message, exception re-raised

    Args:
        db_manager: DatabaseManager instance
        pipeline_name: Task name, e.g. 'validation_patterns'
        metadata: Additional JSON metadata to store

    Yields:
        run_id: UUID string of the created run record
    """
    run_id = str(uuid.uuid4())
    metadata_json = json.dumps(metadata) if metadata else None

    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO pipeline_runs (run_id, pipeline_name, metadata)
                    VALUES (%s, %s, %s::jsonb)
                    """,
                    (run_id, pipeline_name, metadata_json)
                )
        logger.info(f"Pipeline run started: {pipeline_name} (run_id={run_id[:8]}...)")
    except Exception as e:
        logger.error(f"Failed to create pipeline run record: {e}")
        raise

    try:
        yield run_id

        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pipeline_runs
                    SET completed_at = NOW(),
                        status = CASE WHEN status = 'PARTIAL' THEN 'PARTIAL' ELSE 'SUCCESS' END
                    WHERE run_id = %s
                    """,
                    (run_id,)
                )
        logger.info(f"Pipeline run completed: {pipeline_name} (run_id={run_id[:8]}...)")

    except Exception as e:
        error_msg = str(e)[:1000]  # Truncate long errors
        try:
            with db_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE pipeline_runs
                        SET completed_at = NOW(),
                            status = 'FAILED',
                            error_message = %s
                        WHERE run_id = %s
                        """,
                        (error_msg, run_id)
                    )
            logger.error(f"Pipeline run failed: {pipeline_name} (run_id={run_id[:8]}...) - {error_msg}")
        except Exception as db_error:
            logger.error(f"Failed to update pipeline run status: {db_error}")
        raise


def update_run_metrics(
    db_manager,
    run_id: str,
    rows_processed: Optional[int] = None,
    rows_created: Optional[int] = None,
    rows_updated: Optional[int] = None,
    rows_skipped: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> None:
    """
    Update metrics for a pipeline run.

    Only non-None values are updated. Failures are logged, never raised:
    a task's results are already committed by the time metrics are written.
    """
    updates = []
    values = []

    if rows_processed is not None:
        updates.append("rows_processed = %s")
        values.append(rows_processed)

    if rows_created is not None:
        updates.append("rows_created = %s")
        values.append(rows_created)

    if rows_updated is not None:
        updates.append("rows_updated = %s")
        values.append(rows_updated)

    if rows_skipped is not None:
        updates.append("rows_skipped = %s")
        values.append(rows_skipped)

    if metadata is not None:
        # Merge with existing metadata using JSONB concatenation
        updates.append("metadata = COALESCE(metadata, '{}'::jsonb) || %s::jsonb")
        values.append(json.dumps(metadata))

    if not updates:
        return

    values.append(run_id)
    set_clause = ", ".join(updates)

    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE pipeline_runs SET {set_clause} WHERE run_id = %s",
                    tuple(values)
                )
    except Exception as e:
        logger.warning(f"Failed to update run metrics: {e}")


def mark_run_partial(
    db_manager,
    run_id: str,
    error_message: Optional[str] = None
) -> None:
    """
    Mark a pipeline run as PARTIAL (some records failed, the rest committed).
    """
    try:
        with db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pipeline_runs
                    SET status = 'PARTIAL',
                        error_message = COALESCE(error_message, '') || %s
                    WHERE run_id = %s
                    """,
                    ((error_message or '')[:1000], run_id)
                )
        logger.warning(f"Pipeline run marked as PARTIAL: {run_id[:8]}...")
    except Exception as e:
        logger.error(f"Failed to mark run as partial: {e}")


def get_latest_runs(db_manager) -> List[Dict[str, Any]]:
    """
    Get the most recent run of every pipeline.

    Raises on database errors; callers decide how to degrade.
    """
    results = db_manager.execute_query(
        """
        SELECT DISTINCT ON (pipeline_name)
            pipeline_name, run_id, started_at, completed_at, status,
            rows_processed, rows_created, rows_updated, rows_skipped, error_message
        FROM pipeline_runs
        ORDER BY pipeline_name, started_at DESC
        """
    )

    return [
        {
            'pipeline_name': row[0],
            'run_id': str(row[1]),
            'started_at': row[2],
            'completed_at': row[3],
            'status': row[4],
            'rows_processed': row[5],
            'rows_created': row[6],
            'rows_updated': row[7],
            'rows_skipped': row[8],
            'error_message': row[9]
        }
        for row in (results or [])
    ]
