"""
Pipeline Tracking Tests
=======================
track_pipeline_run and the metric helpers against a mocked connection.
"""

from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from riskworker.pipeline_tracking import mark_run_partial, track_pipeline_run, update_run_metrics


@pytest.fixture
def db():
    """DatabaseManager double whose cursor records every statement."""
    cursor = MagicMock()
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor

    manager = MagicMock()

    @contextmanager
    def _get_connection():
        yield conn

    manager.get_connection.side_effect = _get_connection
    manager.cursor = cursor
    return manager


def _statements(db):
    return [c[0][0] for c in db.cursor.execute.call_args_list]


def test_successful_run(db):
    with track_pipeline_run(db, 'channel_risk', metadata={'task': 'channel_risk'}) as run_id:
        assert len(run_id) == 36

    insert, finish = _statements(db)
    assert 'INSERT INTO pipeline_runs' in insert
    assert "'SUCCESS'" in finish
    assert db.cursor.execute.call_args_list[0][0][1][1] == 'channel_risk'


def test_failed_run_is_recorded_and_reraised(db):
    with pytest.raises(RuntimeError):
        with track_pipeline_run(db, 'report_risk'):
            raise RuntimeError('db gone')

    finish_sql, finish_params = db.cursor.execute.call_args_list[-1][0]
    assert "'FAILED'" in finish_sql
    assert finish_params[0] == 'db gone'


def test_update_run_metrics_only_sets_given_columns(db):
    update_run_metrics(db, 'run-1', rows_processed=5, rows_skipped=2)
    sql, params = db.cursor.execute.call_args[0]
    assert 'rows_processed = %s' in sql
    assert 'rows_skipped = %s' in sql
    assert 'rows_created' not in sql
    assert params == (5, 2, 'run-1')


def test_update_run_metrics_without_values_is_a_no_op(db):
    update_run_metrics(db, 'run-1')
    db.cursor.execute.assert_not_called()


def test_update_run_metrics_swallows_db_errors(db):
    db.cursor.execute.side_effect = RuntimeError('lost connection')
    update_run_metrics(db, 'run-1', rows_processed=1)


def test_mark_run_partial(db):
    mark_run_partial(db, 'run-1', '2 record errors')
    sql, params = db.cursor.execute.call_args[0]
    assert "'PARTIAL'" in sql
    assert params == ('2 record errors', 'run-1')
