"""
API Dependencies
================
Database and liveness-file dependency injection for FastAPI endpoints.

Uses the worker's DatabaseManager for connection pooling.
"""

import os
import logging
from typing import Generator, Optional

from riskworker.config import WorkerConfig
from riskworker.db_utils import DatabaseManager

logger = logging.getLogger(__name__)

# Global database manager instance (singleton)
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    Get or create the global DatabaseManager instance.
    Uses singleton pattern to reuse connection pool across requests.
    """
    global _db_manager

    if _db_manager is None:
        config_path = os.environ.get('DB_CONFIG_PATH', 'config/db_config.yml')
        _db_manager = DatabaseManager(config_path, max_connections=2)
        logger.info(f"DatabaseManager initialized with config: {config_path}")

    return _db_manager


def get_db() -> Generator[DatabaseManager, None, None]:
    """
    FastAPI dependency that yields a DatabaseManager instance.

    Usage in endpoints:
        @router.get("/endpoint")
        def endpoint(db: DatabaseManager = Depends(get_db)):
            results = db.execute_query("SELECT ...")
    """
    yield get_db_manager()


def get_worker_config() -> WorkerConfig:
    """
    Liveness settings for the worker being watched.

    RISK_WORKER_PID_FILE and RISK_WORKER_MAX_HEARTBEAT_AGE override the
    defaults so the API can run without the risk config file.
    """
    defaults = WorkerConfig()
    return WorkerConfig(
        pid_file=os.environ.get('RISK_WORKER_PID_FILE', defaults.pid_file),
        heartbeat_max_age_seconds=float(
            os.environ.get('RISK_WORKER_MAX_HEARTBEAT_AGE', defaults.heartbeat_max_age_seconds)
        ),
    )


def check_db_health(db: DatabaseManager) -> bool:
    """
    Check database connectivity with a simple query.
    Returns True if healthy, False otherwise.
    """
    try:
        return db.ping()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def shutdown_db():
    """
    Cleanup function to close database connections on app shutdown.
    """
    global _db_manager
    if _db_manager is not None:
        _db_manager.close()
        _db_manager = None
        logger.info("DatabaseManager closed")
