"""
Database utilities for the Vanguard risk worker
Provides connection pooling, query helpers and schema setup
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from contextlib import contextmanager
from urllib.parse import quote_plus
import psycopg2
from psycopg2 import pool
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10  # seconds
DEFAULT_STATEMENT_TIMEOUT_MS = 60000


class DatabaseConfig:
    """Database configuration loader"""

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load database configuration from YAML"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        if 'database' not in config:
            raise KeyError(f"No 'database' section in {self.config_path}")
        return config['database']

    @property
    def database_name(self) -> str:
        return self.config['database']

    def get_connection_string(self) -> str:
        """Build PostgreSQL connection string"""
        user = quote_plus(self.config['user'])
        password = quote_plus(str(self.config['password']))
        host = self.config['host']
        port = self.config['port']
        database = self.config['database']
        return f"postgresql://{user}:{password}@{host}:{port}/{database}"

    def get_psycopg2_params(self) -> Dict[str, Any]:
        """Get parameters for psycopg2 connection, including timeouts"""
        statement_timeout = self.config.get('statement_timeout_ms', DEFAULT_STATEMENT_TIMEOUT_MS)
        return {
            'host': self.config['host'],
            'port': self.config['port'],
            'database': self.config['database'],
            'user': self.config['user'],
            'password': self.config['password'],
            'connect_timeout': self.config.get('connect_timeout', DEFAULT_CONNECT_TIMEOUT),
            'options': f"-c statement_timeout={int(statement_timeout)}",
        }


class DatabaseManager:
    """
    Manages database connections and operations
    Uses psycopg2 for the worker's queries and SQLAlchemy for health probes.

    The connection pool is thread-safe: each periodic task runs in its own
    thread and checks out its own connection.
    """

    def __init__(self, config_path: str, max_connections: int = 10):
        self.config = DatabaseConfig(config_path)
        self.max_connections = max_connections
        self._engine: Optional[Engine] = None
        self._connection_pool: Optional[pool.ThreadedConnectionPool] = None

    def get_engine(self) -> Engine:
        """Get SQLAlchemy engine (lazy initialization)"""
        if self._engine is None:
            connection_string = self.config.get_connection_string()
            self._engine = create_engine(
                connection_string,
                pool_pre_ping=True,
                pool_size=2,
                max_overflow=2,
                connect_args={'connect_timeout': self.config.config.get('connect_timeout', DEFAULT_CONNECT_TIMEOUT)},
                echo=False
            )
            logger.info("SQLAlchemy engine initialized")
        return self._engine

    def get_connection_pool(self) -> pool.ThreadedConnectionPool:
        """Get psycopg2 connection pool"""
        if self._connection_pool is None:
            params = self.config.get_psycopg2_params()
            self._connection_pool = pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=self.max_connections,
                **params
            )
            logger.info("psycopg2 connection pool initialized")
        return self._connection_pool

    @contextmanager
    def get_connection(self):
        """Context manager for psycopg2 connection from pool"""
        conn_pool = self.get_connection_pool()
        conn = conn_pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            conn_pool.putconn(conn)

    @contextmanager
    def get_cursor(self, cursor_factory=None):
        """Context manager for database cursor"""
        with self.get_connection() as conn:
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[tuple]:
        """Execute SELECT query and return results"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def execute_insert(self, query: str, params: Optional[tuple] = None) -> None:
        """Execute INSERT/UPDATE/DELETE query"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)

    def ping(self) -> bool:
        """Run a trivial query through the SQLAlchemy engine"""
        with self.get_engine().connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self):
        """Close all connections"""
        if self._connection_pool:
            self._connection_pool.closeall()
            self._connection_pool = None
            logger.info("Connection pool closed")
        if self._engine:
            self._engine.dispose()
            self._engine = None
            logger.info("SQLAlchemy engine disposed")


def create_database_if_not_exists(config_path: str) -> None:
    """
    Create the configured database if it doesn't exist
    Connects to 'postgres' database to create target database
    """
    config = DatabaseConfig(config_path)
    params = config.get_psycopg2_params()
    db_name = config.database_name

    params['database'] = 'postgres'

    conn = psycopg2.connect(**params)
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
    try:
        with conn.cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM pg_database WHERE datname = %s;",
                (db_name,)
            )
            exists = cursor.fetchone()

            if not exists:
                cursor.execute(f'CREATE DATABASE "{db_name}";')
                logger.info(f"Database '{db_name}' created successfully")
            else:
                logger.info(f"Database '{db_name}' already exists")
    except Exception as e:
        logger.error(f"Error creating database: {e}")
        raise
    finally:
        conn.close()


def apply_schema(config_path: str, schema_file: str) -> None:
    """
    Apply database schema from SQL file

    Args:
        config_path: Path to database config YAML
        schema_file: Path to SQL schema file
    """
    schema_path = Path(schema_file)

    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    with open(schema_path, 'r', encoding='utf-8') as f:
        schema_sql = f.read()

    config = DatabaseConfig(config_path)
    params = config.get_psycopg2_params()

    conn = psycopg2.connect(**params)
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)

    try:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
        logger.info(f"Schema applied from {schema_file}")
    except psycopg2.errors.DuplicateTable as e:
        # Schema objects already exist - this is OK for re-runs
        logger.warning(f"Schema objects already exist (this is normal): {e}")
    except psycopg2.errors.DuplicateObject as e:
        logger.warning(f"Some schema objects already exist (this is normal): {e}")
    except Exception as e:
        logger.error(f"Error applying schema: {e}")
        raise
    finally:
        conn.close()
