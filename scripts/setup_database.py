"""
Risk Worker - Database Setup Script
Creates the database and applies the schema

Usage:
    python scripts/setup_database.py

    Or with custom config:
    python scripts/setup_database.py --config config/db_config.yml --schema db/schema_v1.sql
"""

import logging
import sys
import argparse
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from riskworker.db_utils import create_database_if_not_exists, apply_schema
from riskworker.logging_config import setup_logging


def main():
    """Setup database and apply schema"""
    load_dotenv()

    parser = argparse.ArgumentParser(description='Risk Worker Database Setup')
    parser.add_argument(
        '--config',
        default='config/db_config.yml',
        help='Path to database config YAML'
    )
    parser.add_argument(
        '--schema',
        default='db/schema_v1.sql',
        help='Path to schema SQL file'
    )
    parser.add_argument(
        '--skip-create',
        action='store_true',
        help='Do not try to create the database (it already exists)'
    )

    args = parser.parse_args()

    setup_logging(log_level='INFO')
    logger = logging.getLogger(__name__)

    logger.info("=" * 80)
    logger.info("Risk Worker - Database Setup")
    logger.info("=" * 80)

    try:
        if not args.skip_create:
            logger.info("Step 1: Creating database if not exists...")
            create_database_if_not_exists(args.config)

        logger.info(f"Step 2: Applying schema from {args.schema}...")
        apply_schema(args.config, args.schema)

        logger.info("=" * 80)
        logger.info("Database setup completed successfully")
        logger.info("=" * 80)

        return 0

    except Exception as e:
        logger.error(f"Database setup failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
