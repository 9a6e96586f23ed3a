#!/usr/bin/env python
"""
Run One Risk Task
=================
Runs a single periodic task once, with pipeline tracking, and prints its
summary. Useful for backfills and for checking a config change.

Usage:
    python scripts/run_task.py channel_risk
    python scripts/run_task.py trend_prediction --risk-config config/risk_config.yml
"""

import os
import logging
import sys
import argparse
from pathlib import Path
from datetime import datetime

from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from riskworker.analytics import TASK_BUILDERS, run_task
from riskworker.config import load_risk_config
from riskworker.db_utils import DatabaseManager
from riskworker.logging_config import setup_logging


def print_summary(result: dict, elapsed_seconds: float):
    """Print a formatted summary of the task run."""
    print()
    print("=" * 70)
    print(f"  {result['task'].upper()} SUMMARY")
    print("=" * 70)
    print()
    print(f"    Processed:   {result.get('processed', 0):,}")
    print(f"    Created:     {result.get('created', 0):,}")
    print(f"    Updated:     {result.get('updated', 0):,}")
    print(f"    Skipped:     {result.get('skipped', 0):,}")
    print()

    for key, value in result.get('details', {}).items():
        print(f"    {key}: {value}")

    errors = result.get('errors', [])
    if errors:
        print()
        print("  ERRORS:")
        for error in errors[:10]:
            print(f"    - {error}")
        if len(errors) > 10:
            print(f"    ... and {len(errors) - 10} more errors")

    print()
    print(f"  ELAPSED TIME: {elapsed_seconds:.2f} seconds")
    print()
    print("=" * 70)
    if errors:
        print("  STATUS: COMPLETED WITH ERRORS")
    else:
        print("  STATUS: SUCCESS")
    print("=" * 70)
    print()


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description='Run one risk worker task once')
    parser.add_argument('task', choices=sorted(TASK_BUILDERS), help='Task to run')
    parser.add_argument(
        '--config',
        default=os.environ.get('DB_CONFIG_PATH', 'config/db_config.yml'),
        help='Path to database configuration file'
    )
    parser.add_argument('--risk-config', default=None, help='Path to risk configuration file')
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity level (default: INFO)'
    )
    args = parser.parse_args()

    setup_logging(log_level=args.log_level)
    logger = logging.getLogger(__name__)

    start_time = datetime.now()
    db = None
    try:
        config = load_risk_config(args.risk_config)
        db = DatabaseManager(args.config)
        summary = run_task(args.task, db, config)
    except Exception as e:
        logger.error(f"Task {args.task} failed: {e}", exc_info=True)
        print()
        print("=" * 70)
        print(f"  {args.task.upper()} FAILED")
        print(f"  Error: {e}")
        print("=" * 70)
        sys.exit(1)
    finally:
        if db is not None:
            db.close()

    result = summary.to_dict()
    print_summary(result, (datetime.now() - start_time).total_seconds())
    sys.exit(1 if result['errors'] else 0)


if __name__ == '__main__':
    main()
