#!/usr/bin/env python
"""
Risk Worker Entrypoint
======================
Starts the periodic risk scoring and anomaly detection worker.

The worker runs five tasks on independent cadences (validation patterns,
report risk, channel risk, suspicious patterns, trend prediction). Every
task runs once at startup, then on its interval. SIGINT/SIGTERM trigger a
graceful shutdown.

Usage:
    python scripts/run_worker.py
    python scripts/run_worker.py --risk-config config/risk_config.yml
    python scripts/run_worker.py --once            # run every task once and exit
    python scripts/run_worker.py --log-file logs/riskworker.log

Environment Variables:
    DB_CONFIG_PATH: Path to database config (default: config/db_config.yml)
    RISK_CONFIG_PATH: Path to risk config (default: config/risk_config.yml)
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

from riskworker import __version__
from riskworker.config import load_risk_config
from riskworker.db_utils import DatabaseManager
from riskworker.logging_config import setup_logging
from riskworker.models import ConfigError
from riskworker.scheduler import build_scheduler


def print_banner():
    """Print the application banner."""
    print()
    print("=" * 70)
    print(f"  Risk Worker v{__version__}")
    print("  Risk Scoring & Anomaly Detection")
    print("=" * 70)
    print()


def print_once_summary(results: dict, elapsed_seconds: float):
    """Print per-task outcome of a --once run."""
    print()
    print("=" * 70)
    print("  RISK WORKER SINGLE PASS SUMMARY")
    print("=" * 70)
    for name, status in results.items():
        print(f"    {name:<22} {status}")
    print()
    print(f"  ELAPSED TIME: {elapsed_seconds:.2f} seconds")
    print("=" * 70)
    print()


def main():
    """Main entry point for the risk worker."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description='Risk scoring and anomaly detection worker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Run until SIGINT/SIGTERM
  %(prog)s --once                       # One pass over every task, then exit
  %(prog)s --log-level DEBUG            # Verbose logging

Tasks (default cadence):
  validation_patterns   every 15 min
  report_risk           every 30 min
  channel_risk          every 60 min
  suspicious_patterns   every 20 min
  trend_prediction      every 6 h
        """
    )

    parser.add_argument(
        '--config',
        default=os.environ.get('DB_CONFIG_PATH', 'config/db_config.yml'),
        help='Path to database configuration file (default: config/db_config.yml)'
    )

    parser.add_argument(
        '--risk-config',
        default=None,
        help='Path to risk configuration file (default: $RISK_CONFIG_PATH or config/risk_config.yml)'
    )

    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity level (default: INFO)'
    )

    parser.add_argument(
        '--log-file',
        default=None,
        help='Optional rotating log file'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run every task once and exit'
    )

    args = parser.parse_args()

    setup_logging(log_file=args.log_file, log_level=args.log_level)
    logger = logging.getLogger(__name__)
    print_banner()

    if not Path(args.config).exists():
        logger.error(f"Configuration file not found: {args.config}")
        sys.exit(1)

    try:
        config = load_risk_config(args.risk_config)
        db = DatabaseManager(args.config)
        db.get_connection_pool()
    except ConfigError as e:
        logger.error(f"Invalid risk configuration: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Worker startup failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info("Configuration:")
    logger.info(f"  Database config: {args.config}")
    logger.info(f"  Timezone: {config.worker.timezone}")
    logger.info(f"  PID file: {config.worker.pid_file}")
    for name, seconds in config.intervals.as_dict().items():
        logger.info(f"  {name}: every {seconds / 60:.0f} min")

    scheduler = build_scheduler(db, config)

    try:
        if args.once:
            start_time = datetime.now()
            results = scheduler.run_all_once()
            print_once_summary(results, (datetime.now() - start_time).total_seconds())
            failed = [name for name, status in results.items() if status != 'SUCCESS']
            sys.exit(1 if failed else 0)

        scheduler.run_forever()
    finally:
        db.close()


if __name__ == '__main__':
    main()
