#!/usr/bin/env python3
"""
Database Backup

Dumps the configured MySQL database(s), verifies the dump, uploads it to S3
and removes the local copy. Meant to be run by cron or a job runner.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from dbbackup.config.backup_config import STRATEGIES, get_config, get_config_by_mode
from dbbackup.pipelines.backup_pipeline import BackupPipeline
from dbbackup.utils.exceptions import BackupError, ConfigurationError

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Database backup to S3",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Back up every user database using settings from the environment / .env
  dbbackup

  # Back up a single database with the direct-query strategy
  dbbackup --strategy native --database shop

  # Verbose run with the dump command line logged
  dbbackup --mode development --debug
        """
    )

    parser.add_argument(
        '--mode',
        choices=['production', 'development', 'test'],
        default='production',
        help='Configuration preset (default: production)'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to a JSON configuration file (overrides environment)'
    )

    parser.add_argument(
        '--env-file',
        type=str,
        help='Path to a .env file'
    )

    parser.add_argument(
        '--strategy',
        choices=STRATEGIES,
        help='Dump strategy'
    )

    parser.add_argument(
        '--database',
        type=str,
        help='Back up only this database'
    )

    parser.add_argument(
        '--temp-dir',
        type=str,
        help='Directory for the local dump file'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Log commands and extra failure detail'
    )

    parser.add_argument(
        '--no-lock',
        action='store_true',
        help='Do not take the single-run lock'
    )

    return parser.parse_args(argv)


def build_config(args):
    """Load configuration and apply command line overrides."""
    if args.config:
        config = get_config(args.config)
    else:
        config = get_config_by_mode(args.mode, env_file=args.env_file)

    if args.strategy:
        config.dump.strategy = args.strategy
    if args.database:
        config.database.name = args.database
    if args.temp_dir:
        config.paths.temp_dir = Path(args.temp_dir)
    if args.debug:
        config.debug = True
        config.logging.level = "DEBUG"
    if args.no_lock:
        config.paths.use_lock = False

    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main function for command line usage."""
    args = parse_arguments(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    pipeline = BackupPipeline(config)

    try:
        job = pipeline.run()
    except BackupError:
        # already logged with context by the pipeline
        return EXIT_FAILED

    pipeline.logger.info(f"Backup stored as s3://{config.storage.bucket}/{job.object_key}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
