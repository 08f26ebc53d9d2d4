#!/usr/bin/env python3
"""
Database Backup Handler

Lambda function for scheduled backups (EventBridge rule):
- Direct-query dump strategy (no mysqldump binary in the Lambda runtime)
- Dump written under /tmp, the only writable path
- Failures re-raised so the invocation is marked failed
"""

import json
import os
from datetime import datetime, timezone

from dbbackup.config.backup_config import BackupConfig
from dbbackup.pipelines.backup_pipeline import BackupPipeline
from dbbackup.utils.logging_utils import setup_backup_logging

# Reserve this much time for upload and cleanup
MIN_REMAINING_SECONDS = 30


def lambda_handler(event, context):
    """Run one backup and report what was stored."""
    start_time = datetime.now(timezone.utc)

    config = BackupConfig.from_env(environ=os.environ)
    config.dump.strategy = 'native'
    config.validate()

    logger = setup_backup_logging(
        name="DatabaseBackupLambda",
        level=config.logging.level,
        console_output=True
    )

    if context is not None:
        remaining_time = context.get_remaining_time_in_millis() / 1000
        if remaining_time < MIN_REMAINING_SECONDS:
            logger.warning("Insufficient time remaining, skipping execution")
            return {'statusCode': 200, 'body': json.dumps({'message': 'Skipped - insufficient time'})}

    if event and event.get('database'):
        config.database.name = event['database']

    job = BackupPipeline(config, logger=logger).run()

    execution_time = (datetime.now(timezone.utc) - start_time).total_seconds()
    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Backup completed',
            'bucket': config.storage.bucket,
            's3_key': job.object_key,
            'size_bytes': job.size_bytes,
            'execution_time_seconds': round(execution_time, 2),
            'timestamp': start_time.isoformat()
        })
    }
