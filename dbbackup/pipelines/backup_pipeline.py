"""
Backup pipeline module.

Sequences one backup run: dump -> verify -> upload -> delete. Each stage
completes before the next begins; any failure propagates to the caller
without rolling back earlier stages.
"""

import re
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from dbbackup.config.backup_config import BackupConfig
from dbbackup.services.cleanup import delete_local_file
from dbbackup.services.dump_generator import DumpGenerator, create_dump_generator
from dbbackup.services.s3_uploader import BackupUploader
from dbbackup.services.verifier import verify_backup_file
from dbbackup.utils.logging_utils import BackupLogger, setup_backup_logging
from dbbackup.utils.run_lock import RunLock


def format_timestamp(moment: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a trailing Z."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def backup_filename(moment: datetime) -> str:
    """
    Derive the dump filename for a run.

    Every ':' and '.' of the timestamp becomes '-', e.g.
    backup-2024-05-01T03-00-00-123Z.sql.gz
    """
    timestamp = re.sub(r'[:.]+', '-', format_timestamp(moment))
    return f"backup-{timestamp}.sql.gz"


@dataclass
class BackupJob:
    """State of a single backup run."""

    timestamp: datetime
    filename: str
    path: Path
    strategy: str
    object_key: Optional[str] = None
    size_bytes: Optional[int] = None
    completed_stages: List[str] = field(default_factory=list)

    @classmethod
    def create(cls, moment: datetime, temp_dir: Path, strategy: str) -> 'BackupJob':
        filename = backup_filename(moment)
        return cls(timestamp=moment, filename=filename, path=Path(temp_dir) / filename, strategy=strategy)

    def to_dict(self) -> dict:
        return {
            'timestamp': self.timestamp.isoformat(),
            'filename': self.filename,
            'path': str(self.path),
            'strategy': self.strategy,
            'object_key': self.object_key,
            'size_bytes': self.size_bytes,
            'completed_stages': list(self.completed_stages),
        }


class BackupPipeline:
    """
    Runs one backup end to end.

    Collaborators can be injected; by default they are built from the
    configuration.
    """

    def __init__(
        self,
        config: BackupConfig,
        logger: Optional[BackupLogger] = None,
        dump_generator: Optional[DumpGenerator] = None,
        uploader: Optional[BackupUploader] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the pipeline.

        Args:
            config: Complete backup configuration
            logger: Logger instance
            dump_generator: Strategy used for the DUMP stage
            uploader: Uploader used for the UPLOAD stage
            clock: Returns the run's timestamp
        """
        self.config = config
        self.logger = logger or setup_backup_logging(
            name="DatabaseBackup",
            level=config.logging.level,
            log_dir=config.logging.log_dir,
            console_output=config.logging.console_logging,
            suppress_external=config.logging.suppress_external
        )
        self.dump_generator = dump_generator or create_dump_generator(config, self.logger)
        self.uploader = uploader or BackupUploader(config.storage, self.logger)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self) -> BackupJob:
        """
        Execute DUMP, VERIFY, UPLOAD and DELETE in order.

        Returns:
            The finished BackupJob

        Raises:
            BackupError: from whichever stage failed
        """
        lock = RunLock(self.config.paths.lock_path, self.logger) if self.config.paths.use_lock else nullcontext()

        with lock:
            job = BackupJob.create(
                self.clock(), self.config.paths.temp_dir, self.dump_generator.strategy_name
            )
            self.logger.log_backup_start(job.filename, self.config.to_dict())

            try:
                with self.logger.log_operation("dump", extra={'path': str(job.path), 'host': self.config.database.host}):
                    self.dump_generator.generate(job.path)
                job.completed_stages.append("dump")

                with self.logger.log_operation("verify", extra={'path': str(job.path)}):
                    job.size_bytes = verify_backup_file(
                        job.path, self.logger, self.config.logging.small_file_warning_bytes
                    )
                job.completed_stages.append("verify")

                job.object_key = self.uploader.object_key(job.filename)
                with self.logger.log_operation("upload", extra={'path': str(job.path), 'key': job.object_key}):
                    self.uploader.upload(job.path, job.object_key)
                job.completed_stages.append("upload")

                with self.logger.log_operation("delete", extra={'path': str(job.path)}):
                    delete_local_file(job.path, self.logger)
                job.completed_stages.append("delete")

            except Exception as e:
                self.logger.error(
                    "Backup failed",
                    exception=e,
                    extra=job.to_dict()
                )
                if self.config.debug and job.path.exists():
                    self.logger.info(f"Debug: local dump file left at {job.path}")
                raise

            self.logger.log_backup_end(job.filename, job.to_dict())
            self.logger.info("Backup successfully created.")
            return job


def backup(config: Optional[BackupConfig] = None, logger: Optional[BackupLogger] = None) -> BackupJob:
    """
    Run a backup with configuration from the environment unless one is given.
    """
    if config is None:
        config = BackupConfig.from_env()
    config.validate()
    return BackupPipeline(config, logger=logger).run()
