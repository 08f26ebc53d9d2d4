"""
Structured logging utilities for backup runs.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, date
from decimal import Decimal
import json
import traceback
from contextlib import contextmanager
import time


def make_json_serializable(obj: Any) -> Any:
    """
    Convert object to JSON serializable format.

    Args:
        obj: Object to convert

    Returns:
        JSON serializable object
    """
    if isinstance(obj, dict):
        return {k: make_json_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set)):
        return [make_json_serializable(item) for item in obj]
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, bytes):
        return obj.decode('utf-8', errors='replace')
    else:
        return obj


class BackupLogger:
    """Logger for backup operations with structured logging."""

    def __init__(
        self,
        name: str,
        level: str = "INFO",
        log_file: Optional[str] = None,
        console_output: bool = True,
        structured_logging: bool = True
    ):
        """
        Initialize backup logger.

        Args:
            name: Logger name
            level: Logging level
            log_file: Optional log file path
            console_output: Whether to output to console
            structured_logging: Whether to use structured logging format
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        # Clear existing handlers
        self.logger.handlers.clear()

        if structured_logging:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
            )
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            )

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        self.start_time = time.time()
        self.operation_times = {}

    def _format(self, message: str, extra: Optional[Dict[str, Any]]) -> str:
        if extra:
            safe_extra = make_json_serializable(extra)
            message = f"{message} | {json.dumps(safe_extra)}"
        return message

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log info message with optional structured data."""
        self.logger.info(self._format(message, extra))

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log warning message with optional structured data."""
        self.logger.warning(self._format(message, extra))

    def error(self, message: str, exception: Optional[Exception] = None, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log error message with optional exception and structured data."""
        if exception:
            message = f"{message} | Exception: {str(exception)}"
        self.logger.error(self._format(message, extra))

        if exception and self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"Traceback: {traceback.format_exc()}")

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log debug message with optional structured data."""
        self.logger.debug(self._format(message, extra))

    def is_debug(self) -> bool:
        return self.logger.isEnabledFor(logging.DEBUG)

    def log_backup_start(self, job_id: str, settings: Dict[str, Any]) -> None:
        """Log backup start with the (redacted) settings in effect."""
        extra_data = {
            "job_id": job_id,
            "settings": settings,
            "timestamp": datetime.now().isoformat()
        }
        self.info(f"Starting backup: {job_id}", extra=extra_data)

    def log_backup_end(self, job_id: str, results: Dict[str, Any]) -> None:
        """Log backup end with results."""
        elapsed_time = time.time() - self.start_time
        extra_data = {
            "job_id": job_id,
            "results": results,
            "elapsed_time_seconds": round(elapsed_time, 3),
            "timestamp": datetime.now().isoformat()
        }
        self.info(f"Completed backup: {job_id}", extra=extra_data)

    @contextmanager
    def log_operation(self, operation_name: str, extra: Optional[Dict[str, Any]] = None):
        """Context manager for logging operation duration."""
        start_time = time.time()
        self.info(f"Starting operation: {operation_name}", extra=extra)

        try:
            yield
            elapsed_time = time.time() - start_time
            self.operation_times[operation_name] = elapsed_time
            self.info(
                f"Completed operation: {operation_name}",
                extra={"elapsed_time_seconds": round(elapsed_time, 3)}
            )
        except Exception as e:
            elapsed_time = time.time() - start_time
            failure_extra = dict(extra or {})
            failure_extra["elapsed_time_seconds"] = round(elapsed_time, 3)
            self.error(
                f"Failed operation: {operation_name}",
                exception=e,
                extra=failure_extra
            )
            raise

    def get_operation_summary(self) -> Dict[str, float]:
        """Get summary of operation times."""
        return self.operation_times.copy()


def setup_backup_logging(
    name: str,
    level: str = "INFO",
    log_dir: Optional[str] = None,
    job_id: Optional[str] = None,
    console_output: bool = True,
    suppress_external: bool = True
) -> BackupLogger:
    """
    Setup backup logging.

    Args:
        name: Logger name
        level: Logging level
        log_dir: Directory for log files
        job_id: Job ID for log file naming
        console_output: Whether to output to console
        suppress_external: Whether to suppress AWS SDK and HTTP library logs

    Returns:
        Configured BackupLogger instance
    """
    log_file = None
    if log_dir:
        log_dir_path = Path(log_dir)
        log_dir_path.mkdir(parents=True, exist_ok=True)

        if job_id:
            log_file = str(log_dir_path / f"{name}_{job_id}.log")
        else:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = str(log_dir_path / f"{name}_{timestamp}.log")

    backup_logger = BackupLogger(
        name=name,
        level=level,
        log_file=log_file,
        console_output=console_output
    )

    if suppress_external:
        logging.getLogger('boto3').setLevel(logging.WARNING)
        logging.getLogger('botocore').setLevel(logging.WARNING)
        logging.getLogger('s3transfer').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('pymysql').setLevel(logging.WARNING)

    return backup_logger


class ProgressLogger:
    """Logger for tracking progress of long-running operations."""

    def __init__(self, logger: BackupLogger, total_items: int, operation_name: str):
        """
        Initialize progress logger.

        Args:
            logger: BackupLogger instance
            total_items: Total number of items to process
            operation_name: Name of the operation
        """
        self.logger = logger
        self.total_items = total_items
        self.operation_name = operation_name
        self.processed_items = 0
        self.start_time = time.time()
        self.last_log_time = self.start_time

        self.log_interval_items = max(1, total_items // 20)  # Log every 5%
        self.log_interval_time = 30

    def update(self, items_processed: int = 1) -> None:
        """Update progress and log if necessary."""
        self.processed_items += items_processed
        current_time = time.time()

        should_log = (
            self.processed_items % self.log_interval_items == 0 or
            current_time - self.last_log_time >= self.log_interval_time or
            self.processed_items == self.total_items
        )

        if should_log:
            progress_pct = (self.processed_items / self.total_items) * 100 if self.total_items else 100.0
            elapsed_time = current_time - self.start_time

            extra_data = {
                "processed": self.processed_items,
                "total": self.total_items,
                "progress_percent": round(progress_pct, 1),
                "elapsed_time_seconds": round(elapsed_time, 1)
            }
            self.logger.info(f"Progress: {self.operation_name}", extra=extra_data)

            self.last_log_time = current_time

    def complete(self) -> None:
        """Mark operation as complete."""
        total_time = time.time() - self.start_time
        extra_data = {
            "total_items": self.total_items,
            "total_time_seconds": round(total_time, 1)
        }
        self.logger.info(f"Completed: {self.operation_name}", extra=extra_data)
