"""
Checks a freshly written dump before it is shipped anywhere.
"""

import os
from pathlib import Path
from typing import Optional

from dbbackup.utils.exceptions import VerificationFailure
from dbbackup.utils.logging_utils import BackupLogger

# A real gzip'd dump is essentially never this small
SMALL_FILE_THRESHOLD_BYTES = 100


def verify_backup_file(
    path: Path,
    logger: Optional[BackupLogger] = None,
    small_file_threshold: int = SMALL_FILE_THRESHOLD_BYTES
) -> int:
    """
    Confirm the dump exists and has content.

    Args:
        path: Dump file to check
        logger: Logger instance
        small_file_threshold: Sizes below this (but above zero) log a warning

    Returns:
        File size in bytes

    Raises:
        VerificationFailure: if the file cannot be stat'ed or is empty
    """
    logger = logger or BackupLogger("BackupVerifier")

    try:
        size = os.stat(path).st_size
    except OSError as e:
        logger.error(f"Error verifying backup file: {path}", exception=e)
        raise VerificationFailure(f"Cannot stat backup file {path}: {e}") from e

    logger.info(f"Backup file created: {path} ({size} bytes)")

    if size == 0:
        logger.error(f"Error verifying backup file: {path} is empty")
        raise VerificationFailure(f"Backup file is empty: {path}")

    if size < small_file_threshold:
        logger.warning(
            f"Backup file is very small ({size} bytes). This might indicate an issue with the dump."
        )

    return size
