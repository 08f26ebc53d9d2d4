"""
Removal of the local dump once it has been shipped.
"""

import os
from pathlib import Path
from typing import Optional

from dbbackup.utils.exceptions import CleanupFailure
from dbbackup.utils.logging_utils import BackupLogger


def delete_local_file(path: Path, logger: Optional[BackupLogger] = None) -> None:
    """
    Delete the local dump file.

    Raises:
        CleanupFailure: if the file cannot be removed. The upload is not undone.
    """
    logger = logger or BackupLogger("BackupCleanup")
    logger.info(f"Deleting local dump file at {path}...")

    try:
        os.remove(path)
    except OSError as e:
        logger.error(f"Could not remove local dump file {path}", exception=e)
        raise CleanupFailure(f"Could not remove local dump file {path}: {e}") from e
