"""
Single-run guard for the backup job.
"""

import fcntl
import os
from pathlib import Path
from typing import Optional

from dbbackup.utils.exceptions import LockFailure
from dbbackup.utils.logging_utils import BackupLogger


class RunLock:
    """
    Exclusive, non-blocking flock on a lock file.

    Held for the whole run so two scheduled invocations never share a temp
    path or load the database twice.
    """

    def __init__(self, path: Path, logger: Optional[BackupLogger] = None):
        self.path = Path(path)
        self.logger = logger or BackupLogger("RunLock")
        self._fd = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            raise LockFailure(f"Another backup run holds {self.path}") from e

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        self.logger.debug(f"Acquired run lock {self.path}")

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        self.logger.debug(f"Released run lock {self.path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
