"""
Error kinds raised by the backup pipeline.
"""

from typing import Optional


class BackupError(Exception):
    """Base class for every failure surfaced by a backup run."""
    pass


class ConfigurationError(BackupError):
    pass


class ConnectionFailure(BackupError):
    """Cannot reach or authenticate to the database."""
    pass


class QueryFailure(BackupError):
    """Metadata or data query failed mid-dump."""
    pass


class SubprocessFailure(BackupError):
    """External dump utility exited non-zero or emitted non-benign diagnostics."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class VerificationFailure(BackupError):
    """Dump file is missing or empty."""
    pass


class UploadFailure(BackupError):
    pass


class CleanupFailure(BackupError):
    pass


class LockFailure(BackupError):
    """Another backup run holds the lock."""
    pass
