"""
Shared fixtures for the backup test suite.
"""

from contextlib import contextmanager
from typing import Dict, List, Tuple, Any

import pytest

from dbbackup.config.backup_config import (
    BackupConfig, DatabaseConfig, StorageConfig, DumpConfig, PathConfig, LoggingConfig
)
from dbbackup.utils.database import DumpSource
from dbbackup.utils.logging_utils import BackupLogger


USERS_CREATE = (
    "CREATE TABLE `users` (\n"
    "  `id` int NOT NULL AUTO_INCREMENT,\n"
    "  `name` varchar(64) DEFAULT NULL,\n"
    "  PRIMARY KEY (`id`)\n"
    ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
)


class FakeDumpSource(DumpSource):
    """In-memory DumpSource: {database: {table: (create_sql, columns, rows)}}."""

    def __init__(self, databases: Dict[str, Dict[str, Tuple[str, List[str], List[Tuple[Any, ...]]]]]):
        self.databases = databases
        self.calls = []

    def list_databases(self):
        self.calls.append(('list_databases',))
        return list(self.databases)

    def list_tables(self, database):
        self.calls.append(('list_tables', database))
        return list(self.databases.get(database, {}))

    def fetch_create_table(self, database, table):
        return self.databases[database][table][0]

    def iter_rows(self, database, table):
        _, columns, rows = self.databases[database][table]
        return list(columns), iter(rows)


class FakeDatabaseManager:
    """Stands in for DatabaseManager; records whether the connection was released."""

    def __init__(self, source: DumpSource):
        self.source = source
        self.opened = 0
        self.closed = 0

    @contextmanager
    def open_source(self):
        self.opened += 1
        try:
            yield self.source
        finally:
            self.closed += 1


@pytest.fixture
def quiet_logger():
    return BackupLogger("dbbackup-tests", level="DEBUG", console_output=False)


@pytest.fixture
def backup_config(tmp_path):
    """Complete configuration pointing at tmp_path, no run lock."""
    return BackupConfig(
        database=DatabaseConfig(host="db.internal", port=3306, user="backup", password="s3cret"),
        storage=StorageConfig(bucket="backups", region="us-east-1"),
        dump=DumpConfig(strategy="native"),
        paths=PathConfig(temp_dir=tmp_path, use_lock=False),
        logging=LoggingConfig(level="DEBUG", console_logging=False),
    )


@pytest.fixture
def shop_source():
    return FakeDumpSource({
        'shop': {
            'users': (USERS_CREATE, ['id', 'name'], [(1, 'alice'), (2, "o'brien")]),
        }
    })
