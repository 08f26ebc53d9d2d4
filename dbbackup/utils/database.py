"""
Database utilities for backup runs.
Provides connection management and the metadata/row queries a logical dump needs.
"""

from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Any

import pymysql
import pymysql.cursors

from dbbackup.config.backup_config import DatabaseConfig, SYSTEM_DATABASES
from dbbackup.utils.exceptions import ConnectionFailure, QueryFailure
from dbbackup.utils.logging_utils import BackupLogger
from dbbackup.utils.sql_values import quote_identifier


def filter_system_databases(names: Iterable[str], excluded: Sequence[str] = SYSTEM_DATABASES) -> List[str]:
    """
    Drop server-maintained schemas from a database listing.

    Matching is case-insensitive; order of the remaining names is preserved.
    """
    excluded_lower = {name.lower() for name in excluded}
    return [name for name in names if name and name.lower() not in excluded_lower]


def resolve_databases(
    available: Iterable[str],
    configured_name: Optional[str] = None,
    excluded: Sequence[str] = SYSTEM_DATABASES
) -> List[str]:
    """
    Decide which databases a run covers.

    Args:
        available: Names reported by the server
        configured_name: Single database to back up, if set
        excluded: System schemas to skip when discovering

    Returns:
        List of database names
    """
    if configured_name:
        return [configured_name]
    return filter_system_databases(available, excluded)


class DumpSource:
    """
    Capability interface the SQL serializer is written against.

    Implementations must be able to enumerate databases and tables, return a
    table's CREATE statement and stream its rows.
    """

    def list_databases(self) -> List[str]:
        raise NotImplementedError

    def list_tables(self, database: str) -> List[str]:
        raise NotImplementedError

    def fetch_create_table(self, database: str, table: str) -> str:
        raise NotImplementedError

    def iter_rows(self, database: str, table: str) -> Tuple[List[str], Iterator[Tuple[Any, ...]]]:
        """
        Return column names and an iterator over the table's rows.

        Only columns that accept values on INSERT are included; generated
        columns are recomputed by the server on restore.
        """
        raise NotImplementedError


class MySQLDumpSource(DumpSource):
    """DumpSource backed by a single open PyMySQL connection."""

    def __init__(self, connection, fetch_batch_size: int = 1000):
        self.connection = connection
        self.fetch_batch_size = fetch_batch_size

    def _fetch_all(self, query: str, params=None) -> List[Tuple[Any, ...]]:
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(query, params)
                return list(cursor.fetchall())
        except pymysql.MySQLError as e:
            raise QueryFailure(f"Query failed ({query}): {e}") from e

    def list_databases(self) -> List[str]:
        return [row[0] for row in self._fetch_all("SHOW DATABASES")]

    def list_tables(self, database: str) -> List[str]:
        rows = self._fetch_all(
            f"SHOW FULL TABLES FROM {quote_identifier(database)} WHERE Table_type = 'BASE TABLE'"
        )
        return [row[0] for row in rows]

    def fetch_create_table(self, database: str, table: str) -> str:
        rows = self._fetch_all(
            f"SHOW CREATE TABLE {quote_identifier(database)}.{quote_identifier(table)}"
        )
        if not rows:
            raise QueryFailure(f"No definition returned for {database}.{table}")
        return rows[0][1]

    def list_columns(self, database: str, table: str) -> List[str]:
        """Insertable columns of a table in definition order (virtual and stored generated columns left out)."""
        rows = self._fetch_all(
            "SELECT COLUMN_NAME FROM information_schema.COLUMNS"
            " WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s"
            " AND EXTRA NOT LIKE %s AND EXTRA NOT LIKE %s"
            " ORDER BY ORDINAL_POSITION",
            (database, table, '%VIRTUAL GENERATED%', '%STORED GENERATED%')
        )
        return [row[0] for row in rows]

    def iter_rows(self, database: str, table: str) -> Tuple[List[str], Iterator[Tuple[Any, ...]]]:
        columns = self.list_columns(database, table)
        if not columns:
            raise QueryFailure(f"No insertable columns found for {database}.{table}")

        column_list = ", ".join(quote_identifier(column) for column in columns)
        query = f"SELECT {column_list} FROM {quote_identifier(database)}.{quote_identifier(table)}"
        try:
            cursor = self.connection.cursor(pymysql.cursors.SSCursor)
            cursor.execute(query)
        except pymysql.MySQLError as e:
            raise QueryFailure(f"Query failed ({query}): {e}") from e

        def rows() -> Iterator[Tuple[Any, ...]]:
            try:
                while True:
                    batch = cursor.fetchmany(self.fetch_batch_size)
                    if not batch:
                        break
                    for row in batch:
                        yield row
            except pymysql.MySQLError as e:
                raise QueryFailure(f"Reading rows from {database}.{table} failed: {e}") from e
            finally:
                cursor.close()

        return columns, rows()


class DatabaseManager:
    """
    Database manager class providing connection management and common operations.
    """

    def __init__(self, db_config: DatabaseConfig, logger: Optional[BackupLogger] = None, fetch_batch_size: int = 1000):
        """
        Initialize database manager with connection parameters.

        Args:
            db_config: Connection settings
            logger: Logger instance
            fetch_batch_size: Rows fetched per round trip when streaming
        """
        self.db_config = db_config
        self.logger = logger or BackupLogger("DatabaseManager")
        self.fetch_batch_size = fetch_batch_size

    def _connect_kwargs(self) -> dict:
        return {
            'host': self.db_config.host,
            'port': self.db_config.port,
            'user': self.db_config.user,
            'password': self.db_config.password,
            'charset': self.db_config.charset,
            'connect_timeout': self.db_config.connect_timeout,
        }

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.

        Yields:
            pymysql.connections.Connection

        Raises:
            ConnectionFailure: If the server cannot be reached or rejects the login
        """
        self.logger.info(
            f"Connecting to database at {self.db_config.host}:{self.db_config.port} as user {self.db_config.user}"
        )
        try:
            conn = pymysql.connect(**self._connect_kwargs())
        except pymysql.MySQLError as e:
            raise ConnectionFailure(
                f"Database connection failed ({self.db_config.host}:{self.db_config.port}): {e}"
            ) from e

        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def open_source(self):
        """Yield a MySQLDumpSource bound to a fresh connection."""
        with self.get_connection() as conn:
            yield MySQLDumpSource(conn, fetch_batch_size=self.fetch_batch_size)

    def list_backup_databases(self) -> List[str]:
        """Databases a run would cover with the current settings."""
        if self.db_config.name:
            return [self.db_config.name]
        with self.open_source() as source:
            return resolve_databases(source.list_databases(), None, self.db_config.excluded_databases)

    def test_connection(self) -> bool:
        """
        Test the database connection.

        Returns:
            bool: True if connection successful, False otherwise
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    result = cursor.fetchone()
            return result[0] == 1 if result else False
        except (ConnectionFailure, pymysql.MySQLError) as e:
            self.logger.warning(f"Database connection test failed: {e}")
            return False
