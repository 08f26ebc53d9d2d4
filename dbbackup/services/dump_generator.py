#!/usr/bin/env python3
"""
Dump Generation Service

Produces a gzip-compressed SQL dump of the configured database(s) at a local
path. Two strategies are available:

- MysqldumpGenerator: runs the mysqldump client and compresses its output
- NativeDumpGenerator: queries schema and rows over a PyMySQL connection and
  serializes them to SQL statements itself
"""

import gzip
import shutil
import subprocess
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, TextIO, Tuple

from dbbackup.config.backup_config import BackupConfig
from dbbackup.utils.database import DatabaseManager, DumpSource, resolve_databases
from dbbackup.utils.exceptions import SubprocessFailure
from dbbackup.utils.logging_utils import BackupLogger, ProgressLogger
from dbbackup.utils.sql_values import quote_identifier, to_sql_literal


class DumpGenerator:
    """Base class for dump strategies."""

    strategy_name = "base"

    def __init__(self, config: BackupConfig, logger: Optional[BackupLogger] = None):
        self.config = config
        self.logger = logger or BackupLogger(self.__class__.__name__)

    def generate(self, path: Path) -> None:
        """
        Write a gzip-compressed SQL dump to path.

        Args:
            path: Destination file
        """
        raise NotImplementedError


# ---------------------------------------------------------------------------
# External utility strategy
# ---------------------------------------------------------------------------

def classify_stderr(stderr: str, benign_patterns: Sequence[str]) -> Tuple[List[str], List[str]]:
    """
    Split diagnostic output into benign warnings and real errors.

    Args:
        stderr: Decoded diagnostic output
        benign_patterns: Substrings that mark a line as a benign warning

    Returns:
        (warnings, errors) as lists of non-empty lines
    """
    warnings, errors = [], []
    for line in stderr.splitlines():
        line = line.strip()
        if not line:
            continue
        if any(pattern in line for pattern in benign_patterns):
            warnings.append(line)
        else:
            errors.append(line)
    return warnings, errors


def mask_password(command: Sequence[str]) -> str:
    """Render a command for logging with the password argument hidden."""
    masked = []
    for arg in command:
        if arg.startswith('--password='):
            masked.append('--password=****')
        else:
            masked.append(arg)
    return ' '.join(masked)


class MysqldumpGenerator(DumpGenerator):
    """Dump via the mysqldump command line client."""

    strategy_name = "mysqldump"

    def _connection_args(self) -> List[str]:
        db = self.config.database
        args = [
            f"--host={db.host}",
            f"--port={db.port}",
            f"--user={db.user}",
            f"--password={db.password}",
        ]
        if self.config.dump.auth_compat:
            args.extend(self.config.dump.auth_compat_options)
        return args

    def _debug(self, message: str) -> None:
        if self.config.debug:
            self.logger.info(f"Debug: {message}")

    def _check_stderr(self, stderr: str, step: str) -> None:
        warnings, errors = classify_stderr(stderr, self.config.dump.benign_stderr_patterns)
        for line in warnings:
            self.logger.warning(f"Warning during {step}: {line}")
        if errors:
            self.logger.error(f"Error during {step}", extra={'stderr': stderr})
            raise SubprocessFailure(f"{step} failed", stderr=stderr)

    def build_list_command(self) -> List[str]:
        return [self.config.dump.mysql_binary] + self._connection_args() + [
            '--skip-column-names', '-e', 'SHOW DATABASES;'
        ]

    def build_dump_command(self, databases: Sequence[str]) -> List[str]:
        """
        Build the mysqldump argument list.

        Args:
            databases: Databases to dump; a single configured name is passed
                bare, discovered names follow --databases

        Returns:
            Argument list for subprocess

        Raises:
            SubprocessFailure: If there is nothing to dump
        """
        command = [self.config.dump.mysqldump_binary] + self._connection_args()
        command.extend(self.config.dump.extra_dump_options)
        if self.config.database.name:
            command.append(self.config.database.name)
        else:
            # a bare --databases is a mysqldump usage error
            if not databases:
                raise SubprocessFailure("No databases to dump: every database on the server is excluded")
            command.append('--databases')
            command.extend(databases)
        return command

    def discover_databases(self) -> List[str]:
        """List user databases on the server via the mysql client."""
        command = self.build_list_command()
        self._debug(f"SQL command: {mask_password(command)}")

        try:
            result = subprocess.run(command, capture_output=True, text=True)
        except OSError as e:
            self.logger.error(f"Could not launch {command[0]}", exception=e)
            raise SubprocessFailure(f"Could not launch {command[0]}: {e}") from e

        if result.returncode != 0:
            self.logger.error(
                f"Database listing failed with exit code {result.returncode}",
                extra={'host': self.config.database.host, 'stderr': result.stderr}
            )
            raise SubprocessFailure(
                "Database listing failed", returncode=result.returncode, stderr=result.stderr
            )
        self._check_stderr(result.stderr, "database listing")

        names = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        databases = resolve_databases(names, None, self.config.database.excluded_databases)
        self.logger.info(f"Discovered {len(databases)} databases", extra={'databases': databases})
        return databases

    def generate(self, path: Path) -> None:
        path = Path(path)
        db = self.config.database
        self.logger.info(f"Creating dump at {path}...")
        self.logger.info(f"Connecting to database at {db.host}:{db.port} as user {db.user}")

        databases = [db.name] if db.name else self.discover_databases()
        command = self.build_dump_command(databases)
        self._debug(f"SQL command: {mask_password(command)}")

        # stderr goes to a spool file so a chatty client cannot block on a full pipe
        with tempfile.TemporaryFile() as stderr_file:
            try:
                process = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=stderr_file)
            except OSError as e:
                self.logger.error(f"Could not launch {command[0]}", exception=e)
                raise SubprocessFailure(f"Could not launch {command[0]}: {e}") from e

            try:
                with gzip.open(path, 'wb') as gz:
                    shutil.copyfileobj(process.stdout, gz)
            finally:
                process.stdout.close()
                returncode = process.wait()

            stderr_file.seek(0)
            stderr = stderr_file.read().decode('utf-8', errors='replace')

        if returncode != 0:
            self.logger.error(
                f"Database dump failed with exit code {returncode}",
                extra={'host': db.host, 'path': str(path), 'stderr': stderr}
            )
            self._debug(f"could not create local dump file at {path}")
            raise SubprocessFailure("mysqldump failed", returncode=returncode, stderr=stderr)

        self._check_stderr(stderr, "dump")
        self.logger.info("Database connection successful, dump created")


# ---------------------------------------------------------------------------
# Direct query strategy
# ---------------------------------------------------------------------------

class SqlDumpWriter:
    """
    Serializes a DumpSource to SQL text.

    Written once against the DumpSource capability interface so the output
    format does not depend on how schema and rows are fetched.
    """

    def __init__(self, source: DumpSource, out: TextIO, logger: Optional[BackupLogger] = None):
        self.source = source
        self.out = out
        self.logger = logger or BackupLogger("SqlDumpWriter")
        self.stats = {'databases': 0, 'tables': 0, 'rows': 0}

    def _emit(self, line: str = "") -> None:
        self.out.write(line + "\n")

    def write_dump(self, databases: Sequence[str]) -> dict:
        """
        Write every database, wrapped in foreign key check toggles.

        Returns:
            Counts of databases, tables and rows written
        """
        generated_at = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        self._emit("-- dbbackup SQL dump")
        self._emit(f"-- Generated: {generated_at} UTC")
        self._emit()
        self._emit("SET FOREIGN_KEY_CHECKS=0;")
        self._emit()

        for database in databases:
            self.write_database(database)

        self._emit("SET FOREIGN_KEY_CHECKS=1;")
        return dict(self.stats)

    def write_database(self, database: str) -> None:
        quoted = quote_identifier(database)
        self._emit(f"-- Database: {quoted}")
        self._emit(f"CREATE DATABASE IF NOT EXISTS {quoted};")
        self._emit(f"USE {quoted};")
        self._emit()

        tables = self.source.list_tables(database)
        self.logger.info(f"Dumping {len(tables)} tables from {database}")

        if tables:
            progress = ProgressLogger(self.logger, len(tables), f"Dump {database}")
            for table in tables:
                self.write_table(database, table)
                progress.update()
            progress.complete()

        self.stats['databases'] += 1

    def write_table(self, database: str, table: str) -> None:
        quoted = quote_identifier(table)
        create_statement = self.source.fetch_create_table(database, table)

        self._emit(f"DROP TABLE IF EXISTS {quoted};")
        self._emit(f"{create_statement.rstrip().rstrip(';')};")
        self._emit()

        columns, rows = self.source.iter_rows(database, table)
        column_list = ", ".join(quote_identifier(column) for column in columns)
        row_count = 0

        for row in rows:
            if row_count == 0:
                self._emit(f"LOCK TABLES {quoted} WRITE;")
            values = ", ".join(to_sql_literal(value) for value in row)
            self._emit(f"INSERT INTO {quoted} ({column_list}) VALUES ({values});")
            row_count += 1

        if row_count:
            self._emit("UNLOCK TABLES;")
            self._emit()

        self.stats['tables'] += 1
        self.stats['rows'] += row_count
        self.logger.debug(f"Dumped {database}.{table}", extra={'rows': row_count})


class NativeDumpGenerator(DumpGenerator):
    """Dump by querying schema and rows directly."""

    strategy_name = "native"

    def __init__(
        self,
        config: BackupConfig,
        logger: Optional[BackupLogger] = None,
        db_manager: Optional[DatabaseManager] = None
    ):
        super().__init__(config, logger)
        self.db_manager = db_manager or DatabaseManager(
            config.database, self.logger, fetch_batch_size=config.dump.fetch_batch_size
        )

    def generate(self, path: Path) -> None:
        path = Path(path)
        self.logger.info(f"Creating dump at {path}...")

        with self.db_manager.open_source() as source:
            databases = resolve_databases(
                source.list_databases() if not self.config.database.name else [],
                self.config.database.name,
                self.config.database.excluded_databases
            )
            self.logger.info(f"Backing up {len(databases)} databases", extra={'databases': databases})

            with gzip.open(path, 'wt', encoding='utf-8') as out:
                stats = SqlDumpWriter(source, out, self.logger).write_dump(databases)

        self.logger.info("Dump created", extra=stats)


GENERATORS = {
    MysqldumpGenerator.strategy_name: MysqldumpGenerator,
    NativeDumpGenerator.strategy_name: NativeDumpGenerator,
}


def create_dump_generator(config: BackupConfig, logger: Optional[BackupLogger] = None) -> DumpGenerator:
    """Instantiate the generator selected by config.dump.strategy."""
    return GENERATORS[config.dump.strategy](config, logger)
