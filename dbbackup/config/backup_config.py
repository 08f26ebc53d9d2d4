"""
Centralized configuration management for backup runs.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any, Mapping
from pathlib import Path
import json
import os

from dotenv import load_dotenv

from dbbackup.utils.exceptions import ConfigurationError


# Schemas maintained by the server itself, never part of a backup
SYSTEM_DATABASES = ('mysql', 'sys', 'performance_schema', 'information_schema', 'innodb')

STRATEGIES = ('mysqldump', 'native')

# Stands in for the password in redacted output
REDACTED = '****'


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class DatabaseConfig:
    """Connection settings for the source database."""

    host: Optional[str] = None
    port: int = 3306
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    name: Optional[str] = None  # None = every non-system database

    excluded_databases: List[str] = field(default_factory=lambda: list(SYSTEM_DATABASES))
    connect_timeout: int = 10
    charset: str = 'utf8mb4'

    def __post_init__(self):
        if self.port is not None:
            try:
                self.port = int(self.port)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid database port: {self.port!r}") from e
        if self.name is not None and self.name.strip() == '':
            self.name = None


@dataclass
class StorageConfig:
    """Object storage settings."""

    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint: Optional[str] = None  # S3-compatible backends (MinIO, R2, ...)
    key_prefix: str = ""
    profile: Optional[str] = None


@dataclass
class DumpConfig:
    """Dump generation settings."""

    strategy: str = 'mysqldump'
    auth_compat: bool = True
    mysqldump_binary: str = 'mysqldump'
    mysql_binary: str = 'mysql'
    extra_dump_options: List[str] = field(default_factory=lambda: [
        '--single-transaction', '--routines', '--triggers'
    ])
    auth_compat_options: List[str] = field(default_factory=lambda: [
        '--default-auth=mysql_native_password', '--skip-ssl'
    ])
    # stderr lines containing any of these are logged, not fatal
    benign_stderr_patterns: List[str] = field(default_factory=lambda: [
        'caching_sha2_password', 'Warning'
    ])
    fetch_batch_size: int = 1000

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unknown dump strategy: {self.strategy}. Use one of {', '.join(STRATEGIES)}"
            )


@dataclass
class PathConfig:
    """Local filesystem locations."""

    temp_dir: Path = field(default_factory=lambda: Path("/tmp"))
    use_lock: bool = True
    lock_file_name: str = "dbbackup.lock"

    def __post_init__(self):
        self.temp_dir = Path(self.temp_dir)

    @property
    def lock_path(self) -> Path:
        return self.temp_dir / self.lock_file_name


@dataclass
class LoggingConfig:
    """Configuration for logging setup."""

    level: str = "INFO"
    log_dir: Optional[str] = None
    console_logging: bool = True
    suppress_external: bool = True
    small_file_warning_bytes: int = 100


@dataclass
class BackupConfig:
    """Master configuration class combining all sub-configurations."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    dump: DumpConfig = field(default_factory=DumpConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, env_file: Optional[str] = None) -> 'BackupConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            env_file: Optional .env file loaded into os.environ first

        Returns:
            BackupConfig instance
        """
        if environ is None:
            if env_file:
                load_dotenv(dotenv_path=env_file)
            else:
                load_dotenv()
            environ = os.environ

        get = environ.get

        debug = get('DEBUG') == '1'

        return cls(
            database=DatabaseConfig(
                host=get('BACKUP_DATABASE_HOST'),
                port=get('BACKUP_DATABASE_PORT') or 3306,
                user=get('BACKUP_DATABASE_USER'),
                password=get('BACKUP_DATABASE_PASSWORD'),
                name=get('BACKUP_DATABASE_NAME'),
            ),
            storage=StorageConfig(
                bucket=get('AWS_S3_BUCKET'),
                region=get('AWS_S3_REGION'),
                endpoint=get('AWS_S3_ENDPOINT') or None,
                key_prefix=get('AWS_S3_KEY_PREFIX', ''),
                profile=get('AWS_PROFILE') or None,
            ),
            dump=DumpConfig(
                strategy=get('BACKUP_STRATEGY') or 'mysqldump',
                auth_compat=_env_flag(get('BACKUP_AUTH_COMPAT'), True),
            ),
            paths=PathConfig(
                temp_dir=Path(get('BACKUP_TEMP_DIR') or '/tmp'),
                use_lock=_env_flag(get('BACKUP_USE_LOCK'), True),
            ),
            logging=LoggingConfig(
                level="DEBUG" if debug else (get('BACKUP_LOG_LEVEL') or "INFO"),
                log_dir=get('BACKUP_LOG_DIR') or None,
            ),
            debug=debug,
        )

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'BackupConfig':
        """Create configuration from dictionary."""
        if config_dict.get('database', {}).get('password') == REDACTED:
            raise ConfigurationError("Database password in configuration is redacted; supply the real password")
        return cls(
            database=DatabaseConfig(**config_dict.get('database', {})),
            storage=StorageConfig(**config_dict.get('storage', {})),
            dump=DumpConfig(**config_dict.get('dump', {})),
            paths=PathConfig(**config_dict.get('paths', {})),
            logging=LoggingConfig(**config_dict.get('logging', {})),
            debug=config_dict.get('debug', False),
        )

    @classmethod
    def from_file(cls, config_path: str) -> 'BackupConfig':
        """Load configuration from JSON file."""
        try:
            with open(config_path, 'r') as f:
                config_dict = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e
        return cls.from_dict(config_dict)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert configuration to dictionary, masking the password by default."""
        config_dict = asdict(self)

        def convert_paths(obj):
            if isinstance(obj, dict):
                return {k: convert_paths(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_paths(item) for item in obj]
            elif isinstance(obj, Path):
                return str(obj)
            return obj

        config_dict = convert_paths(config_dict)
        if redact and config_dict['database'].get('password'):
            config_dict['database']['password'] = REDACTED
        return config_dict

    def save(self, config_path: str) -> None:
        """Save configuration to JSON file. The password is written as-is so the file can be loaded back."""
        with open(config_path, 'w') as f:
            json.dump(self.to_dict(redact=False), f, indent=2)

    def validate(self) -> None:
        """
        Check that every required setting is present.

        Raises:
            ConfigurationError: listing the missing settings
        """
        required = {
            'database.host': self.database.host,
            'database.user': self.database.user,
            'database.password': self.database.password,
            'storage.bucket': self.storage.bucket,
            'storage.region': self.storage.region,
        }
        missing = [key for key, value in required.items() if not value]
        if missing:
            raise ConfigurationError(f"Missing required settings: {missing}")


def get_config(config_path: Optional[str] = None, env_file: Optional[str] = None) -> BackupConfig:
    """
    Get configuration instance.

    Args:
        config_path: Optional path to a JSON configuration file
        env_file: Optional .env file used when no JSON file is given

    Returns:
        BackupConfig instance

    Raises:
        ConfigurationError: If config_path is given but does not exist
    """
    if config_path:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        return BackupConfig.from_file(config_path)
    return BackupConfig.from_env(env_file=env_file)


def get_config_by_mode(mode: str = "production", env_file: Optional[str] = None) -> BackupConfig:
    """Get configuration based on mode."""
    if mode == "production":
        return get_production_config(env_file)
    elif mode == "development":
        return get_development_config(env_file)
    elif mode == "test":
        return get_test_config(env_file)
    else:
        raise ConfigurationError(f"Unknown mode: {mode}. Use 'production', 'development', or 'test'")


def get_production_config(env_file: Optional[str] = None) -> BackupConfig:
    """Environment configuration as-is."""
    return BackupConfig.from_env(env_file=env_file)


def get_development_config(env_file: Optional[str] = None) -> BackupConfig:
    """Verbose output, no run lock."""
    config = BackupConfig.from_env(env_file=env_file)
    config.logging.level = "DEBUG"
    config.debug = True
    config.paths.use_lock = False
    return config


def get_test_config(env_file: Optional[str] = None) -> BackupConfig:
    """Direct-query strategy with debug output, for trial runs against a scratch server."""
    config = get_development_config(env_file)
    config.dump.strategy = 'native'
    config.logging.suppress_external = False
    return config
