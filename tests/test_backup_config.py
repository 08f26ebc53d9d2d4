"""
Tests for configuration loading.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from dbbackup.config.backup_config import (
    BackupConfig, DatabaseConfig, DumpConfig, SYSTEM_DATABASES, get_config, get_config_by_mode
)
from dbbackup.utils.exceptions import ConfigurationError


FULL_ENV = {
    'BACKUP_DATABASE_HOST': 'db.internal',
    'BACKUP_DATABASE_PORT': '3307',
    'BACKUP_DATABASE_USER': 'backup',
    'BACKUP_DATABASE_PASSWORD': 's3cret',
    'BACKUP_DATABASE_NAME': 'shop',
    'AWS_S3_BUCKET': 'backups',
    'AWS_S3_REGION': 'eu-central-1',
    'AWS_S3_ENDPOINT': 'https://minio.internal:9000',
}


class TestFromEnv:

    def test_all_settings_mapped(self):
        config = BackupConfig.from_env(FULL_ENV)

        assert config.database.host == 'db.internal'
        assert config.database.port == 3307
        assert config.database.name == 'shop'
        assert config.storage.bucket == 'backups'
        assert config.storage.endpoint == 'https://minio.internal:9000'
        assert config.dump.strategy == 'mysqldump'
        assert config.paths.temp_dir == Path('/tmp')
        assert config.debug is False
        config.validate()

    def test_defaults(self):
        env = {k: v for k, v in FULL_ENV.items() if k not in ('BACKUP_DATABASE_PORT', 'BACKUP_DATABASE_NAME', 'AWS_S3_ENDPOINT')}
        config = BackupConfig.from_env(env)

        assert config.database.port == 3306
        assert config.database.name is None
        assert config.storage.endpoint is None
        assert config.database.excluded_databases == list(SYSTEM_DATABASES)
        assert config.dump.auth_compat is True
        assert config.paths.use_lock is True

    def test_debug_flag_only_for_one(self):
        assert BackupConfig.from_env({**FULL_ENV, 'DEBUG': '1'}).debug is True
        assert BackupConfig.from_env({**FULL_ENV, 'DEBUG': 'true'}).debug is False

    def test_debug_raises_log_level(self):
        assert BackupConfig.from_env({**FULL_ENV, 'DEBUG': '1'}).logging.level == 'DEBUG'

    def test_blank_database_name_means_all(self):
        assert BackupConfig.from_env({**FULL_ENV, 'BACKUP_DATABASE_NAME': ''}).database.name is None

    def test_flags_parsed(self):
        config = BackupConfig.from_env({**FULL_ENV, 'BACKUP_AUTH_COMPAT': '0', 'BACKUP_USE_LOCK': 'false'})
        assert config.dump.auth_compat is False
        assert config.paths.use_lock is False

    def test_env_file_is_loaded(self, tmp_path, monkeypatch):
        for key in FULL_ENV:
            monkeypatch.delenv(key, raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("\n".join(f"{k}={v}" for k, v in FULL_ENV.items()))

        with patch.dict(os.environ):
            config = BackupConfig.from_env(env_file=str(env_file))

        assert config.database.host == 'db.internal'
        assert 'BACKUP_DATABASE_HOST' not in os.environ


class TestValidation:

    def test_missing_settings_listed(self):
        config = BackupConfig.from_env({'BACKUP_DATABASE_HOST': 'db'})
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        message = str(exc_info.value)
        for key in ('database.user', 'database.password', 'storage.bucket', 'storage.region'):
            assert key in message
        assert 'database.host' not in message

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ConfigurationError):
            DumpConfig(strategy='xtrabackup')

    def test_non_numeric_port_rejected(self):
        with pytest.raises(ConfigurationError, match="port"):
            BackupConfig.from_env({**FULL_ENV, 'BACKUP_DATABASE_PORT': 'abc'})

    def test_numeric_port_string_coerced(self):
        assert DatabaseConfig(port='3310').port == 3310

    def test_unknown_mode_rejected(self):
        with pytest.raises(ConfigurationError):
            get_config_by_mode('staging')


class TestSerialization:

    def test_password_redacted(self):
        config_dict = BackupConfig.from_env(FULL_ENV).to_dict()
        assert config_dict['database']['password'] == '****'
        assert config_dict['paths']['temp_dir'] == '/tmp'

    def test_file_round_trip_keeps_settings(self, tmp_path):
        path = tmp_path / "backup.json"
        BackupConfig.from_env(FULL_ENV).save(str(path))

        config = BackupConfig.from_file(str(path))

        assert config.database.password == 's3cret'
        assert config.paths.temp_dir == Path('/tmp')
        assert config.storage.region == 'eu-central-1'

    def test_redacted_password_rejected_on_load(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(json.dumps(BackupConfig.from_env(FULL_ENV).to_dict()))

        with pytest.raises(ConfigurationError, match="redacted"):
            BackupConfig.from_file(str(path))

    def test_unreadable_file_is_configuration_error(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            BackupConfig.from_file(str(path))


class TestGetConfig:

    def test_missing_config_file_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            get_config(str(tmp_path / "typo.json"))

    def test_existing_config_file_used(self, tmp_path):
        path = tmp_path / "backup.json"
        BackupConfig.from_env(FULL_ENV).save(str(path))

        assert get_config(str(path)).database.host == 'db.internal'
