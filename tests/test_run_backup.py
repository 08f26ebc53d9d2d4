"""
Tests for the command line entry point and the Lambda handler.
"""

import importlib.util
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dbbackup.scripts import run_backup
from dbbackup.utils.exceptions import UploadFailure

from tests.test_backup_config import FULL_ENV


PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def backup_env(monkeypatch):
    for key, value in FULL_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv('DEBUG', raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr('dbbackup.config.backup_config.load_dotenv', lambda *a, **k: False)


class TestMain:

    def test_success_exit_code(self, backup_env):
        with patch('dbbackup.scripts.run_backup.BackupPipeline') as pipeline_cls:
            pipeline_cls.return_value.run.return_value = MagicMock(object_key='backup-x.sql.gz')
            assert run_backup.main([]) == run_backup.EXIT_OK

    def test_overrides_applied(self, backup_env, tmp_path):
        with patch('dbbackup.scripts.run_backup.BackupPipeline') as pipeline_cls:
            pipeline_cls.return_value.run.return_value = MagicMock(object_key='k')
            run_backup.main([
                '--strategy', 'native', '--database', 'crm', '--temp-dir', str(tmp_path),
                '--debug', '--no-lock'
            ])

        config = pipeline_cls.call_args[0][0]
        assert config.dump.strategy == 'native'
        assert config.database.name == 'crm'
        assert config.paths.temp_dir == tmp_path
        assert config.debug is True
        assert config.paths.use_lock is False

    def test_backup_failure_exit_code(self, backup_env):
        with patch('dbbackup.scripts.run_backup.BackupPipeline') as pipeline_cls:
            pipeline_cls.return_value.run.side_effect = UploadFailure("denied")
            assert run_backup.main([]) == run_backup.EXIT_FAILED

    def test_missing_configuration_exit_code(self, backup_env, monkeypatch):
        monkeypatch.delenv('AWS_S3_BUCKET')
        assert run_backup.main([]) == run_backup.EXIT_CONFIG

    def test_invalid_port_exit_code(self, backup_env, monkeypatch):
        monkeypatch.setenv('BACKUP_DATABASE_PORT', 'abc')
        assert run_backup.main([]) == run_backup.EXIT_CONFIG

    def test_missing_config_file_exit_code(self, backup_env, tmp_path):
        with patch('dbbackup.scripts.run_backup.BackupPipeline') as pipeline_cls:
            assert run_backup.main(['--config', str(tmp_path / 'typo.json')]) == run_backup.EXIT_CONFIG
        pipeline_cls.assert_not_called()


def load_lambda_module():
    path = PROJECT_ROOT / "aws" / "lambda" / "backup_handler.py"
    spec = importlib.util.spec_from_file_location("backup_handler", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestLambdaHandler:

    def test_runs_native_strategy(self, backup_env):
        handler = load_lambda_module()
        context = MagicMock()
        context.get_remaining_time_in_millis.return_value = 300_000

        with patch.object(handler, 'BackupPipeline') as pipeline_cls:
            pipeline_cls.return_value.run.return_value = MagicMock(object_key='backup-x.sql.gz', size_bytes=2048)
            response = handler.lambda_handler({'database': 'crm'}, context)

        config = pipeline_cls.call_args[0][0]
        assert config.dump.strategy == 'native'
        assert config.database.name == 'crm'
        body = json.loads(response['body'])
        assert response['statusCode'] == 200
        assert body['s3_key'] == 'backup-x.sql.gz'

    def test_failure_propagates(self, backup_env):
        handler = load_lambda_module()

        with patch.object(handler, 'BackupPipeline') as pipeline_cls:
            pipeline_cls.return_value.run.side_effect = UploadFailure("denied")
            with pytest.raises(UploadFailure):
                handler.lambda_handler({}, None)

    def test_skips_when_out_of_time(self, backup_env):
        handler = load_lambda_module()
        context = MagicMock()
        context.get_remaining_time_in_millis.return_value = 1000

        with patch.object(handler, 'BackupPipeline') as pipeline_cls:
            response = handler.lambda_handler({}, context)

        pipeline_cls.assert_not_called()
        assert 'Skipped' in response['body']
