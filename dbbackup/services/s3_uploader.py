#!/usr/bin/env python3
"""
Upload Backups to S3

Ships a local dump file to an S3 bucket, or to an S3-compatible store when a
custom endpoint is configured.
"""

from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from dbbackup.config.backup_config import StorageConfig
from dbbackup.utils.exceptions import UploadFailure
from dbbackup.utils.logging_utils import BackupLogger


def build_s3_client(storage_config: StorageConfig, logger: Optional[BackupLogger] = None):
    """
    Create an S3 client with path-style addressing.

    Args:
        storage_config: Bucket, region, endpoint and profile settings
        logger: Logger instance

    Returns:
        boto3 S3 client
    """
    client_kwargs = {
        'region_name': storage_config.region,
        'config': Config(s3={'addressing_style': 'path'}),
    }

    if storage_config.endpoint:
        if logger:
            logger.info(f"Using custom endpoint: {storage_config.endpoint}")
        client_kwargs['endpoint_url'] = storage_config.endpoint

    if storage_config.profile:
        session = boto3.Session(profile_name=storage_config.profile)
        return session.client('s3', **client_kwargs)
    return boto3.client('s3', **client_kwargs)


class BackupUploader:
    """Uploads dump files to object storage."""

    def __init__(
        self,
        storage_config: StorageConfig,
        logger: Optional[BackupLogger] = None,
        s3_client=None
    ):
        """
        Initialize backup uploader.

        Args:
            storage_config: Object storage settings
            logger: Logger instance
            s3_client: Optional pre-built client
        """
        self.storage_config = storage_config
        self.logger = logger or BackupLogger("BackupUploader")
        self.bucket = storage_config.bucket
        self._s3_client = s3_client

    @property
    def s3_client(self):
        if self._s3_client is None:
            self._s3_client = build_s3_client(self.storage_config, self.logger)
        return self._s3_client

    def object_key(self, filename: str) -> str:
        prefix = self.storage_config.key_prefix.strip('/')
        return f"{prefix}/{filename}" if prefix else filename

    def upload(self, local_file: Path, key: str) -> None:
        """
        Stream a local file to the bucket in a single put.

        Args:
            local_file: File to upload
            key: Object key

        Raises:
            UploadFailure: on any client, network or local read error
        """
        self.logger.info(f"Uploading backup to S3 at {self.bucket}/{key}...")

        try:
            with open(local_file, 'rb') as body:
                self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=body)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in ('NoSuchBucket', '404'):
                self.logger.error(f"S3 bucket not found: {self.bucket}")
            elif error_code in ('AccessDenied', '403'):
                self.logger.error(f"Access denied to S3 bucket: {self.bucket}")
            else:
                self.logger.error(f"Failed to upload {local_file} to {key}: {str(e)}")
            raise UploadFailure(f"Upload of {local_file} to {self.bucket}/{key} failed: {e}") from e
        except (BotoCoreError, OSError) as e:
            self.logger.error(f"Failed to upload {local_file} to {key}: {str(e)}")
            raise UploadFailure(f"Upload of {local_file} to {self.bucket}/{key} failed: {e}") from e

        self.logger.info(f"Upload complete: s3://{self.bucket}/{key}")
