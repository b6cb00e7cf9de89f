"""Amazon S3 blob storage."""

from __future__ import annotations

import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from cardwise.errors import ExternalServiceError, StoredFileNotFoundError
from cardwise.storage.base import BlobStorage

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3Storage(BlobStorage):
    """Stores invoice files in a bucket under an optional key prefix.

    Credentials come from the standard boto3 chain (environment, profile
    or instance role).
    """

    def __init__(self, bucket: str, prefix: str = "", client=None):
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.s3 = client or boto3.client(
            "s3",
            config=BotoConfig(
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=30,
                read_timeout=60,
            ),
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def save(self, key: str, data: bytes) -> str:
        full_key = self._key(key)
        try:
            self.s3.put_object(Bucket=self.bucket, Key=full_key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"Failed to store s3://{self.bucket}/{full_key}: {e}") from e
        return key

    def read(self, key: str) -> bytes:
        full_key = self._key(key)
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=full_key)
            return response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in _MISSING_CODES:
                raise StoredFileNotFoundError(key) from e
            raise ExternalServiceError(f"Failed to read s3://{self.bucket}/{full_key}: {e}") from e
        except BotoCoreError as e:
            raise ExternalServiceError(f"Failed to read s3://{self.bucket}/{full_key}: {e}") from e

    def exists(self, key: str) -> bool:
        full_key = self._key(key)
        try:
            self.s3.head_object(Bucket=self.bucket, Key=full_key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in _MISSING_CODES:
                return False
            raise ExternalServiceError(f"Failed to check s3://{self.bucket}/{full_key}: {e}") from e

    def presigned_url(self, key: str, expires_in: int = 300) -> str:
        full_key = self._key(key)
        try:
            return self.s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": full_key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to generate presigned URL for %s: %s", full_key, e)
            raise ExternalServiceError(f"Failed to generate presigned URL for {full_key}") from e
